"""
Payment API Endpoints

Provider notification webhook and payment retry.
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.config import Settings, get_settings
from storefront.database.connection import get_session_factory
from storefront.serving.api.deps import get_payment_gateway
from storefront.serving.api.responses import envelope
from storefront.services.orders import request_payment
from storefront.services.payment import PaymentGateway, PaymentNotification
from storefront.services.status import apply_payment_notification

router = APIRouter()


class PaymentRetryRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: UUID


@router.post("/notification")
async def payment_notification(
    notification: PaymentNotification,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    await apply_payment_notification(
        session_factory,
        notification,
        settings.payment.server_key.get_secret_value(),
    )
    return envelope(message="Notification processed")


@router.post("/retry")
async def retry_payment(
    payload: PaymentRetryRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> Dict[str, Any]:
    """New payment token for an order that is neither paid nor cancelled."""
    token = await request_payment(session_factory, gateway, payload.order_id, retry=True)
    return envelope(
        {"paymentUrl": token.redirect_url, "snapToken": token.token},
        message="Payment token created",
    )
