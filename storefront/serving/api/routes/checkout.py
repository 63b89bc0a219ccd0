"""
Checkout API Endpoints

Guest and authenticated checkout. The order is committed first; the payment
token is requested afterwards, and a gateway failure leaves the order in
place for POST /payment/retry.
"""

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.config import Settings, get_settings
from storefront.database.connection import get_session_factory
from storefront.errors import PaymentError, ValidationError
from storefront.serving.api.deps import (
    CurrentUser,
    get_current_user,
    get_payment_gateway,
    get_session_id,
)
from storefront.serving.api.responses import envelope
from storefront.services.addresses import AddressFields
from storefront.services.orders import (
    EMAIL_PATTERN,
    AuthenticatedCheckoutInput,
    GuestCheckoutInput,
    create_authenticated_order,
    create_guest_order,
    request_payment,
)
from storefront.services.payment import PaymentGateway, PaymentToken

logger = structlog.get_logger(__name__)
router = APIRouter()


class GuestCheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: Optional[str] = None

    address_label: str
    full_address: str
    village: str
    district: str
    city: str
    province: str
    postal_code: str
    province_code: Optional[str] = None
    regency_code: Optional[str] = None
    district_code: Optional[str] = None
    village_code: Optional[str] = None

    selected_courier: Optional[str] = None
    selected_service: Optional[str] = None
    shipping_cost: Optional[int] = Field(default=None, ge=0)
    customer_notes: Optional[str] = None


class AuthenticatedCheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    address_id: UUID
    selected_courier: Optional[str] = None
    selected_service: Optional[str] = None
    shipping_cost: Optional[int] = Field(default=None, ge=0)
    customer_notes: Optional[str] = None


async def _issue_payment(
    session_factory: async_sessionmaker,
    gateway: PaymentGateway,
    order_id: UUID,
) -> Optional[PaymentToken]:
    try:
        return await request_payment(session_factory, gateway, order_id)
    except PaymentError as e:
        logger.error("Payment token not issued at checkout", order_id=str(order_id), error=e.message)
        return None
    except Exception as e:
        # The order is committed and the cart cleared; it stays payable via /payment/retry
        logger.exception(
            "Payment step failed after checkout",
            order_id=str(order_id),
            error_type=type(e).__name__,
        )
        return None


def _payment_fields(token: Optional[PaymentToken]) -> Dict[str, Any]:
    return {
        "paymentUrl": token.redirect_url if token else None,
        "snapToken": token.token if token else None,
    }


@router.post("/guest", status_code=201)
async def guest_checkout(
    payload: GuestCheckoutRequest,
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Create an order for a guest, registering them as a user.

    The cart is taken from the X-Session-ID header or the session_id cookie.
    """
    session_id = get_session_id(request)
    if not session_id:
        raise ValidationError("Session not found")

    checkout = GuestCheckoutInput(
        session_id=session_id,
        customer_email=payload.email,
        customer_name=payload.full_name,
        customer_phone=payload.phone,
        address=AddressFields(
            address_label=payload.address_label,
            street_address=payload.full_address,
            village=payload.village,
            district=payload.district,
            city=payload.city,
            province=payload.province,
            postal_code=payload.postal_code,
            province_code=payload.province_code,
            regency_code=payload.regency_code,
            district_code=payload.district_code,
            village_code=payload.village_code,
        ),
        selected_courier=payload.selected_courier,
        selected_service=payload.selected_service,
        shipping_cost=payload.shipping_cost,
        customer_notes=payload.customer_notes,
    )

    result = await create_guest_order(session_factory, checkout, settings=settings)
    token = await _issue_payment(session_factory, gateway, result.order_id)

    data = result.model_dump(mode="json", by_alias=True)
    data.update(_payment_fields(token))
    return envelope(data, message="Order created")


@router.post("/authenticated", status_code=201)
async def authenticated_checkout(
    payload: AuthenticatedCheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Create an order for the signed-in user to one of their saved addresses."""
    checkout = AuthenticatedCheckoutInput(
        user_id=user.id,
        address_id=payload.address_id,
        selected_courier=payload.selected_courier,
        selected_service=payload.selected_service,
        shipping_cost=payload.shipping_cost,
        customer_notes=payload.customer_notes,
    )

    result = await create_authenticated_order(session_factory, checkout, settings=settings)
    token = await _issue_payment(session_factory, gateway, result.order_id)

    data = result.model_dump(mode="json", by_alias=True)
    data.update(_payment_fields(token))
    return envelope(data, message="Order created")
