"""
Orders API Endpoints

Order history and order detail for the signed-in customer.
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.errors import AuthorizationError, NotFoundError
from storefront.serving.api.deps import CurrentUser, get_current_user
from storefront.serving.api.responses import envelope
from storefront.services.orders import get_order_by_id, get_user_orders

router = APIRouter()


@router.get("")
async def list_my_orders(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """Orders of the caller, newest first."""
    orders = await get_user_orders(db, user.id)
    return envelope(orders)


@router.get("/{order_id}")
async def get_order(
    order_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """
    Order detail with items. Only the owner or an admin may read it.
    """
    order = await get_order_by_id(db, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    if order.user_id != user.id and not user.is_admin:
        raise AuthorizationError("Not allowed to view this order", status_code=403)

    return envelope(order)
