"""
Admin API Endpoints

Back-office order management: listing with filters, CSV export, status
changes and internal notes. Admin or super admin role required.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database.connection import get_db_dependency, get_session_factory
from storefront.serving.api.deps import CurrentUser, require_admin
from storefront.serving.api.responses import envelope
from storefront.services.orders import (
    OrderFilters,
    count_orders,
    export_orders_csv,
    get_orders,
    get_orders_for_export,
    update_admin_notes,
)
from storefront.services.status import StatusUpdate, update_status

router = APIRouter()


class AdminNotesRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    admin_notes: Optional[str] = None


@router.get("/orders")
async def list_orders(
    search: Optional[str] = None,
    order_status: Optional[str] = Query(None, alias="orderStatus"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """
    List orders with pagination and filtering.

    Supports filtering by:
    - Order number or customer name (search)
    - Order status
    - Payment status
    """
    filters = OrderFilters(
        search=search,
        order_status=order_status,
        payment_status=payment_status,
        page=page,
        page_size=page_size,
    )

    orders = await get_orders(db, filters)
    total = await count_orders(db, filters)

    return envelope({
        "orders": [order.model_dump(mode="json", by_alias=True) for order in orders],
        "pagination": {
            "page": page,
            "pageSize": page_size,
            "total": total,
            "totalPages": (total + page_size - 1) // page_size,
        },
    })


@router.get("/orders/export")
async def export_orders(
    search: Optional[str] = None,
    order_status: Optional[str] = Query(None, alias="orderStatus"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_dependency),
) -> Response:
    """CSV export, one row per order item."""
    filters = OrderFilters(search=search, order_status=order_status, payment_status=payment_status)
    rows = await get_orders_for_export(db, filters)

    filename = f"orders-{datetime.now():%Y%m%d}.csv"
    return Response(
        content=export_orders_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.patch("/orders/{order_id}/status")
async def change_order_status(
    order_id: UUID,
    payload: StatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Dict[str, Any]:
    order = await update_status(session_factory, order_id, payload)
    return envelope(order, message="Order status updated")


@router.patch("/orders/{order_id}/notes")
async def change_admin_notes(
    order_id: UUID,
    payload: AdminNotesRequest,
    admin: CurrentUser = Depends(require_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Dict[str, Any]:
    order = await update_admin_notes(session_factory, order_id, payload.admin_notes)
    return envelope(order, message="Admin notes updated")
