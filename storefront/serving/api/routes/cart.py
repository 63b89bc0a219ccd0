"""
Cart API Endpoints

Cart of the signed-in user, or of the anonymous session identified by the
X-Session-ID header or session_id cookie.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.serving.api.deps import CurrentUser, get_optional_user, get_session_id
from storefront.serving.api.responses import envelope
from storefront.services.cart import add_item, get_cart_items, validate_cart

router = APIRouter()


class AddItemRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: UUID
    quantity: int = Field(default=1, ge=1)
    variant_selections: Optional[Dict[str, str]] = None


def _owner(request: Request, user: Optional[CurrentUser]) -> Dict[str, Any]:
    return {
        "session_id": get_session_id(request),
        "user_id": user.id if user else None,
    }


@router.get("")
async def get_cart(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    lines = await get_cart_items(db, **_owner(request, user))
    return envelope({
        "items": [line.model_dump(mode="json", by_alias=True) for line in lines],
        "subtotal": sum(line.line_total for line in lines),
    })


@router.post("/items", status_code=201)
async def add_cart_item(
    payload: AddItemRequest,
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    line = await add_item(
        db,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variant_selections=payload.variant_selections,
        **_owner(request, user),
    )
    return envelope(line, message="Item added to cart")


@router.get("/validate")
async def validate(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """Check the cart against current stock and prices before checkout."""
    lines = await get_cart_items(db, **_owner(request, user))
    result = await validate_cart(db, lines)
    return envelope(result)
