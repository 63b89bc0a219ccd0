"""
Cart Service

Session/user carts and the pre-checkout validation step.

validate_cart() is a pure read-then-compare step: it reports every problem
it finds as a structured result instead of raising on the first one, and it
can be run any number of times without side effects. Order creation runs it
again inside its own transaction.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Cart, CartItem, utcnow
from storefront.errors import ValidationError
from storefront.services import inventory
from storefront.services.variants import find_product_by_variants

logger = structlog.get_logger(__name__)


class CartValidationErrorType(str, Enum):
    """Kinds of cart validation failures"""
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    PRICE_CHANGED = "PRICE_CHANGED"


class CartLine(BaseModel):
    """Cart item as seen by checkout, with the values captured at add-time"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_id: UUID
    quantity: int = Field(ge=1)
    price: int
    name: str
    sku: str
    thumbnail_url: Optional[str] = None
    variant_selections: Dict[str, str] = Field(default_factory=dict)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    @classmethod
    def from_item(cls, item: CartItem) -> "CartLine":
        return cls(
            product_id=item.product_id,
            quantity=item.quantity,
            price=item.unit_price,
            name=item.product_name,
            sku=item.product_sku,
            thumbnail_url=item.thumbnail_url,
            variant_selections=item.variant_selections or {},
        )


class CartValidationIssue(BaseModel):
    """Single validation failure"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: CartValidationErrorType
    message: str
    product_id: UUID


class CartValidationResult(BaseModel):
    """Validation outcome; valid iff errors is empty"""
    errors: List[CartValidationIssue] = Field(default_factory=list)

    @computed_field
    @property
    def valid(self) -> bool:
        return not self.errors


async def validate_cart(
    session: AsyncSession,
    items: Sequence[CartLine],
) -> CartValidationResult:
    """
    Check cart lines against current inventory.

    Reports, per line:
    - PRODUCT_UNAVAILABLE: product missing, inactive or soft-deleted, or its
      group is
    - OUT_OF_STOCK: current stock below the requested quantity
    - PRICE_CHANGED: current price differs from the captured price

    Args:
        session: Database session
        items: Cart lines to check

    Returns:
        CartValidationResult with every issue found
    """
    products = await inventory.get_products(session, [item.product_id for item in items])
    groups = await inventory.get_product_groups(
        session, [product.product_group_id for product in products.values()]
    )

    errors: List[CartValidationIssue] = []
    for item in items:
        product = products.get(item.product_id)
        group = groups.get(product.product_group_id) if product else None

        if (
            product is None
            or not product.is_available
            or group is None
            or not group.is_active
            or group.is_deleted
        ):
            errors.append(CartValidationIssue(
                type=CartValidationErrorType.PRODUCT_UNAVAILABLE,
                message=f"{item.name} is no longer available",
                product_id=item.product_id,
            ))
            continue

        if product.stock < item.quantity:
            errors.append(CartValidationIssue(
                type=CartValidationErrorType.OUT_OF_STOCK,
                message=f"Only {product.stock} left of {item.name}, {item.quantity} requested",
                product_id=item.product_id,
            ))

        if product.price != item.price:
            errors.append(CartValidationIssue(
                type=CartValidationErrorType.PRICE_CHANGED,
                message=f"Price of {item.name} changed from {item.price} to {product.price}",
                product_id=item.product_id,
            ))

    if errors:
        logger.info(
            "Cart validation failed",
            items=len(items),
            errors=[issue.type.value for issue in errors],
        )

    return CartValidationResult(errors=errors)


def _cart_owner_clause(session_id: Optional[str], user_id: Optional[UUID]) -> Any:
    if user_id is not None:
        return Cart.user_id == user_id
    if session_id:
        return Cart.session_id == session_id
    raise ValidationError("Cart session not found")


async def get_cart(
    session: AsyncSession,
    *,
    session_id: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> Optional[Cart]:
    """Cart of a signed-in user, or else of an anonymous session."""
    result = await session.execute(
        select(Cart)
        .where(_cart_owner_clause(session_id, user_id))
        .order_by(Cart.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_cart_lines(session: AsyncSession, cart_id: UUID) -> List[CartLine]:
    result = await session.execute(
        select(CartItem)
        .where(CartItem.cart_id == cart_id)
        .order_by(CartItem.created_at)
    )
    return [CartLine.from_item(item) for item in result.scalars().all()]


async def get_cart_items(
    session: AsyncSession,
    *,
    session_id: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> List[CartLine]:
    """Items of the caller's cart; an unknown cart is an empty one."""
    cart = await get_cart(session, session_id=session_id, user_id=user_id)
    if cart is None:
        return []
    return await get_cart_lines(session, cart.id)


async def add_item(
    session: AsyncSession,
    *,
    product_id: UUID,
    quantity: int = 1,
    variant_selections: Optional[Dict[str, str]] = None,
    session_id: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> CartLine:
    """
    Add a product to the caller's cart, creating the cart on first use.

    Price, name, SKU and thumbnail are captured now. Adding a product that
    is already in the cart raises its quantity.

    Raises:
        ValidationError: Bad quantity, unavailable product, not enough
            stock, or variant selections that do not resolve to this product
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    product = await inventory.get_product(session, product_id)
    group = await inventory.get_product_group(session, product.product_group_id) if product else None
    if product is None or not product.is_available or group is None or not group.is_active:
        raise ValidationError("Product is not available")

    if variant_selections:
        matched = await find_product_by_variants(session, group.id, variant_selections)
        if matched is None or matched.id != product.id:
            raise ValidationError("Invalid variant combination")

    cart = await get_cart(session, session_id=session_id, user_id=user_id)
    if cart is None:
        cart = Cart(session_id=session_id if user_id is None else None, user_id=user_id)
        session.add(cart)
        await session.flush()

    result = await session.execute(
        select(CartItem).where(CartItem.cart_id == cart.id, CartItem.product_id == product.id)
    )
    item = result.scalar_one_or_none()
    new_quantity = quantity + (item.quantity if item else 0)

    if new_quantity > product.stock:
        raise ValidationError(f"Only {product.stock} left of {product.name}")

    if item is None:
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            quantity=new_quantity,
            variant_selections=dict(variant_selections or {}),
            unit_price=product.price,
            product_name=product.name,
            product_sku=product.sku,
            thumbnail_url=group.thumbnail_url,
        )
        session.add(item)
    else:
        item.quantity = new_quantity
        item.unit_price = product.price

    cart.last_activity_at = utcnow()
    await session.flush()

    logger.info(
        "Cart item added",
        cart_id=str(cart.id),
        product_id=str(product.id),
        quantity=new_quantity,
    )
    return CartLine.from_item(item)


async def clear_cart(session: AsyncSession, cart_id: UUID) -> int:
    """Delete every item of a cart; returns the number of items removed."""
    result = await session.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    return result.rowcount
