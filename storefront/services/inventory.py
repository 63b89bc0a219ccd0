"""
Inventory Query Layer

Read access to product groups, variants and SKUs, shared by the variant
engine, cart validation and order creation. Every function takes the
session it runs in.
"""

from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import (
    Product,
    ProductGroup,
    ProductVariant,
    ProductVariantCombination,
)


async def get_product(session: AsyncSession, product_id: UUID) -> Optional[Product]:
    """Product by id, including inactive and soft-deleted rows."""
    result = await session.execute(select(Product).where(Product.id == product_id))
    return result.scalar_one_or_none()


async def get_products(
    session: AsyncSession,
    product_ids: Iterable[UUID],
) -> Dict[UUID, Product]:
    """Products by id in one round trip; missing ids are absent from the map."""
    ids = list(set(product_ids))
    if not ids:
        return {}

    result = await session.execute(
        select(Product)
        .where(Product.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {product.id: product for product in result.scalars().all()}


async def get_product_groups(
    session: AsyncSession,
    group_ids: Iterable[UUID],
) -> Dict[UUID, ProductGroup]:
    ids = list(set(group_ids))
    if not ids:
        return {}

    result = await session.execute(select(ProductGroup).where(ProductGroup.id.in_(ids)))
    return {group.id: group for group in result.scalars().all()}


async def get_product_group(session: AsyncSession, group_id: UUID) -> Optional[ProductGroup]:
    """Product group by id, ignoring soft-deleted groups."""
    result = await session.execute(
        select(ProductGroup).where(
            ProductGroup.id == group_id,
            ProductGroup.is_deleted == False,
        )
    )
    return result.scalar_one_or_none()


async def get_active_products(session: AsyncSession, group_id: UUID) -> List[Product]:
    """Active, non-deleted products of a group in insertion order."""
    result = await session.execute(
        select(Product)
        .where(
            Product.product_group_id == group_id,
            Product.is_active == True,
            Product.is_deleted == False,
        )
        .order_by(Product.created_at, Product.sku)
    )
    return list(result.scalars().all())


async def get_group_variants(session: AsyncSession, group_id: UUID) -> List[ProductVariant]:
    """Active, non-deleted variants of a group in insertion order."""
    result = await session.execute(
        select(ProductVariant)
        .where(
            ProductVariant.product_group_id == group_id,
            ProductVariant.is_active == True,
            ProductVariant.is_deleted == False,
        )
        .order_by(ProductVariant.created_at, ProductVariant.variant, ProductVariant.value)
    )
    return list(result.scalars().all())


async def get_product_group_variants(
    session: AsyncSession,
    group_id: UUID,
) -> List[Tuple[str, str, UUID]]:
    """
    (axis, value, product_id) rows of a group, joined through the
    combination table, in insertion order of the combination rows.
    """
    result = await session.execute(
        select(
            ProductVariant.variant,
            ProductVariant.value,
            ProductVariantCombination.product_id,
        )
        .select_from(ProductVariantCombination)
        .join(ProductVariant, ProductVariant.id == ProductVariantCombination.variant_id)
        .where(
            ProductVariant.product_group_id == group_id,
            ProductVariant.is_active == True,
            ProductVariant.is_deleted == False,
        )
        .order_by(ProductVariantCombination.created_at, ProductVariant.variant)
    )
    return [(row.variant, row.value, row.product_id) for row in result.all()]


async def reserve_stock(session: AsyncSession, product_id: UUID, quantity: int) -> bool:
    """
    Conditionally decrement stock.

    Returns:
        False when fewer than `quantity` units are left (no row updated)
    """
    result = await session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
