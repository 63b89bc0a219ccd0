"""
Products API Endpoints

Variant availability and variant-to-SKU resolution for the product page.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.serving.api.responses import envelope
from storefront.serving.cache import products_cache
from storefront.services.variants import (
    find_product_by_variants,
    get_valid_variant_combinations,
    parse_group_id,
)

router = APIRouter()


class FindByVariantsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    variant_selections: Dict[str, str]


class ProductMatch(BaseModel):
    """SKU resolved from a variant selection"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    product_group_id: UUID
    sku: str
    name: str
    price: int
    stock: int
    is_active: bool


@router.get("/{group_id}/valid-combinations")
async def get_valid_combinations(
    group_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """
    Variant combinations of a product group with per-value availability.

    Cached briefly in Redis; stock changes show up within the cache TTL.
    """
    parsed_id = parse_group_id(group_id)
    cache_key = f"valid-combinations:{parsed_id}"

    cached = await products_cache.get(cache_key)
    if cached is not None:
        return envelope(cached)

    combinations = await get_valid_variant_combinations(db, parsed_id)
    data = combinations.model_dump(mode="json", by_alias=True)
    await products_cache.set(cache_key, data)

    return envelope(data)


@router.post("/{group_id}/find-by-variants")
async def find_by_variants(
    group_id: str,
    payload: FindByVariantsRequest,
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """SKU matching a full variant selection; data is null when none matches."""
    product = await find_product_by_variants(db, group_id, payload.variant_selections)

    match: Optional[ProductMatch] = ProductMatch.model_validate(product) if product else None
    return envelope(match)
