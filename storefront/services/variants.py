"""
Variant Availability Engine

Given a product group, computes which variant-value combinations can be
bought and resolves a full variant selection to the matching SKU.

Example:
    combos = await get_valid_variant_combinations(session, group_id)
    combos.availability_map["Color"]["Black"]  # True if any Black SKU is in stock

    product = await find_product_by_variants(
        session, group_id, {"Color": "Black", "Storage": "256GB"}
    )
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Product
from storefront.errors import NotFoundError, ValidationError
from storefront.services import inventory

logger = structlog.get_logger(__name__)


class VariantCombination(BaseModel):
    """One purchasable SKU with its full axis -> value map"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: UUID
    variants: Dict[str, str]
    price: int
    stock: int
    is_active: bool


class ValidVariantCombinations(BaseModel):
    """Variant combinations and per-value availability of a product group"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    variant_types: List[str]
    combinations: List[VariantCombination]
    availability_map: Dict[str, Dict[str, bool]]


@dataclass
class _GroupCatalog:
    variant_types: List[str]
    values: Dict[str, List[str]]
    products: List[Product]
    product_variants: Dict[UUID, Dict[str, str]]


def parse_group_id(product_group_id: Union[UUID, str, None]) -> UUID:
    """Normalize a product group id, rejecting missing or malformed ids."""
    if isinstance(product_group_id, UUID):
        return product_group_id
    if product_group_id is None or not str(product_group_id).strip():
        raise ValidationError("Product group id is required")
    try:
        return UUID(str(product_group_id).strip())
    except ValueError:
        raise ValidationError("Invalid product group id")


async def _load_group(session: AsyncSession, product_group_id: Union[UUID, str, None]) -> _GroupCatalog:
    group_id = parse_group_id(product_group_id)

    group = await inventory.get_product_group(session, group_id)
    if group is None:
        raise NotFoundError("Product group not found")

    variants = await inventory.get_group_variants(session, group_id)
    products = await inventory.get_active_products(session, group_id)
    rows = await inventory.get_product_group_variants(session, group_id)

    values: Dict[str, List[str]] = {}
    for variant in variants:
        axis_values = values.setdefault(variant.variant, [])
        if variant.value not in axis_values:
            axis_values.append(variant.value)

    product_variants: Dict[UUID, Dict[str, str]] = {product.id: {} for product in products}
    for axis, value, product_id in rows:
        combination = product_variants.get(product_id)
        if combination is None:
            continue
        if axis in combination and combination[axis] != value:
            logger.warning(
                "Conflicting variant rows for product",
                product_id=str(product_id),
                axis=axis,
                kept=combination[axis],
                ignored=value,
            )
            continue
        combination[axis] = value

    return _GroupCatalog(
        variant_types=list(values),
        values=values,
        products=products,
        product_variants=product_variants,
    )


async def get_valid_variant_combinations(
    session: AsyncSession,
    product_group_id: Union[UUID, str, None],
) -> ValidVariantCombinations:
    """
    Compute the variant combinations of a product group.

    Args:
        session: Database session
        product_group_id: Group to inspect

    Returns:
        variant_types, one combination per active SKU, and an availability
        map telling for every axis value whether some active SKU carrying it
        has stock

    Raises:
        ValidationError: Missing or malformed group id
        NotFoundError: Group does not exist
    """
    catalog = await _load_group(session, product_group_id)

    availability_map: Dict[str, Dict[str, bool]] = {
        axis: {value: False for value in axis_values}
        for axis, axis_values in catalog.values.items()
    }

    combinations = []
    for product in catalog.products:
        variants = catalog.product_variants[product.id]
        for axis, value in variants.items():
            if product.stock > 0:
                availability_map.setdefault(axis, {})[value] = True

        combinations.append(
            VariantCombination(
                product_id=product.id,
                variants=dict(variants),
                price=product.price,
                stock=product.stock,
                is_active=product.is_active,
            )
        )

    logger.debug(
        "Computed variant combinations",
        product_group_id=str(product_group_id),
        variant_types=catalog.variant_types,
        combinations=len(combinations),
    )

    return ValidVariantCombinations(
        variant_types=catalog.variant_types,
        combinations=combinations,
        availability_map=availability_map,
    )


def _validate_selections(selections: Any) -> Dict[str, str]:
    if not isinstance(selections, Mapping) or not selections:
        raise ValidationError("Invalid variant selections")

    for axis, value in selections.items():
        if not isinstance(axis, str) or not isinstance(value, str):
            raise ValidationError("Invalid variant selections")

    return dict(selections)


async def find_product_by_variants(
    session: AsyncSession,
    product_group_id: Union[UUID, str, None],
    selections: Any,
) -> Optional[Product]:
    """
    Resolve a variant selection to the single matching SKU.

    The selection must name a value for every axis of the group and no
    other axis; partial selections never match.

    Returns:
        The matching product, or None when nothing matches

    Raises:
        ValidationError: Selection is empty or not a str -> str mapping
        NotFoundError: Group does not exist
    """
    wanted = _validate_selections(selections)
    catalog = await _load_group(session, product_group_id)

    if set(wanted) != set(catalog.variant_types):
        return None

    matches = [
        product
        for product in catalog.products
        if catalog.product_variants[product.id] == wanted
    ]

    if not matches:
        return None

    if len(matches) > 1:
        logger.warning(
            "Variant selection matches several products, using the first",
            product_group_id=str(product_group_id),
            selections=wanted,
            product_ids=[str(p.id) for p in matches],
        )

    return matches[0]
