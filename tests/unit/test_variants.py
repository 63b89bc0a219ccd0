"""
Unit Tests - Variant Availability Engine
"""
import uuid

import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.services.variants import (
    find_product_by_variants,
    get_valid_variant_combinations,
    parse_group_id,
)


@pytest.fixture
async def phone(catalog):
    """Color x Storage grid: one SKU sold out, one inactive, one deleted"""
    group = await catalog.group("Phone X")
    products = {
        "black-128": await catalog.product(
            group, "PX-BLK-128", price=9000000, stock=5,
            variants={"Color": "Black", "Storage": "128GB"},
        ),
        "black-256": await catalog.product(
            group, "PX-BLK-256", price=11000000, stock=2,
            variants={"Color": "Black", "Storage": "256GB"},
        ),
        "white-128": await catalog.product(
            group, "PX-WHT-128", price=9000000, stock=3, is_active=False,
            variants={"Color": "White", "Storage": "128GB"},
        ),
        "white-256": await catalog.product(
            group, "PX-WHT-256", price=11000000, stock=0,
            variants={"Color": "White", "Storage": "256GB"},
        ),
        "blue-128": await catalog.product(
            group, "PX-BLU-128", price=9000000, stock=8, is_deleted=True,
            variants={"Color": "Blue", "Storage": "128GB"},
        ),
    }
    return group, products


class TestValidVariantCombinations:
    """Tests for get_valid_variant_combinations"""

    async def test_one_combination_per_active_product(self, test_db, phone):
        """Test inactive and deleted SKUs are left out"""
        group, products = phone

        result = await get_valid_variant_combinations(test_db, group.id)

        ids = {combo.product_id for combo in result.combinations}
        assert ids == {
            products["black-128"].id,
            products["black-256"].id,
            products["white-256"].id,
        }

    async def test_combination_carries_full_variant_map(self, test_db, phone):
        group, products = phone

        result = await get_valid_variant_combinations(test_db, group.id)

        combo = next(c for c in result.combinations if c.product_id == products["black-256"].id)
        assert combo.variants == {"Color": "Black", "Storage": "256GB"}
        assert combo.price == 11000000
        assert combo.stock == 2
        assert combo.is_active is True

    async def test_availability_requires_stock_on_an_active_product(self, test_db, phone):
        """Test a value is available iff some active SKU with it has stock"""
        group, _ = phone

        result = await get_valid_variant_combinations(test_db, group.id)

        assert result.availability_map["Color"]["Black"] is True
        # White: one SKU inactive, the other sold out
        assert result.availability_map["Color"]["White"] is False
        assert result.availability_map["Storage"]["128GB"] is True
        assert result.availability_map["Storage"]["256GB"] is True

    async def test_variant_types_in_first_seen_order(self, test_db, phone):
        group, _ = phone

        result = await get_valid_variant_combinations(test_db, group.id)

        assert result.variant_types == ["Color", "Storage"]

    async def test_value_without_products_is_unavailable(self, test_db, catalog, phone):
        group, _ = phone
        await catalog.variant(group, "Color", "Red")

        result = await get_valid_variant_combinations(test_db, group.id)

        assert result.availability_map["Color"]["Red"] is False

    async def test_serializes_with_camel_case_keys(self, test_db, phone):
        group, _ = phone

        result = await get_valid_variant_combinations(test_db, group.id)
        data = result.model_dump(mode="json", by_alias=True)

        assert set(data) == {"variantTypes", "combinations", "availabilityMap"}
        assert "productId" in data["combinations"][0]

    async def test_group_without_variants(self, test_db, catalog):
        """Test a single-SKU group has one combination with an empty map"""
        group = await catalog.group("Cable")
        product = await catalog.product(group, "CBL-1", stock=1)

        result = await get_valid_variant_combinations(test_db, group.id)

        assert result.variant_types == []
        assert result.availability_map == {}
        assert [c.product_id for c in result.combinations] == [product.id]
        assert result.combinations[0].variants == {}

    async def test_unknown_group_raises_not_found(self, test_db):
        with pytest.raises(NotFoundError):
            await get_valid_variant_combinations(test_db, uuid.uuid4())

    async def test_deleted_group_raises_not_found(self, test_db, catalog):
        group = await catalog.group("Old Phone", is_deleted=True)

        with pytest.raises(NotFoundError):
            await get_valid_variant_combinations(test_db, group.id)

    @pytest.mark.parametrize("group_id", [None, "", "   ", "not-a-uuid"])
    async def test_missing_or_malformed_id_raises_validation_error(self, test_db, group_id):
        with pytest.raises(ValidationError):
            await get_valid_variant_combinations(test_db, group_id)


class TestFindProductByVariants:
    """Tests for find_product_by_variants"""

    async def test_exact_selection_resolves_product(self, test_db, phone):
        group, products = phone

        product = await find_product_by_variants(
            test_db, group.id, {"Color": "Black", "Storage": "256GB"}
        )

        assert product is not None
        assert product.id == products["black-256"].id

    async def test_string_group_id_is_accepted(self, test_db, phone):
        group, products = phone

        product = await find_product_by_variants(
            test_db, str(group.id), {"Storage": "128GB", "Color": "Black"}
        )

        assert product.id == products["black-128"].id

    async def test_partial_selection_never_matches(self, test_db, phone):
        group, _ = phone

        product = await find_product_by_variants(test_db, group.id, {"Color": "Black"})

        assert product is None

    async def test_unknown_axis_never_matches(self, test_db, phone):
        group, _ = phone

        product = await find_product_by_variants(
            test_db, group.id, {"Color": "Black", "Storage": "128GB", "Size": "XL"}
        )

        assert product is None

    async def test_unknown_value_returns_none(self, test_db, phone):
        group, _ = phone

        product = await find_product_by_variants(
            test_db, group.id, {"Color": "Gold", "Storage": "128GB"}
        )

        assert product is None

    async def test_inactive_product_is_not_resolved(self, test_db, phone):
        group, _ = phone

        product = await find_product_by_variants(
            test_db, group.id, {"Color": "White", "Storage": "128GB"}
        )

        assert product is None

    async def test_sold_out_product_still_resolves(self, test_db, phone):
        """Test resolution does not depend on stock"""
        group, products = phone

        product = await find_product_by_variants(
            test_db, group.id, {"Color": "White", "Storage": "256GB"}
        )

        assert product.id == products["white-256"].id

    async def test_ambiguous_selection_returns_first_product(self, test_db, catalog):
        group = await catalog.group("Mug")
        first = await catalog.product(group, "MUG-A", variants={"Color": "Red"})
        await catalog.product(group, "MUG-B", variants={"Color": "Red"})

        product = await find_product_by_variants(test_db, group.id, {"Color": "Red"})

        assert product.id == first.id

    @pytest.mark.parametrize("selections", [{}, None, "Black", ["Black"], {"Color": 1}])
    async def test_malformed_selection_raises_validation_error(self, test_db, phone, selections):
        group, _ = phone

        with pytest.raises(ValidationError):
            await find_product_by_variants(test_db, group.id, selections)

    async def test_unknown_group_raises_not_found(self, test_db):
        with pytest.raises(NotFoundError):
            await find_product_by_variants(test_db, uuid.uuid4(), {"Color": "Black"})


class TestParseGroupId:
    """Tests for parse_group_id"""

    def test_uuid_passthrough(self):
        group_id = uuid.uuid4()
        assert parse_group_id(group_id) is group_id

    def test_string_is_stripped_and_parsed(self):
        group_id = uuid.uuid4()
        assert parse_group_id(f"  {group_id} ") == group_id
