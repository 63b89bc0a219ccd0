"""
Unit Tests - Cart and Cart Validation
"""
import uuid

import pytest

from storefront.errors import ValidationError
from storefront.services.cart import (
    CartLine,
    CartValidationErrorType,
    add_item,
    clear_cart,
    get_cart,
    get_cart_items,
    validate_cart,
)


@pytest.fixture
async def tshirt(catalog):
    group = await catalog.group("T-Shirt")
    small = await catalog.product(group, "TS-S", price=100000, stock=5, variants={"Size": "S"})
    large = await catalog.product(group, "TS-L", price=120000, stock=1, variants={"Size": "L"})
    return group, small, large


def _types(result):
    return [issue.type for issue in result.errors]


class TestValidateCart:
    """Tests for validate_cart"""

    async def test_valid_cart(self, test_db, catalog, tshirt):
        _, small, large = tshirt
        await catalog.cart_item(small, 2, session_id="s1")
        await catalog.cart_item(large, 1, session_id="s1")

        lines = await get_cart_items(test_db, session_id="s1")
        result = await validate_cart(test_db, lines)

        assert result.valid is True
        assert result.errors == []

    async def test_inactive_product_is_unavailable(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.cart_item(small, 1, session_id="s1")
        await catalog.update_product(small.id, is_active=False)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert result.valid is False
        assert _types(result) == [CartValidationErrorType.PRODUCT_UNAVAILABLE]
        assert result.errors[0].product_id == small.id

    async def test_deleted_product_is_unavailable(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.cart_item(small, 1, session_id="s1")
        await catalog.update_product(small.id, is_deleted=True)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [CartValidationErrorType.PRODUCT_UNAVAILABLE]

    async def test_missing_product_is_unavailable(self, test_db):
        line = CartLine(product_id=uuid.uuid4(), quantity=1, price=1000, name="Ghost", sku="GHOST")

        result = await validate_cart(test_db, [line])

        assert _types(result) == [CartValidationErrorType.PRODUCT_UNAVAILABLE]

    async def test_product_of_inactive_group_is_unavailable(self, test_db, catalog):
        group = await catalog.group("Hidden", is_active=False)
        product = await catalog.product(group, "HID-1")
        await catalog.cart_item(product, 1, session_id="s1")

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [CartValidationErrorType.PRODUCT_UNAVAILABLE]

    async def test_unavailable_product_skips_other_checks(self, test_db, catalog, tshirt):
        """Test an unavailable product reports neither stock nor price"""
        _, small, _ = tshirt
        await catalog.cart_item(small, 50, session_id="s1", price=1)
        await catalog.update_product(small.id, is_active=False)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [CartValidationErrorType.PRODUCT_UNAVAILABLE]

    async def test_out_of_stock(self, test_db, catalog, tshirt):
        _, _, large = tshirt
        await catalog.cart_item(large, 3, session_id="s1")

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [CartValidationErrorType.OUT_OF_STOCK]

    async def test_price_changed(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.cart_item(small, 1, session_id="s1", price=90000)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [CartValidationErrorType.PRICE_CHANGED]
        assert "90000" in result.errors[0].message
        assert "100000" in result.errors[0].message

    async def test_stock_and_price_reported_together(self, test_db, catalog, tshirt):
        _, _, large = tshirt
        await catalog.cart_item(large, 2, session_id="s1", price=100000)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert _types(result) == [
            CartValidationErrorType.OUT_OF_STOCK,
            CartValidationErrorType.PRICE_CHANGED,
        ]

    async def test_reports_every_failing_item(self, test_db, catalog, tshirt):
        _, small, large = tshirt
        await catalog.cart_item(small, 1, session_id="s1", price=1)
        await catalog.cart_item(large, 9, session_id="s1")

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))

        assert {issue.product_id for issue in result.errors} == {small.id, large.id}

    async def test_validation_is_idempotent(self, test_db, catalog, tshirt):
        _, small, large = tshirt
        await catalog.cart_item(small, 1, session_id="s1", price=1)
        await catalog.cart_item(large, 9, session_id="s1")
        lines = await get_cart_items(test_db, session_id="s1")

        first = await validate_cart(test_db, lines)
        second = await validate_cart(test_db, lines)

        assert first == second

    async def test_sees_inventory_changes_between_calls(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.cart_item(small, 2, session_id="s1")
        lines = await get_cart_items(test_db, session_id="s1")

        assert (await validate_cart(test_db, lines)).valid is True

        await catalog.update_product(small.id, stock=1)

        assert _types(await validate_cart(test_db, lines)) == [CartValidationErrorType.OUT_OF_STOCK]

    async def test_result_serializes_valid_flag(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.cart_item(small, 1, session_id="s1", price=1)

        result = await validate_cart(test_db, await get_cart_items(test_db, session_id="s1"))
        data = result.model_dump(mode="json", by_alias=True)

        assert data["valid"] is False
        assert data["errors"][0]["type"] == "PRICE_CHANGED"
        assert data["errors"][0]["productId"] == str(small.id)


class TestCartItems:
    """Tests for cart lookup and mutation"""

    async def test_unknown_session_has_empty_cart(self, test_db):
        assert await get_cart_items(test_db, session_id="nobody") == []

    async def test_cart_without_owner_is_rejected(self, test_db):
        with pytest.raises(ValidationError):
            await get_cart_items(test_db)

    async def test_user_cart_is_separate_from_session_cart(self, test_db, catalog, tshirt):
        _, small, large = tshirt
        user = await catalog.user()
        await catalog.cart_item(small, 1, session_id="s1")
        await catalog.cart_item(large, 1, user_id=user.id)

        user_lines = await get_cart_items(test_db, user_id=user.id)

        assert [line.product_id for line in user_lines] == [large.id]

    async def test_add_item_creates_cart_and_captures_product(self, test_db, tshirt):
        group, small, _ = tshirt

        line = await add_item(test_db, product_id=small.id, quantity=2, session_id="s1")

        assert line.price == 100000
        assert line.sku == "TS-S"
        assert line.thumbnail_url == group.thumbnail_url
        assert line.line_total == 200000
        assert await get_cart(test_db, session_id="s1") is not None

    async def test_add_item_twice_increments_quantity(self, test_db, tshirt):
        _, small, _ = tshirt

        await add_item(test_db, product_id=small.id, quantity=2, session_id="s1")
        line = await add_item(test_db, product_id=small.id, quantity=1, session_id="s1")

        assert line.quantity == 3
        assert len(await get_cart_items(test_db, session_id="s1")) == 1

    async def test_add_item_beyond_stock_is_rejected(self, test_db, tshirt):
        _, _, large = tshirt

        with pytest.raises(ValidationError):
            await add_item(test_db, product_id=large.id, quantity=2, session_id="s1")

    async def test_add_item_with_matching_variants(self, test_db, tshirt):
        _, _, large = tshirt

        line = await add_item(
            test_db, product_id=large.id, variant_selections={"Size": "L"}, session_id="s1"
        )

        assert line.variant_selections == {"Size": "L"}

    async def test_add_item_with_mismatched_variants_is_rejected(self, test_db, tshirt):
        _, small, _ = tshirt

        with pytest.raises(ValidationError, match="Invalid variant combination"):
            await add_item(
                test_db, product_id=small.id, variant_selections={"Size": "L"}, session_id="s1"
            )

    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_add_item_rejects_non_positive_quantity(self, test_db, tshirt, quantity):
        _, small, _ = tshirt

        with pytest.raises(ValidationError):
            await add_item(test_db, product_id=small.id, quantity=quantity, session_id="s1")

    async def test_add_inactive_product_is_rejected(self, test_db, catalog, tshirt):
        _, small, _ = tshirt
        await catalog.update_product(small.id, is_active=False)

        with pytest.raises(ValidationError):
            await add_item(test_db, product_id=small.id, session_id="s1")

    async def test_clear_cart_removes_all_items(self, test_db, catalog, tshirt):
        _, small, large = tshirt
        await catalog.cart_item(small, 1, session_id="s1")
        await catalog.cart_item(large, 1, session_id="s1")
        cart = await get_cart(test_db, session_id="s1")

        removed = await clear_cart(test_db, cart.id)

        assert removed == 2
        assert await get_cart_items(test_db, session_id="s1") == []
