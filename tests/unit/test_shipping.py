"""
Unit Tests - Shipping Rates
"""
import pytest

from storefront.errors import ValidationError
from storefront.services.shipping import RATE_TABLE, get_shipping_options


class TestShippingOptions:
    """Tests for get_shipping_options"""

    def test_one_option_per_service(self):
        options = get_shipping_options("31.71", 500)

        assert len(options) == len(RATE_TABLE)
        assert {(o.courier, o.service) for o in options} >= {("JNE", "REG"), ("SiCepat", "BEST")}

    @pytest.mark.parametrize("weight,kilograms", [(1, 1), (1000, 1), (1001, 2), (2500, 3)])
    def test_cost_per_started_kilogram(self, weight, kilograms):
        options = get_shipping_options("31.71", weight)

        jne_reg = next(o for o in options if o.courier == "JNE" and o.service == "REG")
        assert jne_reg.cost == 15000 * kilograms

    def test_serializes_with_camel_case(self):
        option = get_shipping_options("31.71", 1000)[0]

        assert set(option.model_dump(by_alias=True)) == {
            "courier", "service", "description", "cost", "etd"
        }

    @pytest.mark.parametrize("destination", [None, ""])
    def test_missing_destination(self, destination):
        with pytest.raises(ValidationError, match="Destination"):
            get_shipping_options(destination, 1000)

    @pytest.mark.parametrize("weight", [0, -5])
    def test_non_positive_weight(self, weight):
        with pytest.raises(ValidationError, match="Weight"):
            get_shipping_options("31.71", weight)
