"""
Shipping Rates

Flat courier rate table, charged per started kilogram.
"""

import math
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.errors import ValidationError


class ShippingOption(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    courier: str
    service: str
    description: str
    cost: int
    etd: str


# (courier, service, description, cost per kg, estimated days)
RATE_TABLE = [
    ("JNE", "REG", "Regular Service", 15000, "2-3"),
    ("JNE", "YES", "Yakin Esok Sampai", 25000, "1"),
    ("SiCepat", "REG", "Regular", 12000, "2-3"),
    ("SiCepat", "BEST", "Besok Sampai Tujuan", 22000, "1"),
    ("J&T", "EZ", "Regular", 14000, "2-3"),
]


def get_shipping_options(
    destination_regency_code: Optional[str],
    weight_in_grams: int,
) -> List[ShippingOption]:
    """
    Rates for every courier service to a destination.

    Raises:
        ValidationError: Missing destination or non-positive weight
    """
    if not destination_regency_code:
        raise ValidationError("Destination is required")
    if weight_in_grams is None or weight_in_grams <= 0:
        raise ValidationError("Weight must be positive")

    kilograms = math.ceil(weight_in_grams / 1000)

    return [
        ShippingOption(
            courier=courier,
            service=service,
            description=description,
            cost=rate * kilograms,
            etd=etd,
        )
        for courier, service, description, rate, etd in RATE_TABLE
    ]
