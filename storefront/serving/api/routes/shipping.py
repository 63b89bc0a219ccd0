"""
Shipping API Endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.serving.api.responses import envelope
from storefront.services.shipping import get_shipping_options

router = APIRouter()


class ShippingRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    destination_regency_code: str
    weight_in_grams: int


@router.post("/calculate")
async def calculate_shipping(payload: ShippingRequest) -> Dict[str, Any]:
    options = get_shipping_options(payload.destination_regency_code, payload.weight_in_grams)
    return envelope(options, message="Shipping options calculated")
