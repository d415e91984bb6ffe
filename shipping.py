"""
Shipping cost estimator

Billable weight is the greater of the actual weight and the volumetric
weight (l x w x h / 6000), both rounded up to whole kilograms with a floor of
1 kg. Cost comes from a static rate card per (courier, service).
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from errors import CapacityExceededError, RateNotFoundError, ValidationError

VOLUMETRIC_DIVISOR = 6000
DEFAULT_DIMENSION_CM = 10


class Dimensions(BaseModel):
    l: float = Field(..., gt=0, description="Length in cm")
    w: float = Field(..., gt=0, description="Width in cm")
    h: float = Field(..., gt=0, description="Height in cm")


class RateCard(BaseModel):
    courier: str
    service: str
    base_kg: int = Field(..., ge=1)
    base_price: int = Field(..., ge=0)
    addl_kg_price: int = Field(..., ge=0)
    max_kg: Optional[int] = Field(None, ge=1)
    lead_time_days: Optional[Tuple[int, int]] = None
    coverage_areas: Optional[List[str]] = None


class ShippingQuote(BaseModel):
    cost: int
    billable_weight_kg: int
    rate: RateCard


DEFAULT_RATE_CARDS: List[RateCard] = [
    RateCard(courier="JNE", service="REG", base_kg=1, base_price=20000, addl_kg_price=8000,
             lead_time_days=(2, 4)),
    RateCard(courier="JNE", service="YES", base_kg=1, base_price=38000, addl_kg_price=9000,
             lead_time_days=(1, 1)),
    RateCard(courier="SiCepat", service="REG", base_kg=1, base_price=22000, addl_kg_price=8500,
             lead_time_days=(2, 3)),
]


def billable_weight_kg(weight_gram: float, dims: Dimensions) -> int:
    actual_kg = max(1, math.ceil(weight_gram / 1000))
    volumetric_kg = max(1, math.ceil((dims.l * dims.w * dims.h) / VOLUMETRIC_DIVISOR))
    return max(actual_kg, volumetric_kg)


def calculate_shipping(weight_gram: float, dims: Dimensions, rate: RateCard) -> int:
    billable_kg = billable_weight_kg(weight_gram, dims)

    if rate.max_kg is not None and billable_kg > rate.max_kg:
        raise CapacityExceededError(
            f"Parcel of {billable_kg} kg exceeds the {rate.max_kg} kg limit of {rate.courier} {rate.service}"
        )

    if billable_kg <= rate.base_kg:
        return rate.base_price
    return rate.base_price + (billable_kg - rate.base_kg) * rate.addl_kg_price


def find_rate(courier: str, service: str, rate_cards: Optional[Iterable[RateCard]] = None) -> RateCard:
    for candidate in rate_cards if rate_cards is not None else DEFAULT_RATE_CARDS:
        if candidate.courier == courier and candidate.service == service:
            return candidate
    raise RateNotFoundError(f"No rate for {courier} {service}")


def estimate_shipping(weight_gram: float, dims: Dimensions, courier: str, service: str,
                      rate_cards: Optional[Iterable[RateCard]] = None) -> ShippingQuote:
    rate = find_rate(courier, service, rate_cards)
    return ShippingQuote(
        cost=calculate_shipping(weight_gram, dims, rate),
        billable_weight_kg=billable_weight_kg(weight_gram, dims),
        rate=rate,
    )


def parse_logistic(value: str) -> Tuple[str, str]:
    """Split a ``"COURIER|SERVICE"`` option into its two parts."""
    courier, _, service = (value or "").partition("|")
    courier, service = courier.strip(), service.strip()
    if not courier or not service:
        raise ValidationError("Invalid courier option")
    return courier, service


def parcel_for(products: Sequence[dict], quantities: Sequence[int]) -> Tuple[int, Dimensions]:
    """Total weight and a stacked bounding box for a set of products.

    Items are stacked on top of each other: the box takes the largest
    footprint and the summed height. Missing dimensions count as 10 cm.
    """
    weight = 0
    length = width = height = 0.0
    for product, qty in zip(products, quantities):
        weight += int(product.get("weight_gram") or 0) * qty
        length = max(length, product.get("length_cm") or DEFAULT_DIMENSION_CM)
        width = max(width, product.get("width_cm") or DEFAULT_DIMENSION_CM)
        height += (product.get("height_cm") or DEFAULT_DIMENSION_CM) * qty
    if not products:
        length = width = height = DEFAULT_DIMENSION_CM
    return weight, Dimensions(l=length, w=width, h=height)
