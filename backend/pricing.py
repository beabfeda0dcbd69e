"""
Cart pricing.

Every figure is derived from its inputs on each call; nothing is cached, so a
change to the cart, coupon, fulfillment method or gift flag is reflected the
next time the totals are read.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from backend.schemas import Location

GIFT_FEE = 10


class PricedLine(Protocol):
    price: float
    quantity: int


class PercentDiscount(Protocol):
    discount_percent: float


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    discount_amount: float
    delivery_fee: float
    gift_fee: float
    total: int


def round_currency(value: float) -> int:
    """Round half up to a whole currency unit."""
    return int(math.floor(value + 0.5))


def compute_subtotal(items: Iterable[PricedLine]) -> float:
    return sum(item.price * item.quantity for item in items)


def compute_discount(subtotal: float, coupon: Optional[PercentDiscount]) -> float:
    # Left unrounded; the total is the single rounding point
    if coupon is None:
        return 0.0
    return subtotal * coupon.discount_percent / 100


def compute_totals(
    items: Iterable[PricedLine],
    coupon: Optional[PercentDiscount] = None,
    delivery_fee: Optional[float] = 0,
    gift: bool = False,
) -> PriceBreakdown:
    subtotal = compute_subtotal(items)
    discount = compute_discount(subtotal, coupon)
    delivery = float(delivery_fee or 0)
    gift_fee = GIFT_FEE if gift else 0
    total = round_currency(subtotal - discount + delivery + gift_fee)
    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount,
        delivery_fee=delivery,
        gift_fee=gift_fee,
        total=total,
    )


def delivery_fee_for(
    locations: Iterable[Location],
    method: Optional[str],
    emirate: Optional[str],
    city: Optional[str],
) -> float:
    """Flat fee for an exact (emirate, city) match; pickup and unknown places cost nothing."""
    if method != "delivery":
        return 0.0
    for loc in locations:
        if loc.emirate_en == emirate and loc.city == city:
            return loc.cost
    return 0.0
