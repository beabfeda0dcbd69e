from __future__ import annotations
import logging
from dataclasses import dataclass

from backend.database import DataStore, load, load_all
from backend.errors import AlreadyExists, CouponExpired, CouponNotFound
from backend.schemas import Coupon, CouponCreate

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    discount_percent: float


class CouponValidator:
    """Looks a code up on every call; validity is never cached."""

    def __init__(self, store: DataStore):
        self.store = store

    async def validate(self, code: str) -> AppliedCoupon:
        code = normalize_code(code)
        if not code:
            raise CouponNotFound()
        # RemoteCallFailure from the store propagates as-is, so an outage is
        # not reported to the shopper as a bad code
        doc = await self.store.find_one("coupon", {"code": code, "active": True})
        if doc is None:
            raise CouponNotFound()
        coupon = load(Coupon, doc)
        if coupon.is_exhausted:
            raise CouponExpired()
        return AppliedCoupon(code=coupon.code, discount_percent=coupon.discount_percent)


async def create_coupon(store: DataStore, payload: CouponCreate) -> Coupon:
    code = normalize_code(payload.code)
    if await store.find_one("coupon", {"code": code}):
        raise AlreadyExists("Coupon code already exists")
    coupon = Coupon(
        code=code,
        discount_percent=payload.discount_percent,
        usage_limit=payload.usage_limit,
        active=payload.active,
        times_used=0,
    )
    saved = await store.insert("coupon", coupon.model_dump(exclude={"id"}))
    return load(Coupon, saved)


async def sweep_exhausted_coupons(store: DataStore) -> int:
    """Delete coupons whose uses have run out; returns how many were removed."""
    coupons = load_all(Coupon, await store.find("coupon"))
    removed = 0
    for coupon in coupons:
        if coupon.is_exhausted and coupon.id:
            removed += await store.delete("coupon", {"id": coupon.id})
    if removed:
        logger.info("swept %d exhausted coupon(s)", removed)
    return removed


async def list_coupons(store: DataStore) -> list[Coupon]:
    await sweep_exhausted_coupons(store)
    return load_all(Coupon, await store.find("coupon", sort=[("created_at", -1)]))
