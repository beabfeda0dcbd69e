from __future__ import annotations
import itertools
import time
from typing import Any, Callable, Iterable, Optional

from backend.cart import Cart, CartLineItem
from backend.checkout import CheckoutFlow
from backend.config import settings
from backend.coupons import AppliedCoupon
from backend.errors import RequestInFlight
from backend.pricing import PriceBreakdown, compute_totals, delivery_fee_for
from backend.schemas import Location


class SingleFlight:
    """
    At most one request in flight. Each begin() hands out a fresh token and
    only the holder of the current token can release it, so a late completion
    of an abandoned request cannot clear a newer one.
    """

    def __init__(self) -> None:
        self._tokens = itertools.count(1)
        self._current: Optional[int] = None

    @property
    def busy(self) -> bool:
        return self._current is not None

    def begin(self) -> int:
        if self._current is not None:
            raise RequestInFlight()
        token = next(self._tokens)
        self._current = token
        return token

    def finish(self, token: int) -> bool:
        if self._current != token:
            return False
        self._current = None
        return True

    def abandon(self) -> None:
        self._current = None


class ShopSession:
    def __init__(self, session_id: str):
        self.session_id = session_id
        self.cart = Cart()
        self.flow = CheckoutFlow()
        self.applied_coupon: Optional[AppliedCoupon] = None
        self.is_gift = False
        self.gift_note = ""
        self.submission = SingleFlight()
        self.last_seen = 0.0

    def set_gift_note(self, note: Optional[str]) -> None:
        self.is_gift = True
        self.gift_note = note or ""

    def remove_gift(self) -> None:
        self.is_gift = False
        self.gift_note = ""

    def totals(self, locations: list[Location], lines: Optional[Iterable[CartLineItem]] = None) -> PriceBreakdown:
        form = self.flow.form
        fee = delivery_fee_for(locations, form.method, form.emirate, form.city)
        return compute_totals(self.cart if lines is None else lines, self.applied_coupon, fee, self.is_gift)

    def reset(self) -> None:
        self.cart.clear()
        self.flow.reset()
        self.applied_coupon = None
        self.remove_gift()
        self.submission.abandon()

    def snapshot(self, locations: list[Location]) -> dict[str, Any]:
        totals = self.totals(locations)
        return {
            "session_id": self.session_id,
            "items": [
                {
                    "product_id": line.product_id,
                    "name_en": line.product.name_en,
                    "name_ar": line.product.name_ar,
                    "price": line.price,
                    "quantity": line.quantity,
                    "stock": line.product.stock,
                    "at_max": line.quantity >= line.product.stock,
                }
                for line in self.cart
            ],
            "coupon": (
                {"code": self.applied_coupon.code, "discount_percent": self.applied_coupon.discount_percent}
                if self.applied_coupon else None
            ),
            "is_gift": self.is_gift,
            "gift_note": self.gift_note,
            "totals": {
                "subtotal": totals.subtotal,
                "discount_amount": totals.discount_amount,
                "delivery_fee": totals.delivery_fee,
                "gift_fee": totals.gift_fee,
                "total": totals.total,
            },
        }


class SessionRegistry:
    """Live shopper sessions; any session idle longer than ``max_idle`` seconds is forgotten."""

    def __init__(self, max_idle: float = settings.SESSION_MAX_IDLE, clock: Callable[[], float] = time.monotonic):
        self.max_idle = max_idle
        self.clock = clock
        self._sessions: dict[str, ShopSession] = {}

    def get(self, session_id: str) -> ShopSession:
        self.purge_idle()
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = ShopSession(session_id)
        session.last_seen = self.clock()
        return session

    def purge_idle(self) -> int:
        cutoff = self.clock() - self.max_idle
        # a session with a submission in flight is kept until it settles
        stale = [
            sid for sid, s in self._sessions.items()
            if s.last_seen < cutoff and not s.submission.busy
        ]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)

    def drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
