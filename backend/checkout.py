"""
Checkout wizard.

Four linear steps: fulfillment method, contact/address details, payment
method, review. Moving forward runs the guard for the step being left and
raises CheckoutValidationError naming the failing fields; moving back keeps
every value already entered. Neither works while the wizard is closed or the
exit confirmation is showing. Closing goes through an exit confirmation which
either discards the form (the cart is kept) or returns to the step that was
showing.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, fields
from enum import IntEnum
from typing import Any, Optional

from backend.cart import Cart
from backend.errors import CheckoutNotActive, CheckoutValidationError, EmptyCart
from backend.schemas import Profile

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_DIGITS = 9

# Default map pin (Ajman) used until the shopper picks a spot
DEFAULT_COORDS = (25.4052, 55.5136)


class CheckoutStep(IntEnum):
    SELECT_METHOD = 1
    ENTER_DETAILS = 2
    SELECT_PAYMENT = 3
    REVIEW = 4


@dataclass
class CheckoutForm:
    method: Optional[str] = None
    emirate: str = ""
    city: str = ""
    street: str = ""
    villa: str = ""
    lat: float = DEFAULT_COORDS[0]
    lng: float = DEFAULT_COORDS[1]
    phone: str = ""
    email: str = ""
    payment_method: Optional[str] = None
    notes: str = ""

    @property
    def is_delivery(self) -> bool:
        return self.method == "delivery"

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def phone_digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def is_valid_phone(phone: str) -> bool:
    return len(phone_digits(phone)) >= MIN_PHONE_DIGITS


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def method_errors(form: CheckoutForm) -> list[str]:
    if form.method not in ("pickup", "delivery"):
        return ["method"]
    errors = []
    if form.is_delivery:
        if not form.emirate:
            errors.append("emirate")
        if not form.city:
            errors.append("city")
    return errors


def details_errors(form: CheckoutForm) -> list[str]:
    errors = []
    if not is_valid_phone(form.phone):
        errors.append("phone")
    if not is_valid_email(form.email):
        errors.append("email")
    if form.is_delivery:
        if not form.street.strip():
            errors.append("street")
        if not form.villa.strip():
            errors.append("villa")
    return errors


def payment_errors(form: CheckoutForm) -> list[str]:
    return [] if form.payment_method in ("Cash", "Card") else ["payment_method"]


GUARDS = {
    CheckoutStep.SELECT_METHOD: method_errors,
    CheckoutStep.ENTER_DETAILS: details_errors,
    CheckoutStep.SELECT_PAYMENT: payment_errors,
}


class CheckoutFlow:
    def __init__(self) -> None:
        self.form = CheckoutForm()
        self.step = CheckoutStep.SELECT_METHOD
        self.closed = True
        self.exit_pending = False

    def open(self, cart: Cart, profile: Optional[Profile] = None) -> None:
        if cart.is_empty:
            raise EmptyCart()
        self.closed = False
        self.exit_pending = False
        if profile is not None:
            self.prefill_address(profile)

    def prefill_address(self, profile: Profile) -> None:
        if not profile.emirate:
            return
        self.form.method = "delivery"
        self.form.emirate = profile.emirate
        self.form.city = profile.city or ""
        self.form.street = profile.street or ""
        self.form.villa = profile.extra_info or ""
        if profile.lat and profile.lng:
            self.form.lat, self.form.lng = profile.lat, profile.lng

    def prefill_contact(self, email: Optional[str], phone: Optional[str]) -> None:
        if email:
            self.form.email = email
        if phone:
            self.form.phone = phone_digits(phone)[-MIN_PHONE_DIGITS:]

    # Field updates

    def select_method(self, method: str) -> None:
        self.form.method = method
        if method == "pickup":
            self.form.emirate = ""
            self.form.city = ""

    def select_emirate(self, emirate: str) -> None:
        if emirate != self.form.emirate:
            self.form.city = ""
        self.form.emirate = emirate

    def update(self, **values: Any) -> None:
        if values.get("method") is not None:
            self.select_method(values.pop("method"))
        else:
            values.pop("method", None)
        if values.get("emirate") is not None:
            self.select_emirate(values.pop("emirate"))
        for name, value in values.items():
            if value is not None and hasattr(self.form, name):
                setattr(self.form, name, value)

    # Transitions

    def errors_for(self, step: CheckoutStep) -> list[str]:
        guard = GUARDS.get(step)
        return guard(self.form) if guard else []

    def can_advance(self) -> bool:
        return not self.errors_for(self.step)

    def _require_active(self) -> None:
        if self.closed:
            raise CheckoutNotActive()
        if self.exit_pending:
            raise CheckoutNotActive("Confirm or cancel closing first")

    def advance(self) -> CheckoutStep:
        self._require_active()
        if self.step == CheckoutStep.REVIEW:
            return self.step
        errors = self.errors_for(self.step)
        if errors:
            raise CheckoutValidationError(errors)
        self.step = CheckoutStep(self.step + 1)
        return self.step

    def back(self) -> CheckoutStep:
        self._require_active()
        if self.step > CheckoutStep.SELECT_METHOD:
            self.step = CheckoutStep(self.step - 1)
        return self.step

    def ready_to_submit(self) -> list[str]:
        """Failing fields across every guard; empty when the order can be sent."""
        errors: list[str] = []
        for step in GUARDS:
            errors.extend(self.errors_for(step))
        if self.closed or self.exit_pending or self.step != CheckoutStep.REVIEW:
            errors.append("step")
        return errors

    def request_exit(self) -> None:
        if not self.closed:
            self.exit_pending = True

    def cancel_exit(self) -> CheckoutStep:
        self.exit_pending = False
        return self.step

    def confirm_exit(self) -> None:
        self.reset()

    def close(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.form = CheckoutForm()
        self.step = CheckoutStep.SELECT_METHOD
        self.closed = True
        self.exit_pending = False

    def state(self) -> dict[str, Any]:
        return {
            "step": int(self.step),
            "closed": self.closed,
            "exit_pending": self.exit_pending,
            "can_advance": self.can_advance(),
            "form": self.form.as_dict(),
        }
