from __future__ import annotations
from typing import Optional


class ShopError(Exception):
    """Base error; ``message`` is safe to show to the shopper."""

    status_code = 400
    message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class CheckoutValidationError(ShopError):
    status_code = 422
    message = "Please complete the required fields"

    def __init__(self, fields: list[str], message: Optional[str] = None):
        self.fields = list(fields)
        super().__init__(message)


class RemoteCallFailure(ShopError):
    status_code = 502
    message = "Service temporarily unavailable, please try again"


class MalformedRecord(RemoteCallFailure):
    pass


class CouponInvalid(ShopError):
    pass


class CouponNotFound(CouponInvalid):
    message = "Invalid or inactive code"


class CouponExpired(CouponInvalid):
    message = "This coupon has expired"


class RequestInFlight(ShopError):
    status_code = 409
    message = "Your order is already being processed"


class EmptyCart(ShopError):
    message = "Your cart is empty"


class NotFound(ShopError):
    status_code = 404
    message = "Not found"


class OrderNotCancelable(ShopError):
    status_code = 409
    message = "Only waiting orders can be canceled"


class AlreadyExists(ShopError):
    status_code = 409
    message = "Already exists"


class CheckoutNotActive(ShopError):
    status_code = 409
    message = "Checkout is not open"
