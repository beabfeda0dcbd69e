# tests/test_checkout.py
import pytest

from backend.cart import Cart
from backend.checkout import CheckoutFlow, CheckoutStep, is_valid_email, is_valid_phone
from backend.errors import CheckoutNotActive, CheckoutValidationError, EmptyCart
from backend.schemas import Profile

from conftest import make_product


def opened_flow() -> CheckoutFlow:
    cart = Cart()
    cart.add_item(make_product("a"))
    flow = CheckoutFlow()
    flow.open(cart)
    return flow


def test_open_requires_items():
    with pytest.raises(EmptyCart):
        CheckoutFlow().open(Cart())


def test_method_step_requires_selection():
    flow = opened_flow()
    with pytest.raises(CheckoutValidationError) as exc:
        flow.advance()
    assert exc.value.fields == ["method"]
    assert flow.step == CheckoutStep.SELECT_METHOD


def test_delivery_needs_emirate_and_city():
    flow = opened_flow()
    flow.update(method="delivery", emirate="Dubai")
    with pytest.raises(CheckoutValidationError) as exc:
        flow.advance()
    assert exc.value.fields == ["city"]
    flow.update(city="Deira")
    assert flow.advance() == CheckoutStep.ENTER_DETAILS


def test_pickup_clears_location_and_changing_emirate_clears_city():
    flow = opened_flow()
    flow.update(method="delivery", emirate="Dubai", city="Deira")
    flow.update(emirate="Ajman")
    assert flow.form.city == ""
    flow.update(city="Al Nuaimiya")
    flow.update(method="pickup")
    assert (flow.form.emirate, flow.form.city) == ("", "")


def test_delivery_details_reject_empty_street():
    flow = opened_flow()
    flow.update(method="delivery", emirate="Dubai", city="Deira")
    flow.advance()
    flow.update(phone="050 123 4567", email="buyer@example.com", villa="12")
    with pytest.raises(CheckoutValidationError) as exc:
        flow.advance()
    assert exc.value.fields == ["street"]
    assert flow.step == CheckoutStep.ENTER_DETAILS


def test_pickup_details_ignore_street():
    flow = opened_flow()
    flow.update(method="pickup")
    flow.advance()
    flow.update(phone="501234567", email="buyer@example.com")
    assert flow.advance() == CheckoutStep.SELECT_PAYMENT


def test_invalid_contact_fields_are_reported():
    flow = opened_flow()
    flow.update(method="pickup")
    flow.advance()
    flow.update(phone="12345", email="not-an-email")
    with pytest.raises(CheckoutValidationError) as exc:
        flow.advance()
    assert exc.value.fields == ["phone", "email"]


def test_payment_has_no_default():
    flow = opened_flow()
    flow.update(method="pickup")
    flow.advance()
    flow.update(phone="501234567", email="buyer@example.com")
    flow.advance()
    with pytest.raises(CheckoutValidationError):
        flow.advance()
    flow.update(payment_method="Cash")
    assert flow.advance() == CheckoutStep.REVIEW
    assert flow.ready_to_submit() == []


def test_back_preserves_entered_values():
    flow = opened_flow()
    flow.update(method="delivery", emirate="Dubai", city="Deira")
    flow.advance()
    flow.update(phone="501234567", email="a@b.co", street="Beach Rd", villa="7")
    flow.advance()
    assert flow.back() == CheckoutStep.ENTER_DETAILS
    assert flow.back() == CheckoutStep.SELECT_METHOD
    assert flow.back() == CheckoutStep.SELECT_METHOD
    assert flow.form.street == "Beach Rd"
    assert flow.form.city == "Deira"


def test_exit_cancel_returns_to_same_step():
    flow = opened_flow()
    flow.update(method="pickup")
    flow.advance()
    flow.request_exit()
    assert flow.exit_pending
    assert flow.cancel_exit() == CheckoutStep.ENTER_DETAILS
    assert not flow.exit_pending and not flow.closed


def test_exit_confirm_discards_fields_but_not_cart():
    cart = Cart()
    cart.add_item(make_product("a"))
    flow = CheckoutFlow()
    flow.open(cart)
    flow.update(method="pickup", phone="501234567")
    flow.advance()
    flow.request_exit()
    flow.confirm_exit()
    assert flow.closed
    assert flow.step == CheckoutStep.SELECT_METHOD
    assert flow.form.method is None and flow.form.phone == ""
    assert len(cart) == 1


def test_steps_do_not_move_while_closed():
    flow = CheckoutFlow()
    flow.update(method="pickup")
    with pytest.raises(CheckoutNotActive):
        flow.advance()
    with pytest.raises(CheckoutNotActive):
        flow.back()
    assert flow.step == CheckoutStep.SELECT_METHOD


def test_steps_do_not_move_while_exit_is_pending():
    flow = opened_flow()
    flow.update(method="pickup")
    flow.advance()
    flow.request_exit()
    with pytest.raises(CheckoutNotActive):
        flow.advance()
    with pytest.raises(CheckoutNotActive):
        flow.back()
    assert flow.step == CheckoutStep.ENTER_DETAILS
    flow.cancel_exit()
    assert flow.back() == CheckoutStep.SELECT_METHOD


def test_open_prefills_saved_address():
    cart = Cart()
    cart.add_item(make_product("a"))
    flow = CheckoutFlow()
    profile = Profile(user_id="u1", emirate="Dubai", city="Deira", street="Beach Rd", extra_info="9", lat=25.2, lng=55.3)
    flow.open(cart, profile)
    flow.prefill_contact("me@example.com", "+971 50 123 4567")
    assert flow.form.method == "delivery"
    assert (flow.form.street, flow.form.villa) == ("Beach Rd", "9")
    assert (flow.form.lat, flow.form.lng) == (25.2, 55.3)
    assert flow.form.phone == "501234567"
    assert flow.form.email == "me@example.com"


@pytest.mark.parametrize("phone,ok", [("501234567", True), ("+971-50-123-4567", True), ("5012345", False), ("", False)])
def test_phone_rule(phone, ok):
    assert is_valid_phone(phone) is ok


@pytest.mark.parametrize("email,ok", [("a@b.co", True), ("a b@c.com", False), ("a@b", False), ("", False)])
def test_email_rule(email, ok):
    assert is_valid_email(email) is ok
