import logging

import pytest
from cart.models import CartLine
from cart.selectors import cart_totals, find_unclosed_cart, line_total_cents, subtotal_cents
from cart.tests.factories import CartCreditFactory, CartFactory, CartLineFactory, GuestCartFactory
from common.choices import CartStatus
from common.money import shipping_cents_from_selection


def test_line_total_prefers_unit_times_quantity_and_logs_mismatch(caplog):
    line = CartLine(id=7, unit_price_cents=100, quantity=3, line_total_cents=999)
    with caplog.at_level(logging.WARNING, logger="storefront.cart"):
        assert line_total_cents(line) == 300
    record = next(r for r in caplog.records if r.getMessage() == "cart.line_total_mismatch")
    assert record.line_id == 7
    assert record.computed_cents == 300


def test_line_total_without_stored_value():
    assert line_total_cents(CartLine(unit_price_cents=250, quantity=4, line_total_cents=None)) == 1000


def test_line_total_matching_stored_value_is_quiet(caplog):
    with caplog.at_level(logging.WARNING, logger="storefront.cart"):
        assert line_total_cents(CartLine(unit_price_cents=5, quantity=2, line_total_cents=10)) == 10
    assert not caplog.records


def test_subtotal_of_no_lines_is_zero():
    assert subtotal_cents([]) == 0


@pytest.mark.parametrize(
    "selection,expected",
    [
        ({"cost_cents": 1234, "cost": "99.00"}, 1234),
        ({"cost_cents": 0, "cost": "12.50"}, 1250),
        ({"rate": {"cost": "7.10"}}, 710),
        ({"rate": {"amount": 3}}, 300),
        ({"price": "$4.99"}, 499),
        ({"amount": "1,000.00"}, 100000),
        ({"cost": "abc", "price": "2.00"}, 200),
        ({"cost": "-5", "amount": "1"}, 100),
        ({"cost": "NaN"}, 0),
        ({"cost": "Infinity"}, 0),
        ({}, 0),
        (None, 0),
        ("12.00", 0),
    ],
)
def test_shipping_fallback_chain(selection, expected):
    assert shipping_cents_from_selection(selection) == expected


@pytest.mark.django_db
def test_cart_totals_caps_credits_at_subtotal():
    cart = CartFactory(selected_shipping={"cost_cents": 500})
    CartLineFactory(cart=cart, unit_price_cents=300, quantity=1)
    CartCreditFactory(cart=cart, amount_cents=1000)

    totals = cart_totals(cart=cart)

    assert totals.subtotal_cents == 300
    assert totals.credits_cents == 1000
    assert totals.discount_cents == 300
    assert totals.net_subtotal_cents == 0
    # credits never reduce shipping
    assert totals.pre_tax_total_cents == 500


@pytest.mark.django_db
def test_cart_totals_sum_lines_and_shipping():
    cart = CartFactory(selected_shipping={"cost": "12.50"})
    CartLineFactory(cart=cart, unit_price_cents=150, quantity=10)
    CartLineFactory(cart=cart, unit_price_cents=200, quantity=2)
    CartCreditFactory(cart=cart, amount_cents=100)

    totals = cart_totals(cart=cart)

    assert totals.subtotal_cents == 1900
    assert totals.shipping_cents == 1250
    assert totals.discount_cents == 100
    assert totals.pre_tax_total_cents == 3050
    assert totals.currency == "USD"


@pytest.mark.django_db
def test_find_unclosed_cart_prefers_explicit_id():
    guest = GuestCartFactory(session_id="s1")
    other = CartFactory()
    assert find_unclosed_cart(cart_id=str(other.id), session_id="s1") == other
    assert find_unclosed_cart(cart_id="999999", session_id="s1") == guest
    assert find_unclosed_cart(cart_id="not-a-number", session_id="s1") == guest


@pytest.mark.django_db
def test_find_unclosed_cart_skips_closed_carts():
    closed = CartFactory(status=CartStatus.CLOSED)
    assert find_unclosed_cart(cart_id=closed.id) is None
    assert find_unclosed_cart() is None
