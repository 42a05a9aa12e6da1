import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe
from cart.tests.factories import CartFactory, CartLineFactory, GuestCartFactory
from common.choices import TaxSource
from orders.models import Order
from orders.payments import StripeGateway
from orders.services import POLICY_REJECT, CheckoutPolicy
from orders.tests.fakes import FakeGateway
from orders.webhooks import handle_stripe_event, ref_from_payment_intent
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db

WEBHOOK_URL = "/api/v1/webhooks/stripe/"


def _intent_event(cart, amount, **metadata):
    return {
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": f"pi_for_{cart.id}",
                "amount": amount,
                "amount_received": amount,
                "metadata": {"cart_id": str(cart.id), "sid": cart.session_id or "", **metadata},
            }
        },
    }


def _post(event, signature=FakeGateway.VALID_SIGNATURE, gateway=None):
    gateway = gateway or FakeGateway()
    with patch("orders.views.get_gateway", return_value=gateway):
        return APIClient().post(
            WEBHOOK_URL,
            data=event if isinstance(event, str) else json.dumps(event),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )


def test_bad_signature_is_400():
    cart = CartFactory()
    resp = _post(_intent_event(cart, 1000), signature="t=1,v1=forged")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_signature"
    assert Order.objects.count() == 0


def test_malformed_payload_is_400():
    resp = _post("{not json")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_payload"


def test_unhandled_event_type_is_acknowledged():
    resp = _post({"id": "evt_2", "type": "charge.refunded", "data": {"object": {}}})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ignored", "type": "charge.refunded"}


def test_payment_intent_succeeded_finalizes_then_dedupes():
    cart = CartFactory()
    CartLineFactory(cart=cart, unit_price_cents=1000)
    event = _intent_event(cart, 1080)

    first = _post(event)
    second = _post(event)

    assert first.status_code == 200
    assert first.json()["status"] == "finalized"
    assert second.json() == {"status": "duplicate", "order_id": first.json()["order_id"]}
    order = Order.objects.get()
    assert (order.tax_cents, order.tax_source) == (80, TaxSource.RECONCILED)
    assert order.provider_id == f"pi_for_{cart.id}"


def test_tax_calculation_id_from_metadata_is_looked_up():
    cart = GuestCartFactory(session_id="wh-sid")
    CartLineFactory(cart=cart, unit_price_cents=1000)
    gateway = FakeGateway(tax_amount=75)

    resp = _post(_intent_event(cart, 1075, tax_calculation_id="taxcalc_9"), gateway=gateway)

    assert resp.json()["status"] == "finalized"
    assert gateway.tax_lookups == ["taxcalc_9"]
    assert Order.objects.get().tax_source == TaxSource.CALCULATION


def test_unknown_cart_is_acknowledged_as_noop():
    resp = _post(
        {
            "id": "evt_3",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_orphan", "amount": 500, "metadata": {"cart_id": "999999"}}},
        }
    )
    assert resp.status_code == 200
    assert resp.json() == {"status": "no_cart"}


def test_rejected_mismatch_is_409():
    cart = CartFactory()
    CartLineFactory(cart=cart, unit_price_cents=1000)
    gateway = FakeGateway(tax_amount=50)

    with patch("orders.services.get_policy", return_value=CheckoutPolicy(mismatch_policy=POLICY_REJECT)):
        resp = _post(_intent_event(cart, 5000, tax_calculation_id="taxcalc_1"), gateway=gateway)

    assert resp.status_code == 409
    assert resp.json()["code"] == "total_mismatch"
    assert resp.json()["computed_cents"] == 1050
    assert Order.objects.count() == 0


def test_unexpected_failure_is_500_so_stripe_retries():
    cart = CartFactory()
    with patch("orders.views.handle_stripe_event", side_effect=RuntimeError("db down")):
        resp = _post(_intent_event(cart, 1000))
    assert resp.status_code == 500
    assert resp.json()["code"] == "finalize_failed"


def test_checkout_session_completed_uses_client_reference_and_intent_metadata():
    cart = CartFactory()
    CartLineFactory(cart=cart, unit_price_cents=1000)
    gateway = FakeGateway(tax_amount=90, intent_metadata={"tax_calculation_id": "taxcalc_cs"})
    event = {
        "id": "evt_cs",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "payment_status": "paid",
                "payment_intent": "pi_cs",
                "client_reference_id": str(cart.id),
                "amount_total": 1090,
                "metadata": {},
            }
        },
    }

    result = handle_stripe_event(event, gateway=gateway)

    order = Order.objects.get(id=result["order_id"])
    assert order.provider_id == "pi_cs"
    assert order.checkout_session_id == "cs_1"
    assert (order.tax_cents, order.tax_source) == (90, TaxSource.CALCULATION)


def test_unpaid_checkout_session_is_ignored():
    event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_2", "payment_status": "unpaid"}}}
    assert handle_stripe_event(event, gateway=FakeGateway()) == {"status": "ignored", "reason": "unpaid"}


def test_ref_from_payment_intent_accepts_camel_case_cart_id_and_falls_back_to_amount():
    ref, charged, calc = ref_from_payment_intent(
        {"id": "pi_x", "amount_received": 0, "amount": 1234, "metadata": {"cartId": 55}}
    )
    assert ref.cart_id == "55"
    assert charged == 1234
    assert calc is None


def _signed(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_gateway_verifies_real_signatures():
    gateway = StripeGateway(secret_key="sk_test_dummy", webhook_secret="whsec_test")
    payload = json.dumps({"id": "evt_sig", "type": "charge.refunded", "data": {"object": {}}}).encode()

    event = gateway.construct_event(payload, _signed(payload, "whsec_test"))
    assert event["id"] == "evt_sig"

    with pytest.raises(stripe.SignatureVerificationError):
        gateway.construct_event(payload, _signed(payload, "whsec_other"))
