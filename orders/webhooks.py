"""Stripe event dispatch: pull the payment reference out of an event and finalize."""

import logging
from typing import Any, Optional

import stripe
from common.choices import PaymentProvider

from .services import CheckoutPolicy, PaymentRef, finalize_order

logger = logging.getLogger("storefront.orders")

PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAID_SESSION_STATES = {"paid", "no_payment_required"}


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _metadata(obj: dict) -> dict:
    md = obj.get("metadata")
    return md if isinstance(md, dict) else {}


def _cart_id(md: dict, fallback=None) -> Optional[str]:
    value = md.get("cart_id") or md.get("cartId") or fallback
    return str(value) if value else None


def ref_from_payment_intent(intent: dict) -> tuple[PaymentRef, Optional[int], Optional[str]]:
    md = _metadata(intent)
    charged = _int_or_none(intent.get("amount_received"))
    if not charged:
        charged = _int_or_none(intent.get("amount"))
    ref = PaymentRef(
        provider=PaymentProvider.STRIPE,
        provider_id=intent.get("id"),
        cart_id=_cart_id(md),
        sid=md.get("sid") or None,
    )
    return ref, charged, md.get("tax_calculation_id") or None


def ref_from_checkout_session(session: dict, gateway) -> tuple[PaymentRef, Optional[int], Optional[str]]:
    md = _metadata(session)
    intent_id = session.get("payment_intent")
    if isinstance(intent_id, dict):
        intent_id = intent_id.get("id")
    tax_calculation_id = md.get("tax_calculation_id") or None
    if not tax_calculation_id and intent_id and gateway is not None:
        try:
            tax_calculation_id = gateway.retrieve_payment_intent(intent_id).metadata.get("tax_calculation_id") or None
        except stripe.StripeError as exc:
            logger.warning(
                "webhook.intent_lookup_failed",
                extra={
                    "event": "webhook.intent_lookup_failed",
                    "payment_intent_id": intent_id,
                    "error": exc.__class__.__name__,
                },
            )
    ref = PaymentRef(
        provider=PaymentProvider.STRIPE,
        provider_id=intent_id or session.get("id"),
        session_id=session.get("id"),
        cart_id=_cart_id(md, session.get("client_reference_id")),
        sid=md.get("sid") or None,
    )
    return ref, _int_or_none(session.get("amount_total")), tax_calculation_id


def handle_stripe_event(event: dict, *, gateway=None, policy: Optional[CheckoutPolicy] = None) -> dict:
    """Finalize the order for a verified payment event.

    Returns a small status dict for the HTTP response. ``TotalMismatchError``
    and unexpected failures propagate so the caller can answer non-2xx and
    the processor retries.
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == PAYMENT_INTENT_SUCCEEDED:
        ref, charged, tax_calculation_id = ref_from_payment_intent(obj)
    elif event_type == CHECKOUT_SESSION_COMPLETED:
        if obj.get("payment_status") and obj.get("payment_status") not in PAID_SESSION_STATES:
            return {"status": "ignored", "reason": "unpaid"}
        ref, charged, tax_calculation_id = ref_from_checkout_session(obj, gateway)
    else:
        return {"status": "ignored", "type": event_type}

    logger.info(
        "webhook.received",
        extra={
            "event": "webhook.received",
            "type": event_type,
            "stripe_event_id": event.get("id"),
            "provider_id": ref.provider_id,
            "cart_id": ref.cart_id,
        },
    )
    result = finalize_order(ref, charged, tax_calculation_id, gateway=gateway, policy=policy)
    if result is None:
        return {"status": "no_cart"}
    return {"status": "finalized" if result.created else "duplicate", "order_id": result.order_id}
