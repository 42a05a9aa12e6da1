"""Stripe access for checkout and webhooks.

All calls go through ``StripeGateway`` so the finalizer and views can be
given a fake in tests and every request carries an explicit timeout.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe
from django.conf import settings

logger = logging.getLogger("storefront.orders")


@dataclass(frozen=True)
class TaxCalculation:
    id: str
    tax_amount_exclusive: int


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: Optional[str]
    amount: int
    currency: str
    metadata: dict


def _get(obj: Any, key: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _plain(obj: Any) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    return dict(to_dict()) if callable(to_dict) else {}


class StripeGateway:
    def __init__(self, *, secret_key: str, webhook_secret: str = "", timeout: float = 10, client=None):
        self.webhook_secret = webhook_secret
        self.client = client or stripe.StripeClient(secret_key, http_client=stripe.RequestsClient(timeout=timeout))

    @classmethod
    def from_settings(cls) -> "StripeGateway":
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            timeout=settings.STRIPE_TIMEOUT_SECONDS,
        )

    def construct_event(self, payload: bytes, sig_header: str) -> dict:
        """Verify the webhook signature and return the event as a plain dict.

        Raises ``ValueError`` for malformed payloads and
        ``stripe.SignatureVerificationError`` for bad signatures.
        """
        stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        return json.loads(payload)

    def retrieve_tax_amount(self, calculation_id: str) -> int:
        calculation = self.client.tax.calculations.retrieve(calculation_id)
        return int(_get(calculation, "tax_amount_exclusive", 0) or 0)

    def create_tax_calculation(
        self, *, currency: str, line_items: list[dict], shipping_cents: int, address: dict
    ) -> TaxCalculation:
        params = {
            "currency": currency.lower(),
            "line_items": [
                {
                    "amount": int(item["amount"]),
                    "reference": str(item["reference"]),
                    "quantity": int(item.get("quantity", 1)),
                    "tax_behavior": "exclusive",
                }
                for item in line_items
            ],
            "shipping_cost": {"amount": int(shipping_cents)},
            "customer_details": {
                "address": {
                    "country": str(address.get("country") or "").upper(),
                    "state": address.get("state") or None,
                    "postal_code": address.get("zip") or address.get("postal_code") or None,
                    "line1": address.get("line1") or None,
                    "city": address.get("city") or None,
                },
                "address_source": "shipping",
            },
        }
        calculation = self.client.tax.calculations.create(params=params)
        return TaxCalculation(
            id=str(_get(calculation, "id")),
            tax_amount_exclusive=int(_get(calculation, "tax_amount_exclusive", 0) or 0),
        )

    def create_payment_intent(
        self, *, amount_cents: int, currency: str, metadata: dict, idempotency_key: Optional[str] = None
    ) -> PaymentIntent:
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        intent = self.client.payment_intents.create(
            params={
                "amount": int(amount_cents),
                "currency": currency.lower(),
                "metadata": {k: str(v) for k, v in metadata.items() if v not in (None, "")},
                "automatic_payment_methods": {"enabled": True},
            },
            options=options,
        )
        return self._intent(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        return self._intent(self.client.payment_intents.retrieve(payment_intent_id))

    @staticmethod
    def _intent(intent) -> PaymentIntent:
        return PaymentIntent(
            id=str(_get(intent, "id")),
            client_secret=_get(intent, "client_secret"),
            amount=int(_get(intent, "amount", 0) or 0),
            currency=str(_get(intent, "currency", "") or "").upper(),
            metadata=_plain(_get(intent, "metadata")),
        )
