import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Optional, Tuple

import stripe
from cart.models import Cart, CartCredit, CartLine
from cart.selectors import CartTotals, cart_totals, find_unclosed_cart, line_total_cents
from common.choices import CartStatus, PaymentProvider, TaxSource
from django.apps import apps
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from loyalty.services import fit_cart_credit, settle_for_order

from .emails import send_order_confirmation_email
from .models import IdempotencyKey, Order, OrderItem
from .payments import StripeGateway
from .tax import TaxResult, allocate_discount, reconcile_from_total, reconcile_tax

logger = logging.getLogger("storefront.orders")

POLICY_ACCEPT = "accept"
POLICY_FLAG = "flag"
POLICY_REJECT = "reject"
MISMATCH_POLICIES = (POLICY_ACCEPT, POLICY_FLAG, POLICY_REJECT)


class FinalizationError(Exception):
    """Raised when a cart cannot be turned into an order."""

    def __init__(self, message: str, code: str = "finalization_failed", **details):
        super().__init__(message)
        self.code = code
        self.details = details


class TotalMismatchError(FinalizationError):
    """Charged amount differs from the computed total under the ``reject`` policy."""


class CheckoutError(Exception):
    def __init__(self, message: str, code: str = "checkout_failed", status: int = 400):
        super().__init__(message)
        self.code = code
        self.status = status


@dataclass(frozen=True)
class PaymentRef:
    """What a payment notification tells us about the purchase it settles."""

    provider: str = PaymentProvider.STRIPE
    provider_id: Optional[str] = None
    session_id: Optional[str] = None
    cart_id: Optional[str] = None
    sid: Optional[str] = None


@dataclass(frozen=True)
class CheckoutPolicy:
    mismatch_policy: str = POLICY_FLAG
    tolerance_cents: int = 0

    @classmethod
    def from_settings(cls) -> "CheckoutPolicy":
        policy = str(getattr(settings, "ORDER_TOTAL_MISMATCH_POLICY", POLICY_FLAG)).lower()
        if policy not in MISMATCH_POLICIES:
            raise ValueError(f"ORDER_TOTAL_MISMATCH_POLICY must be one of {MISMATCH_POLICIES}, got {policy!r}")
        return cls(
            mismatch_policy=policy,
            tolerance_cents=max(0, int(getattr(settings, "ORDER_TOTAL_MISMATCH_TOLERANCE_CENTS", 0))),
        )


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    tax_source: str
    discount_cents: int
    credits_cents: int
    total_cents: int
    currency: str


@dataclass(frozen=True)
class FinalizeResult:
    order_id: int
    created: bool


def get_policy() -> CheckoutPolicy:
    return getattr(apps.get_app_config("orders"), "policy", None) or CheckoutPolicy.from_settings()


def build_order_totals(base: CartTotals, tax: TaxResult) -> OrderTotals:
    return OrderTotals(
        subtotal_cents=base.subtotal_cents,
        shipping_cents=base.shipping_cents,
        tax_cents=tax.tax_cents,
        tax_source=tax.source,
        discount_cents=base.discount_cents,
        credits_cents=base.credits_cents,
        total_cents=base.pre_tax_total_cents + tax.tax_cents,
        currency=base.currency,
    )


def check_total_mismatch(
    totals: OrderTotals, charged_total_cents: Optional[int], policy: CheckoutPolicy, *, cart_id=None
) -> int:
    """Return ``charged - computed`` and enforce the configured policy.

    ``accept`` records the difference quietly, ``flag`` also logs it, and
    ``reject`` raises ``TotalMismatchError`` when it exceeds the tolerance.
    """
    if charged_total_cents is None:
        return 0
    mismatch = int(charged_total_cents) - totals.total_cents
    if abs(mismatch) <= policy.tolerance_cents:
        return mismatch
    if policy.mismatch_policy == POLICY_REJECT:
        logger.error(
            "order.total_mismatch_rejected",
            extra={
                "event": "order.total_mismatch_rejected",
                "cart_id": cart_id,
                "computed_cents": totals.total_cents,
                "charged_cents": charged_total_cents,
            },
        )
        raise TotalMismatchError(
            "Charged amount does not match the order total.",
            code="total_mismatch",
            computed_cents=totals.total_cents,
            charged_cents=int(charged_total_cents),
        )
    if policy.mismatch_policy == POLICY_FLAG:
        logger.warning(
            "order.total_mismatch",
            extra={
                "event": "order.total_mismatch",
                "cart_id": cart_id,
                "computed_cents": totals.total_cents,
                "charged_cents": charged_total_cents,
                "mismatch_cents": mismatch,
            },
        )
    return mismatch


def find_existing_order(*, provider: str, provider_id: Optional[str] = None, cart_id=None) -> Optional[int]:
    """Id of an order already written for this payment or this cart."""
    if provider_id:
        found = Order.objects.filter(provider=provider, provider_id=provider_id).values_list("id", flat=True).first()
        if found:
            return found
    if cart_id:
        try:
            return Order.objects.filter(cart_id=int(cart_id)).values_list("id", flat=True).first()
        except (TypeError, ValueError):
            return None
    return None


def _write_order(
    *, ref: PaymentRef, cart_pk: int, tax: TaxResult, charged_total_cents: Optional[int], policy: CheckoutPolicy
) -> Optional[FinalizeResult]:
    cart = Cart.objects.select_for_update().get(pk=cart_pk)
    existing = find_existing_order(provider=ref.provider, provider_id=ref.provider_id, cart_id=cart.pk)
    if existing:
        return FinalizeResult(order_id=existing, created=False)
    if cart.status == CartStatus.CLOSED:
        logger.warning("order.cart_closed", extra={"event": "order.cart_closed", "cart_id": cart.pk})
        return None

    fit_cart_credit(cart=cart)
    lines = list(CartLine.objects.filter(cart=cart).order_by("id"))
    base = cart_totals(cart=cart)
    if tax.source == TaxSource.RECONCILED and charged_total_cents is not None:
        # lines may have changed since the tax was worked out
        tax = reconcile_from_total(base.net_subtotal_cents, base.shipping_cents, charged_total_cents)
    totals = build_order_totals(base, tax)
    mismatch = check_total_mismatch(totals, charged_total_cents, policy, cart_id=cart.pk)

    user = cart.user
    order = Order.objects.create(
        user=user,
        owner_ref=str(user.pk) if user else (cart.session_id or ""),
        email=(getattr(user, "email", None) or None),
        cart=cart,
        provider=ref.provider,
        provider_id=ref.provider_id,
        checkout_session_id=ref.session_id,
        currency=totals.currency,
        subtotal_cents=totals.subtotal_cents,
        shipping_cents=totals.shipping_cents,
        tax_cents=totals.tax_cents,
        tax_source=totals.tax_source,
        discount_cents=totals.discount_cents,
        credits_cents=totals.credits_cents,
        total_cents=totals.total_cents,
        charged_total_cents=charged_total_cents,
        total_mismatch_cents=mismatch,
        shipping=cart.selected_shipping,
        placed_at=timezone.now(),
    )
    order.number = f"ORD-{int(order.id):06d}"
    order.save(update_fields=["number"])

    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line_total_cents(line),
                option_ids=line.option_ids,
                artwork=line.artwork,
            )
            for line in lines
        ]
    )
    CartLine.objects.filter(cart=cart).delete()
    cart.status = CartStatus.CLOSED
    cart.save(update_fields=["status", "updated_at"])
    CartCredit.objects.filter(cart=cart).delete()
    settle_for_order(order=order, cart=cart)

    order_id = order.pk
    transaction.on_commit(lambda: send_order_confirmation_email(order_id))
    logger.info(
        "order.finalized",
        extra={
            "event": "order.finalized",
            "order_id": order.pk,
            "number": order.number,
            "cart_id": cart.pk,
            "provider": ref.provider,
            "provider_id": ref.provider_id,
            "total_cents": order.total_cents,
            "tax_source": order.tax_source,
            "items": len(lines),
        },
    )
    return FinalizeResult(order_id=order.pk, created=True)


def finalize_order(
    ref: PaymentRef,
    charged_total_cents: Optional[int] = None,
    tax_calculation_id: Optional[str] = None,
    *,
    gateway=None,
    policy: Optional[CheckoutPolicy] = None,
) -> Optional[FinalizeResult]:
    """Turn the cart behind a confirmed payment into an order, exactly once.

    Returns the existing order when the payment or the cart was already
    finalized, ``None`` when no unclosed cart can be found (the notification
    is acknowledged as a no-op), and raises ``TotalMismatchError`` under the
    ``reject`` policy. Any other failure rolls back every write.
    """
    policy = policy or get_policy()
    existing = find_existing_order(provider=ref.provider, provider_id=ref.provider_id, cart_id=ref.cart_id)
    if existing:
        logger.info(
            "order.already_finalized",
            extra={"event": "order.already_finalized", "order_id": existing, "provider_id": ref.provider_id},
        )
        return FinalizeResult(order_id=existing, created=False)

    cart = find_unclosed_cart(cart_id=ref.cart_id, session_id=ref.sid)
    if cart is None:
        logger.info(
            "order.cart_not_found",
            extra={"event": "order.cart_not_found", "cart_id": ref.cart_id, "sid": ref.sid},
        )
        return None

    base = cart_totals(cart=cart)
    tax = reconcile_tax(
        net_subtotal_cents=base.net_subtotal_cents,
        shipping_cents=base.shipping_cents,
        tax_calculation_id=tax_calculation_id,
        charged_total_cents=charged_total_cents,
        gateway=gateway,
    )

    try:
        with transaction.atomic():
            return _write_order(
                ref=ref, cart_pk=cart.pk, tax=tax, charged_total_cents=charged_total_cents, policy=policy
            )
    except IntegrityError:
        existing = find_existing_order(provider=ref.provider, provider_id=ref.provider_id, cart_id=cart.pk)
        if existing is None:
            raise
        logger.info(
            "order.finalize_race_resolved",
            extra={"event": "order.finalize_race_resolved", "order_id": existing, "cart_id": cart.pk},
        )
        return FinalizeResult(order_id=existing, created=False)


def finalize_free_order(*, cart: Cart) -> FinalizeResult:
    """Finalize a cart whose credits cover goods and shipping entirely."""
    if not cart.lines.exists():
        raise FinalizationError("Cart is empty.", code="cart_empty")
    base = cart_totals(cart=cart)
    if base.pre_tax_total_cents != 0:
        raise FinalizationError(
            "Cart total is not zero.", code="not_free", total_cents=base.pre_tax_total_cents
        )
    ref = PaymentRef(provider=PaymentProvider.FREE, provider_id=f"free:{cart.pk}", cart_id=str(cart.pk))
    result = finalize_order(ref)
    if result is None:
        raise FinalizationError("Cart is no longer open.", code="cart_closed")
    return result


def get_gateway() -> StripeGateway:
    return StripeGateway.from_settings()


def start_checkout(*, cart: Cart, address: Optional[dict] = None, gateway=None) -> dict:
    """Create the PaymentIntent for a cart and move the cart into checkout.

    When an address is given a tax calculation is created first (discount
    spread across lines) and its id travels in the intent's metadata so the
    webhook can settle the exact tax amount later.
    """
    lines = list(cart.lines.order_by("id"))
    if not lines:
        raise CheckoutError("Cart is empty.", code="cart_empty")
    base = cart_totals(cart=cart)
    if base.pre_tax_total_cents <= 0:
        raise CheckoutError("Cart total is zero; use free checkout.", code="free_order")
    gateway = gateway or get_gateway()

    tax_calculation_id, tax_cents = None, 0
    if address:
        amounts = allocate_discount([line_total_cents(line) for line in lines], base.discount_cents)
        try:
            calculation = gateway.create_tax_calculation(
                currency=base.currency,
                line_items=[
                    {"amount": amount, "reference": f"line-{line.pk}", "quantity": line.quantity}
                    for line, amount in zip(lines, amounts)
                ],
                shipping_cents=base.shipping_cents,
                address=address,
            )
        except stripe.StripeError as exc:
            logger.warning(
                "checkout.tax_unavailable",
                extra={"event": "checkout.tax_unavailable", "cart_id": cart.pk, "error": exc.__class__.__name__},
            )
            raise CheckoutError("Tax could not be calculated.", code="tax_unavailable", status=502) from exc
        tax_calculation_id, tax_cents = calculation.id, calculation.tax_amount_exclusive

    amount = base.pre_tax_total_cents + tax_cents
    try:
        intent = gateway.create_payment_intent(
            amount_cents=amount,
            currency=base.currency,
            metadata={
                "cart_id": cart.pk,
                "sid": cart.session_id,
                "tax_calculation_id": tax_calculation_id,
            },
            idempotency_key=f"cart-{cart.pk}-{amount}-{int(cart.updated_at.timestamp())}",
        )
    except stripe.StripeError as exc:
        logger.warning(
            "checkout.payment_unavailable",
            extra={"event": "checkout.payment_unavailable", "cart_id": cart.pk, "error": exc.__class__.__name__},
        )
        raise CheckoutError("Payment could not be started.", code="payment_unavailable", status=502) from exc

    Cart.objects.filter(pk=cart.pk, status=CartStatus.OPEN).update(status=CartStatus.CHECKOUT, updated_at=timezone.now())
    logger.info(
        "checkout.started",
        extra={
            "event": "checkout.started",
            "cart_id": cart.pk,
            "payment_intent_id": intent.id,
            "amount_cents": amount,
            "tax_calculation_id": tax_calculation_id,
        },
    )
    return {
        "cart_id": cart.pk,
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "currency": base.currency,
        "subtotal_cents": base.subtotal_cents,
        "discount_cents": base.discount_cents,
        "shipping_cents": base.shipping_cents,
        "tax_cents": tax_cents,
        "tax_calculation_id": tax_calculation_id,
        "amount_cents": amount,
    }


def idempotency_scope(principal) -> str:
    if principal.user is not None:
        return f"user:{principal.user.pk}"
    if principal.session_id:
        return f"session:{principal.session_id}"
    return "anon"


def with_idempotency(
    *,
    key: str,
    principal,
    path: str,
    method: str,
    handler: Callable[[], Tuple[dict, int]],
    request_hash: Optional[str] = None,
) -> Tuple[dict, int]:
    """Run ``handler`` once per key and replay its stored response afterwards.

    A key reused with a different request body, or one whose first request is
    still running, answers 409.
    """
    scope = idempotency_scope(principal)
    method = str(method).upper()
    ttl_hours = int(getattr(settings, "IDEMPOTENCY_TTL_HOURS", 24))

    try:
        with transaction.atomic():
            idem = IdempotencyKey.objects.create(
                key=key,
                user=principal.user,
                scope=scope,
                path=str(path),
                method=method,
                request_hash=request_hash,
                expires_at=timezone.now() + timedelta(hours=ttl_hours),
            )
    except IntegrityError:
        idem = IdempotencyKey.objects.get(key=key, scope=scope, path=str(path), method=method)
        if idem.request_hash and request_hash and idem.request_hash != request_hash:
            return {"detail": "Idempotency key reused with different request payload", "code": "idempotency_conflict"}, 409
        if idem.response_json is not None and idem.response_code is not None:
            return idem.response_json, int(idem.response_code)
        return {"detail": "Request in progress", "code": "idempotency_in_progress"}, 409

    try:
        body, code = handler()
    except Exception:
        # let the client retry with the same key
        IdempotencyKey.objects.filter(id=idem.id).delete()
        raise

    def _json_safe(value):
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, dict):
            return {k: _json_safe(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [_json_safe(v) for v in value]
        return value

    IdempotencyKey.objects.filter(id=idem.id).update(response_json=_json_safe(body), response_code=code)
    return body, code


def compute_request_hash(data: Optional[dict]) -> Optional[str]:
    """SHA256 of the body serialized with sorted keys; None for an empty body."""
    if not data:
        return None
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return None
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def purge_expired_idempotency_keys(*, now=None) -> int:
    now = now or timezone.now()
    deleted, _ = IdempotencyKey.objects.filter(expires_at__lt=now).delete()
    return deleted
