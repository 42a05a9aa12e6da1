"""Loyalty ledger services.

Every balance change goes through ``adjust`` which locks the wallet row,
refuses to go below zero, and writes the wallet update and its audit row in
one transaction.
"""

import logging
from typing import Optional

from cart.models import Cart, CartCredit
from cart.selectors import cart_totals
from common.choices import CartStatus, CreditReason, LoyaltyTxType
from django.apps import apps
from django.db import transaction

from .models import LoyaltyTransaction, LoyaltyWallet
from .rules import (
    LoyaltyRules,
    credit_cents_to_points,
    earn_points_for_amount,
    normalize_redeem,
    points_to_credit_cents,
)

logger = logging.getLogger("storefront.loyalty")

MAX_ABS_DELTA = 1_000_000
MAX_NOTE_LENGTH = 500


class LoyaltyError(Exception):
    """Raised when a points movement is not allowed."""

    def __init__(self, message: str, code: str, **details):
        super().__init__(message)
        self.code = code
        self.details = details


def get_rules() -> LoyaltyRules:
    return getattr(apps.get_app_config("loyalty"), "rules", None) or LoyaltyRules()


def _clean_note(note) -> Optional[str]:
    if not isinstance(note, str):
        return None
    note = note.strip()
    return note[:MAX_NOTE_LENGTH] or None


def _locked_wallet(customer) -> LoyaltyWallet:
    wallet, _ = LoyaltyWallet.objects.get_or_create(customer=customer)
    return LoyaltyWallet.objects.select_for_update().get(pk=wallet.pk)


@transaction.atomic
def adjust(
    *,
    customer,
    delta: int,
    type: str = LoyaltyTxType.ADJUSTMENT,
    source: str = "",
    note=None,
    order=None,
    cart=None,
) -> int:
    """Apply a signed points delta and return the new balance.

    Raises ``LoyaltyError`` with code ``insufficient_balance`` (no changes made)
    when the balance would go negative.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0 or abs(delta) > MAX_ABS_DELTA:
        raise LoyaltyError("Points must be a non-zero whole number.", code="invalid_points")

    wallet = _locked_wallet(customer)
    new_balance = wallet.points_balance + delta
    if new_balance < 0:
        raise LoyaltyError(
            "Insufficient points balance.",
            code="insufficient_balance",
            balance=wallet.points_balance,
            requested=-delta,
        )

    wallet.points_balance = new_balance
    if type == LoyaltyTxType.REFUND and delta > 0:
        # a refund hands back redeemed points, it is not new earning
        wallet.lifetime_redeemed = max(0, wallet.lifetime_redeemed - delta)
    else:
        wallet.lifetime_earned += max(delta, 0)
        wallet.lifetime_redeemed += max(-delta, 0)
    wallet.save(update_fields=["points_balance", "lifetime_earned", "lifetime_redeemed", "updated_at"])
    LoyaltyTransaction.objects.create(
        customer=customer,
        wallet=wallet,
        points=delta,
        type=type,
        source=source,
        order=order,
        cart=cart,
        note=_clean_note(note),
    )
    logger.info(
        "loyalty.adjusted",
        extra={
            "event": "loyalty.adjusted",
            "customer_id": customer.pk,
            "delta": delta,
            "type": str(type),
            "balance": new_balance,
            "order_id": getattr(order, "pk", None),
        },
    )
    return new_balance


def _lock_customer_cart(customer, cart: Cart) -> Cart:
    locked = Cart.objects.select_for_update().get(pk=cart.pk)
    if locked.user_id != customer.pk:
        raise LoyaltyError("Cart does not belong to this customer.", code="cart_not_owned")
    if not locked.is_open:
        raise LoyaltyError("Cart is no longer open.", code="cart_closed")
    return locked


@transaction.atomic
def release_cart_credit(*, customer, cart: Cart) -> int:
    """Remove the cart's loyalty credit and refund its points; returns points refunded."""
    credit = CartCredit.objects.select_for_update().filter(cart=cart, reason=CreditReason.LOYALTY).first()
    if credit is None:
        return 0
    refunded = int(credit.points)
    credit.delete()
    Cart.objects.filter(pk=cart.pk, status=CartStatus.CHECKOUT).update(status=CartStatus.OPEN)
    if refunded:
        adjust(
            customer=customer,
            delta=refunded,
            type=LoyaltyTxType.REFUND,
            source="cart_credit",
            cart=cart,
            note=f"Credit removed from cart {cart.pk}",
        )
    return refunded


@transaction.atomic
def fit_cart_credit(*, cart: Cart, rules: Optional[LoyaltyRules] = None) -> int:
    """Shrink the cart's loyalty credit to what its current subtotal can absorb.

    Called under the cart lock after lines change. Points above the new cap
    go back to the wallet; returns points refunded.
    """
    credit = CartCredit.objects.select_for_update().filter(cart=cart, reason=CreditReason.LOYALTY).first()
    if credit is None:
        return 0
    rules = rules or get_rules()
    subtotal = cart_totals(cart=cart).subtotal_cents
    keep = normalize_redeem(min(int(credit.points), credit_cents_to_points(subtotal, rules)), rules)
    excess = int(credit.points) - keep
    if excess <= 0:
        return 0
    if keep == 0:
        credit.delete()
    else:
        credit.points = keep
        credit.amount_cents = points_to_credit_cents(keep, rules)
        credit.save(update_fields=["points", "amount_cents", "updated_at"])
    if cart.user_id:
        adjust(
            customer=cart.user,
            delta=excess,
            type=LoyaltyTxType.REFUND,
            source="cart_credit",
            cart=cart,
            note=f"Credit reduced on cart {cart.pk}",
        )
    logger.info(
        "loyalty.credit_reduced",
        extra={"event": "loyalty.credit_reduced", "cart_id": cart.pk, "points": keep, "refunded": excess},
    )
    return excess


@transaction.atomic
def apply_points_to_cart(*, customer, cart: Cart, points, rules: Optional[LoyaltyRules] = None) -> Optional[CartCredit]:
    """Turn points into the cart's single loyalty credit.

    The request is normalized to the redemption step and capped at what the
    cart's subtotal can absorb. A request that normalizes to zero leaves the
    cart untouched and returns its current credit. Applying again replaces the
    previous credit after refunding its points.
    """
    rules = rules or get_rules()
    requested = normalize_redeem(points, rules)
    if requested == 0:
        return CartCredit.objects.filter(cart=cart, reason=CreditReason.LOYALTY).first()

    cart = _lock_customer_cart(customer, cart)
    release_cart_credit(customer=customer, cart=cart)

    subtotal = cart_totals(cart=cart).subtotal_cents
    usable = normalize_redeem(min(requested, credit_cents_to_points(subtotal, rules)), rules)
    if usable == 0:
        return None
    if cart.status == CartStatus.CHECKOUT:
        cart.status = CartStatus.OPEN
        cart.save(update_fields=["status", "updated_at"])

    adjust(
        customer=customer,
        delta=-usable,
        type=LoyaltyTxType.REDEEM,
        source="cart_credit",
        cart=cart,
        note=f"Applied to cart {cart.pk}",
    )
    credit = CartCredit.objects.create(
        cart=cart,
        reason=CreditReason.LOYALTY,
        amount_cents=points_to_credit_cents(usable, rules),
        points=usable,
    )
    logger.info(
        "loyalty.credit_applied",
        extra={
            "event": "loyalty.credit_applied",
            "customer_id": customer.pk,
            "cart_id": cart.pk,
            "points": usable,
            "amount_cents": credit.amount_cents,
        },
    )
    return credit


def settle_for_order(*, order, cart: Cart, rules: Optional[LoyaltyRules] = None) -> int:
    """Ledger side of order finalization; runs inside the finalize transaction.

    Links the cart's redemption rows to the order (the points were debited when
    the credit was applied) and awards earn points to signed-in owners on the
    amount actually paid for goods. Returns points earned.
    """
    LoyaltyTransaction.objects.filter(cart=cart, order__isnull=True).update(order=order)
    if not order.user_id:
        return 0
    if LoyaltyTransaction.objects.filter(order=order, type=LoyaltyTxType.EARN).exists():
        return 0
    earned = earn_points_for_amount(order.subtotal_cents - order.discount_cents, order.currency, rules or get_rules())
    if earned <= 0:
        return 0
    adjust(
        customer=order.user,
        delta=earned,
        type=LoyaltyTxType.EARN,
        source="purchase",
        order=order,
        note=f"Order {order.number}",
    )
    return earned
