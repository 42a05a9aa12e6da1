"""Read-side cart queries and the cart totals aggregator."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from common.choices import CartStatus, Market, currency_for
from common.money import parse_decimal, shipping_cents_from_selection
from django.db.models import Sum

from .models import OPEN_STATUSES, Cart, CartCredit

logger = logging.getLogger("storefront.cart")


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    shipping_cents: int
    credits_cents: int
    discount_cents: int
    currency: str

    @property
    def net_subtotal_cents(self) -> int:
        """Subtotal after credits; this is the taxable base."""
        return self.subtotal_cents - self.discount_cents

    @property
    def pre_tax_total_cents(self) -> int:
        return self.net_subtotal_cents + self.shipping_cents


def line_total_cents(line) -> int:
    """A line's total in cents, with unit price x quantity as the source of truth.

    A stored total is used only when it is present, numeric and agrees with
    the recomputed value; disagreement is logged and the recomputed value wins.
    """
    quantity = max(1, int(line.quantity or 1))
    computed = max(0, int(line.unit_price_cents or 0)) * quantity
    stored = parse_decimal(getattr(line, "line_total_cents", None))
    if stored is None:
        return computed
    if stored != computed:
        logger.warning(
            "cart.line_total_mismatch",
            extra={
                "event": "cart.line_total_mismatch",
                "line_id": getattr(line, "id", None),
                "stored_cents": str(stored),
                "computed_cents": computed,
            },
        )
        return computed
    return int(stored)


def subtotal_cents(lines: Iterable) -> int:
    return max(0, sum(line_total_cents(line) for line in lines))


def credits_cents(*, cart: Cart) -> int:
    total = CartCredit.objects.filter(cart=cart).aggregate(total=Sum("amount_cents"))["total"]
    return max(0, int(total or 0))


def cart_totals(*, cart: Cart) -> CartTotals:
    """Subtotal, selected shipping and credits for a cart, all in cents.

    Credits become a discount capped at the subtotal; they never reduce shipping.
    """
    subtotal = subtotal_cents(cart.lines.all())
    credits = credits_cents(cart=cart)
    return CartTotals(
        subtotal_cents=subtotal,
        shipping_cents=shipping_cents_from_selection(cart.selected_shipping),
        credits_cents=credits,
        discount_cents=min(credits, subtotal),
        currency=cart.currency,
    )


def get_open_cart_for_user(*, user, market: Optional[str] = None, create: bool = True) -> Optional[Cart]:
    """Return the user's open cart, creating it if missing and ``create`` is set."""
    if not create:
        return Cart.objects.filter(user=user, status__in=OPEN_STATUSES).first()
    market = market or Market.US
    cart, _ = Cart.objects.get_or_create(
        user=user,
        status__in=OPEN_STATUSES,
        defaults={"market": market, "currency": currency_for(market)},
    )
    return cart


def get_open_cart_for_session(*, session_id: str, market: Optional[str] = None, create: bool = True) -> Optional[Cart]:
    """Return the guest session's open cart, creating it if missing and ``create`` is set."""
    if not create:
        return Cart.objects.filter(user__isnull=True, session_id=session_id, status__in=OPEN_STATUSES).first()
    market = market or Market.US
    cart, _ = Cart.objects.get_or_create(
        user=None,
        session_id=session_id,
        status__in=OPEN_STATUSES,
        defaults={"market": market, "currency": currency_for(market)},
    )
    return cart


def get_open_cart(*, principal, market: Optional[str] = None, create: bool = True) -> Optional[Cart]:
    if principal.user is not None:
        return get_open_cart_for_user(user=principal.user, market=market, create=create)
    if principal.session_id:
        return get_open_cart_for_session(session_id=principal.session_id, market=market, create=create)
    return None


def find_unclosed_cart(*, cart_id=None, session_id: Optional[str] = None) -> Optional[Cart]:
    """Locate the cart a payment refers to.

    An explicit cart id wins; otherwise the most recently updated non-closed
    cart for the guest session id. Closed carts are never returned.
    """
    qs = Cart.objects.exclude(status=CartStatus.CLOSED)
    if cart_id:
        try:
            cart = qs.filter(id=int(cart_id)).first()
        except (TypeError, ValueError):
            cart = None
        if cart is not None:
            return cart
    if session_id:
        return qs.filter(session_id=session_id).order_by("-updated_at", "-id").first()
    return None
