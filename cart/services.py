"""Cart services: line pricing, shipping selection and guest cart claims."""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from common.choices import CartStatus, CreditReason
from common.money import dollars_to_cents, parse_decimal
from common.principal import Principal
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from pricing.services import quote_line
from pricing.vendor import ShippingRate, ShippingUnavailable, VendorClient, VendorError

from .models import Cart, CartCredit, CartLine
from .selectors import get_open_cart, get_open_cart_for_session, get_open_cart_for_user

logger = logging.getLogger("storefront.cart")


class CartError(Exception):
    """Raised for cart mutation failures."""

    def __init__(self, message: str, code: str = "cart_error"):
        super().__init__(message)
        self.code = code


def _require_cart(principal: Principal, *, create: bool = False, market: Optional[str] = None) -> Cart:
    if principal.is_anonymous:
        raise CartError("A signed-in user or X-Session-Id is required.", code="no_principal")
    cart = get_open_cart(principal=principal, market=market, create=create)
    if cart is None:
        raise CartError("Cart not found.", code="cart_not_found")
    return cart


def _lock(cart: Cart) -> Cart:
    locked = Cart.objects.select_for_update().get(pk=cart.pk)
    if not locked.is_open:
        raise CartError("Cart is no longer open.", code="cart_closed")
    return locked


def _fit_credit(cart: Cart) -> None:
    """Lines changed: the loyalty credit may no longer fit under the subtotal."""
    from loyalty.services import fit_cart_credit

    fit_cart_credit(cart=cart)


def _reopen(cart: Cart) -> None:
    """Any change during checkout sends the cart back to open."""
    if cart.status == CartStatus.CHECKOUT:
        cart.status = CartStatus.OPEN
    cart.save(update_fields=["status", "updated_at"])


def _owner_extra(principal: Principal) -> dict:
    return {
        "user_id": getattr(principal.user, "pk", None),
        "session_id": principal.session_id,
        "guest": principal.user is None,
    }


def add_line(
    *,
    principal: Principal,
    product_id: int,
    quantity: int,
    option_ids: Iterable,
    artwork: Optional[dict] = None,
    market: Optional[str] = None,
    client: Optional[VendorClient] = None,
) -> CartLine:
    """Price a product configuration and add it to the principal's cart.

    The vendor call happens before the write transaction. Raises
    ``OptionValidationError`` or ``PricingUnavailable`` from pricing.
    """
    if quantity <= 0:
        raise CartError("Quantity must be positive", code="invalid_quantity")
    cart = _require_cart(principal, create=True, market=market)
    quote = quote_line(
        product_id=product_id, quantity=quantity, option_ids=option_ids, market=cart.market, client=client
    )
    with transaction.atomic():
        cart = _lock(cart)
        line = CartLine.objects.create(
            cart=cart,
            product_id=quote.product_id,
            quantity=quote.quantity,
            option_ids=quote.option_ids,
            unit_price_cents=quote.unit_price_cents,
            line_total_cents=quote.line_total_cents,
            currency=quote.currency,
            artwork=artwork,
        )
        _reopen(cart)
    logger.info(
        "cart.line_added",
        extra={
            "event": "cart.line_added",
            "cart_id": cart.id,
            "line_id": line.id,
            "product_id": line.product_id,
            "quantity": line.quantity,
            "line_total_cents": line.line_total_cents,
            **_owner_extra(principal),
        },
    )
    return line


def update_line(
    *,
    principal: Principal,
    line_id: int,
    quantity: Optional[int] = None,
    option_ids: Optional[Iterable] = None,
    client: Optional[VendorClient] = None,
) -> CartLine:
    """Change a line's quantity and/or options; the line is always re-priced."""
    if quantity is not None and quantity <= 0:
        raise CartError("Quantity must be positive", code="invalid_quantity")
    cart = _require_cart(principal)
    try:
        line = CartLine.objects.get(id=line_id, cart=cart)
    except CartLine.DoesNotExist:
        raise CartError("Cart line not found.", code="line_not_found")

    quote = quote_line(
        product_id=line.product_id,
        quantity=quantity if quantity is not None else line.quantity,
        option_ids=option_ids if option_ids is not None else line.option_ids,
        market=cart.market,
        client=client,
    )
    with transaction.atomic():
        cart = _lock(cart)
        line = CartLine.objects.select_for_update().get(id=line_id, cart=cart)
        line.quantity = quote.quantity
        line.option_ids = quote.option_ids
        line.unit_price_cents = quote.unit_price_cents
        line.line_total_cents = quote.line_total_cents
        line.currency = quote.currency
        line.save(
            update_fields=["quantity", "option_ids", "unit_price_cents", "line_total_cents", "currency", "updated_at"]
        )
        _fit_credit(cart)
        _reopen(cart)
    logger.info(
        "cart.line_updated",
        extra={
            "event": "cart.line_updated",
            "cart_id": cart.id,
            "line_id": line.id,
            "quantity": line.quantity,
            "line_total_cents": line.line_total_cents,
            **_owner_extra(principal),
        },
    )
    return line


@transaction.atomic
def remove_line(*, principal: Principal, line_id: int) -> None:
    """Remove a line from the cart; unknown lines are a no-op."""
    cart = _lock(_require_cart(principal))
    deleted, _ = CartLine.objects.filter(id=line_id, cart=cart).delete()
    if not deleted:
        return
    _fit_credit(cart)
    _reopen(cart)
    logger.info(
        "cart.line_removed",
        extra={"event": "cart.line_removed", "cart_id": cart.id, "line_id": line_id, **_owner_extra(principal)},
    )


@transaction.atomic
def clear_cart(*, principal: Principal) -> None:
    cart = _lock(_require_cart(principal))
    CartLine.objects.filter(cart=cart).delete()
    _fit_credit(cart)
    _reopen(cart)
    logger.info("cart.cleared", extra={"event": "cart.cleared", "cart_id": cart.id, **_owner_extra(principal)})


def validate_shipping_choice(
    *,
    carrier: str,
    method: str,
    cost,
    days=None,
    currency: Optional[str] = None,
    country: str = "",
    state: str = "",
    zip: str = "",
) -> dict:
    """Build the stored shipping selection; cost is in dollars."""
    carrier = str(carrier or "").strip()
    method = str(method or "").strip()
    if not carrier or not method:
        raise CartError("carrier and method are required.", code="invalid_shipping")
    parsed_cost = parse_decimal(cost)
    if parsed_cost is None or parsed_cost < 0:
        raise CartError("cost must be a non-negative amount.", code="invalid_shipping")
    parsed_days = None
    if days not in (None, ""):
        try:
            parsed_days = max(0, int(days))
        except (TypeError, ValueError):
            raise CartError("days must be a whole number.", code="invalid_shipping")
    return {
        "carrier": carrier,
        "method": method,
        "cost": str(parsed_cost.quantize(Decimal("0.01"))),
        "cost_cents": dollars_to_cents(parsed_cost),
        "days": parsed_days,
        "currency": currency,
        "country": str(country or "").upper(),
        "state": str(state or "").upper(),
        "zip": str(zip or "").strip(),
    }


@transaction.atomic
def choose_shipping(*, principal: Principal, **choice) -> Cart:
    """Store the selected shipping rate on the cart."""
    cart = _lock(_require_cart(principal))
    selection = validate_shipping_choice(**choice)
    selection["currency"] = selection["currency"] or cart.currency
    cart.selected_shipping = selection
    if cart.status == CartStatus.CHECKOUT:
        cart.status = CartStatus.OPEN
    cart.save(update_fields=["selected_shipping", "status", "updated_at"])
    logger.info(
        "cart.shipping_selected",
        extra={
            "event": "cart.shipping_selected",
            "cart_id": cart.id,
            "carrier": selection["carrier"],
            "method": selection["method"],
            "cost_cents": selection["cost_cents"],
            **_owner_extra(principal),
        },
    )
    return cart


def estimate_shipping(
    *, principal: Principal, destination: dict, client: Optional[VendorClient] = None
) -> list[ShippingRate]:
    """Ask the vendor for shipping rates for the current cart contents."""
    cart = _require_cart(principal)
    lines = list(cart.lines.all())
    if not lines:
        raise CartError("Cart is empty.", code="cart_empty")
    client = client or VendorClient.from_settings()
    items = [{"product_id": ln.product_id, "option_ids": ln.option_ids, "quantity": ln.quantity} for ln in lines]
    try:
        rates = client.estimate_shipping(items, destination, cart.currency)
    except VendorError as exc:
        raise ShippingUnavailable(str(exc), status=exc.status, path=exc.path) from exc
    if not rates:
        raise ShippingUnavailable("Vendor returned no shipping rates")
    return rates


@transaction.atomic
def claim_guest_cart(*, user, session_id: str) -> Cart:
    """Attach a guest session cart to ``user``.

    When the user already has an open cart, the guest lines move into it and
    the guest cart is deleted, unless the guest cart is already in checkout:
    then it is left as is so its payment can still finalize it. Closed carts
    and existing orders are untouched.
    """
    src = get_open_cart_for_session(session_id=session_id, create=False)
    dest = get_open_cart_for_user(user=user, create=False)
    if src is None:
        return dest or get_open_cart_for_user(user=user)
    src = Cart.objects.select_for_update().get(pk=src.pk)
    if dest is None:
        src.user = user
        src.save(update_fields=["user", "updated_at"])
        logger.info(
            "cart.claimed",
            extra={"event": "cart.claimed", "cart_id": src.id, "user_id": user.pk, "session_id": session_id},
        )
        return src

    if src.status == CartStatus.CHECKOUT:
        # a payment for the guest cart may be in flight; it must stay findable
        logger.info(
            "cart.claim_skipped",
            extra={
                "event": "cart.claim_skipped",
                "src_cart_id": src.id,
                "dest_cart_id": dest.id,
                "user_id": user.pk,
                "session_id": session_id,
            },
        )
        return dest

    dest = _lock(dest)
    CartLine.objects.filter(cart=src).update(cart=dest)
    if dest.selected_shipping is None and src.selected_shipping:
        dest.selected_shipping = src.selected_shipping
    if dest.status == CartStatus.CHECKOUT:
        dest.status = CartStatus.OPEN
    dest.save(update_fields=["selected_shipping", "status", "updated_at"])
    src.delete()
    logger.info(
        "cart.merged",
        extra={
            "event": "cart.merged",
            "src_cart_id": src.pk,
            "dest_cart_id": dest.id,
            "user_id": user.pk,
            "session_id": session_id,
        },
    )
    return dest


@transaction.atomic
def abandon_cart(*, cart: Cart) -> Cart:
    """Mark an open cart abandoned and hand back any loyalty points behind its credit."""
    from loyalty.services import release_cart_credit

    cart = _lock(cart)
    credit = CartCredit.objects.filter(cart=cart, reason=CreditReason.LOYALTY).first()
    if credit is not None and cart.user_id:
        release_cart_credit(customer=cart.user, cart=cart)
    cart.status = CartStatus.ABANDONED
    cart.save(update_fields=["status", "updated_at"])
    logger.info(
        "cart.abandoned",
        extra={"event": "cart.abandoned", "cart_id": cart.id, "user_id": cart.user_id, "session_id": cart.session_id},
    )
    return cart


def abandon_stale_carts(*, ttl_minutes: Optional[int] = None) -> int:
    """Abandon open carts untouched for longer than the TTL.

    Carts in checkout are skipped: a payment may still arrive for them.
    """
    ttl = int(ttl_minutes if ttl_minutes is not None else getattr(settings, "CART_ABANDON_TTL_MINUTES", 1440))
    cutoff = timezone.now() - timedelta(minutes=ttl)
    count = 0
    for cart in Cart.objects.filter(status=CartStatus.OPEN, updated_at__lt=cutoff).iterator():
        abandon_cart(cart=cart)
        count += 1
    return count