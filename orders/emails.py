"""Order emails, sent through Django's email backend with links built from FRONTEND_URL."""

import logging

from common.money import cents_to_dollars
from django.conf import settings
from django.core.mail import send_mail

from .models import Order

logger = logging.getLogger("storefront.orders")


def _order_url(order: Order) -> str:
    frontend = getattr(settings, "FRONTEND_URL", "").rstrip("/")
    return f"{frontend}/orders/{order.id}" if frontend else ""


def send_order_confirmation_email(order_id: int) -> bool:
    """Email the order summary to the buyer; returns False when there is no address.

    Called after the finalize transaction commits, so a mail failure never
    touches the order.
    """
    order = Order.objects.select_related("user").filter(id=order_id).first()
    if order is None:
        return False
    to_email = order.email or getattr(order.user, "email", None)
    if not to_email:
        return False

    lines = [
        "Thank you for your purchase!",
        "",
        f"Order: {order.number or order.id}",
        f"Subtotal: {cents_to_dollars(order.subtotal_cents)} {order.currency}",
    ]
    if order.discount_cents:
        lines.append(f"Credits: -{cents_to_dollars(order.discount_cents)} {order.currency}")
    lines += [
        f"Shipping: {cents_to_dollars(order.shipping_cents)} {order.currency}",
        f"Tax: {cents_to_dollars(order.tax_cents)} {order.currency}",
        f"Total: {cents_to_dollars(order.total_cents)} {order.currency}",
    ]
    url = _order_url(order)
    if url:
        lines += ["", f"You can view your order here: {url}"]

    sent = send_mail(
        f"Your order {order.number or order.id} is confirmed",
        "\n".join(lines) + "\n",
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        [to_email],
        fail_silently=True,
    )
    logger.info(
        "order.confirmation_sent",
        extra={"event": "order.confirmation_sent", "order_id": order.id, "delivered": bool(sent)},
    )
    return bool(sent)
