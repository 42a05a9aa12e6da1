"""Cart app models.

Carts belong either to a signed-in user or to a guest session id. Prices are
stored in integer cents; a line's unit price times quantity is authoritative.
"""

from common.choices import CartStatus, CreditReason, Currency, Market
from common.models import TimeStampedModel
from django.conf import settings
from django.db import models

OPEN_STATUSES = (CartStatus.OPEN, CartStatus.CHECKOUT)


class Cart(TimeStampedModel):
    """Shopping cart bound to a user or a guest session."""

    STATUS_OPEN = CartStatus.OPEN
    STATUS_CHECKOUT = CartStatus.CHECKOUT
    STATUS_CLOSED = CartStatus.CLOSED
    STATUS_ABANDONED = CartStatus.ABANDONED
    STATUS_CHOICES = CartStatus.choices

    session_id = models.CharField(max_length=128, null=True, blank=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="carts", on_delete=models.SET_NULL
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)
    market = models.CharField(max_length=2, choices=Market.choices, default=Market.US)
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.USD)
    selected_shipping = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="cart_user_status_idx"),
            models.Index(fields=["session_id", "status"], name="cart_session_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["session_id"],
                condition=models.Q(status__in=["open", "checkout"], user__isnull=True),
                name="one_open_guest_cart_per_session",
            ),
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status__in=["open", "checkout"], user__isnull=False),
                name="one_open_cart_per_user",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Cart#{self.id} ({self.user_id or self.session_id})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class CartLine(TimeStampedModel):
    """One priced vendor product configuration in a cart."""

    cart = models.ForeignKey(Cart, related_name="lines", on_delete=models.CASCADE)
    product_id = models.PositiveIntegerField()
    quantity = models.PositiveIntegerField(default=1)
    option_ids = models.JSONField(default=list)
    unit_price_cents = models.PositiveIntegerField(default=0)
    line_total_cents = models.PositiveIntegerField(null=True, blank=True)
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.USD)
    artwork = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(name="cartline_quantity_positive", check=models.Q(quantity__gte=1)),
            models.CheckConstraint(
                name="cartline_total_matches_unit_price",
                check=models.Q(line_total_cents__isnull=True)
                | models.Q(line_total_cents=models.F("unit_price_cents") * models.F("quantity")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartLine#{self.id} cart={self.cart_id} product={self.product_id} qty={self.quantity}"


class CartCredit(TimeStampedModel):
    """A reason-tagged credit applied against a cart; one row per reason."""

    cart = models.ForeignKey(Cart, related_name="credits", on_delete=models.CASCADE)
    reason = models.CharField(max_length=32, choices=CreditReason.choices, default=CreditReason.LOYALTY)
    amount_cents = models.PositiveIntegerField(default=0)
    points = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "reason"], name="unique_credit_reason_per_cart"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartCredit#{self.id} cart={self.cart_id} {self.reason}={self.amount_cents}"
