"""Orders: the immutable record of a paid cart."""

from common.choices import Currency, OrderStatus, PaymentProvider, PaymentStatus, TaxSource
from common.models import TimeStampedModel
from django.conf import settings
from django.db import models


class Order(TimeStampedModel):
    """Purchase order snapshotting a cart's totals at payment time.

    One order per (provider, provider_id) and at most one per cart; both are
    enforced by unique constraints as well as by the finalizer's checks.
    """

    STATUS_PLACED = OrderStatus.PLACED
    STATUS_CHOICES = OrderStatus.choices

    number = models.CharField(max_length=32, unique=True, null=True, blank=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, related_name="orders", on_delete=models.SET_NULL
    )
    owner_ref = models.CharField(max_length=128, db_index=True)
    email = models.EmailField(null=True, blank=True)
    cart = models.ForeignKey("cart.Cart", null=True, blank=True, related_name="orders", on_delete=models.SET_NULL)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PLACED, db_index=True)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PAID)
    provider = models.CharField(max_length=16, choices=PaymentProvider.choices, default=PaymentProvider.STRIPE)
    provider_id = models.CharField(max_length=255, null=True, blank=True)
    checkout_session_id = models.CharField(max_length=255, null=True, blank=True)
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.USD)
    subtotal_cents = models.PositiveIntegerField(default=0)
    shipping_cents = models.PositiveIntegerField(default=0)
    tax_cents = models.PositiveIntegerField(default=0)
    tax_source = models.CharField(max_length=32, choices=TaxSource.choices, default=TaxSource.UNKNOWN)
    discount_cents = models.PositiveIntegerField(default=0)
    credits_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)
    charged_total_cents = models.PositiveIntegerField(null=True, blank=True)
    total_mismatch_cents = models.IntegerField(default=0)
    shipping = models.JSONField(null=True, blank=True)
    placed_at = models.DateTimeField()

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["user", "status", "created_at"], name="order_user_status_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_id"],
                condition=models.Q(provider_id__isnull=False),
                name="unique_order_per_payment",
            ),
            models.UniqueConstraint(
                fields=["cart"],
                condition=models.Q(cart__isnull=False),
                name="unique_order_per_cart",
            ),
            models.CheckConstraint(
                name="order_total_consistent",
                check=models.Q(
                    total_cents=models.F("subtotal_cents")
                    - models.F("discount_cents")
                    + models.F("shipping_cents")
                    + models.F("tax_cents")
                ),
            ),
            models.CheckConstraint(
                name="order_discount_within_subtotal",
                check=models.Q(discount_cents__lte=models.F("subtotal_cents")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} owner={self.owner_ref} total={self.total_cents}"


class OrderItem(models.Model):
    """Line snapshot copied from a cart line when the order was written."""

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product_id = models.PositiveIntegerField()
    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.PositiveIntegerField(default=0)
    line_total_cents = models.PositiveIntegerField(default=0)
    option_ids = models.JSONField(default=list)
    artwork = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(name="orderitem_quantity_positive", check=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderItem#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"


class IdempotencyKey(TimeStampedModel):
    """Stores idempotent request results to prevent duplicate processing."""

    key = models.CharField(max_length=128)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE)
    scope = models.CharField(max_length=128)
    path = models.CharField(max_length=255)
    method = models.CharField(max_length=16)
    request_hash = models.CharField(max_length=64, null=True, blank=True)
    response_code = models.IntegerField(null=True, blank=True)
    response_json = models.JSONField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["key", "scope", "path", "method"], name="uniq_idem_scope_path_method"),
        ]
