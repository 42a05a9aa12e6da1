"""Loyalty wallet and its append-only transaction log."""

from common.choices import LoyaltyTxType
from common.models import TimeStampedModel
from django.conf import settings
from django.db import models


class LoyaltyWallet(TimeStampedModel):
    """Running points balance for one customer."""

    customer = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="loyalty_wallet", on_delete=models.CASCADE)
    points_balance = models.IntegerField(default=0)
    lifetime_earned = models.PositiveIntegerField(default=0)
    lifetime_redeemed = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(name="loyalty_balance_non_negative", check=models.Q(points_balance__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"LoyaltyWallet#{self.id} customer={self.customer_id} balance={self.points_balance}"


class LoyaltyTransaction(models.Model):
    """One signed points movement; never updated except to link its order."""

    customer = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="loyalty_transactions", on_delete=models.CASCADE)
    wallet = models.ForeignKey(LoyaltyWallet, related_name="transactions", on_delete=models.CASCADE)
    points = models.IntegerField()
    type = models.CharField(max_length=16, choices=LoyaltyTxType.choices)
    source = models.CharField(max_length=32, blank=True, default="")
    order = models.ForeignKey(
        "orders.Order", null=True, blank=True, related_name="loyalty_transactions", on_delete=models.SET_NULL
    )
    cart = models.ForeignKey(
        "cart.Cart", null=True, blank=True, related_name="loyalty_transactions", on_delete=models.SET_NULL
    )
    note = models.CharField(max_length=500, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["customer", "created_at"], name="loyaltytx_customer_created_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"LoyaltyTransaction#{self.id} customer={self.customer_id} {self.type} {self.points:+d}"
