"""Shared enumerations and choices used across apps."""

from django.db import models


class Market(models.TextChoices):
    """Storefront markets; each maps to a vendor store code and a currency."""

    US = "US", "United States"
    CA = "CA", "Canada"


class Currency(models.TextChoices):
    USD = "USD", "US Dollar"
    CAD = "CAD", "Canadian Dollar"


class CartStatus(models.TextChoices):
    """Statuses for shopping carts."""

    OPEN = "open", "Open"
    CHECKOUT = "checkout", "Checkout"
    CLOSED = "closed", "Closed"
    ABANDONED = "abandoned", "Abandoned"


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PLACED = "placed", "Placed"
    FULFILLED = "fulfilled", "Fulfilled"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PAID = "paid", "Paid"
    REFUNDED = "refunded", "Refunded"


class PaymentProvider(models.TextChoices):
    STRIPE = "stripe", "Stripe"
    FREE = "free", "Free (credits only)"


class TaxSource(models.TextChoices):
    """Where an order's tax figure came from."""

    CALCULATION = "stripe_tax_calculation", "Tax calculation"
    RECONCILED = "reconciled_from_total", "Reconciled from charged total"
    UNKNOWN = "unknown", "Unknown"


class CreditReason(models.TextChoices):
    LOYALTY = "loyalty", "Loyalty"
    PROMOTION = "promotion", "Promotion"


class LoyaltyTxType(models.TextChoices):
    EARN = "earn", "Earn"
    REDEEM = "redeem", "Redeem"
    REFUND = "refund", "Refund"
    ADJUSTMENT = "adjustment", "Adjustment"
    SIGNUP = "signup", "Signup"
    PROMOTION = "promotion", "Promotion"


STORE_CODES = {Market.US: 9, Market.CA: 6}


def store_code_for(market: str) -> int:
    """Vendor numeric store code for a market (US=9, CA=6)."""
    return STORE_CODES[Market.CA] if market == Market.CA else STORE_CODES[Market.US]


def currency_for(market: str) -> str:
    return Currency.CAD if market == Market.CA else Currency.USD
