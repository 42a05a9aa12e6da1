"""Read helpers for loyalty wallets."""

from .models import LoyaltyTransaction, LoyaltyWallet
from .rules import snapshot


def wallet_snapshot(*, customer) -> dict:
    """Tier snapshot plus lifetime counters; customers without a wallet read as zero."""
    wallet = LoyaltyWallet.objects.filter(customer=customer).first()
    data = snapshot(wallet.points_balance if wallet else 0)
    data["lifetime_earned"] = wallet.lifetime_earned if wallet else 0
    data["lifetime_redeemed"] = wallet.lifetime_redeemed if wallet else 0
    return data


def transactions_for(*, customer):
    return LoyaltyTransaction.objects.filter(customer=customer).select_related("order").order_by("-created_at", "-id")
