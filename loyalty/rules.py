"""Loyalty arithmetic: earn and redeem rates, redemption steps and tiers.

Pure functions over integers; the rates come from a ``LoyaltyRules`` built
once at startup from settings (see ``LoyaltyConfig.ready``).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from common.money import ceil_int, parse_decimal, round_half_up


@dataclass(frozen=True)
class LoyaltyRules:
    earn_points_per_unit: dict = field(default_factory=lambda: {"USD": 10, "CAD": 10})
    points_per_credit_unit: int = 100
    redeem_min_points: int = 100
    redeem_increment: int = 100

    @classmethod
    def from_settings(cls, settings) -> "LoyaltyRules":
        earn = getattr(settings, "LOYALTY_EARN_POINTS_PER_UNIT", 10)
        if not isinstance(earn, dict):
            earn = {"USD": int(earn), "CAD": int(earn)}
        return cls(
            earn_points_per_unit=earn,
            points_per_credit_unit=max(1, int(getattr(settings, "LOYALTY_POINTS_PER_CREDIT_UNIT", 100))),
            redeem_min_points=max(0, int(getattr(settings, "LOYALTY_REDEEM_MIN_POINTS", 100))),
            redeem_increment=max(1, int(getattr(settings, "LOYALTY_REDEEM_INCREMENT", 100))),
        )


@dataclass(frozen=True)
class Tier:
    name: str
    min_points: int


TIERS = (
    Tier("Bronze", 0),
    Tier("Silver", 1000),
    Tier("Gold", 5000),
    Tier("Platinum", 20000),
)


def earn_points_for_amount(amount_cents: int, currency: str, rules: Optional[LoyaltyRules] = None) -> int:
    """Points earned for spending ``amount_cents``; rounds to the nearest point."""
    rules = rules or LoyaltyRules()
    rate = parse_decimal(rules.earn_points_per_unit.get(str(currency).upper(), 0)) or Decimal("0")
    if amount_cents <= 0 or rate <= 0:
        return 0
    return max(0, round_half_up(Decimal(int(amount_cents)) / 100 * rate))


def normalize_redeem(points, rules: Optional[LoyaltyRules] = None) -> int:
    """Clamp a redemption request: under the minimum is 0, otherwise round down to the increment."""
    rules = rules or LoyaltyRules()
    parsed = parse_decimal(points)
    if parsed is None or parsed < rules.redeem_min_points or parsed <= 0:
        return 0
    whole = int(parsed)
    return whole - (whole % rules.redeem_increment)


def points_to_credit_cents(points: int, rules: Optional[LoyaltyRules] = None) -> int:
    rules = rules or LoyaltyRules()
    return max(0, int(points)) * 100 // rules.points_per_credit_unit


def credit_cents_to_points(cents: int, rules: Optional[LoyaltyRules] = None) -> int:
    rules = rules or LoyaltyRules()
    return ceil_int(Decimal(max(0, int(cents))) * rules.points_per_credit_unit / 100)


def tier_for(balance: int) -> Tier:
    current = TIERS[0]
    for tier in TIERS:
        if balance >= tier.min_points:
            current = tier
    return current


def snapshot(balance: int) -> dict:
    """Balance, current tier and the distance to the next one."""
    balance = max(0, int(balance))
    tier = tier_for(balance)
    following = next((t for t in TIERS if t.min_points > balance), None)
    return {
        "balance": balance,
        "tier": tier.name,
        "next_tier": following.name if following else None,
        "next_tier_at": following.min_points if following else None,
        "points_to_next": following.min_points - balance if following else 0,
    }
