import pytest
from loyalty.rules import (
    LoyaltyRules,
    credit_cents_to_points,
    earn_points_for_amount,
    normalize_redeem,
    points_to_credit_cents,
    snapshot,
    tier_for,
)

RULES = LoyaltyRules()


@pytest.mark.parametrize(
    "cents,currency,expected",
    [(1300, "USD", 130), (1249, "usd", 125), (0, "USD", 0), (-500, "USD", 0), (1000, "EUR", 0)],
)
def test_earn_points(cents, currency, expected):
    assert earn_points_for_amount(cents, currency, RULES) == expected


@pytest.mark.parametrize(
    "requested,expected",
    [(99, 0), (100, 100), (199, 100), (550, 500), ("300", 300), (None, 0), ("lots", 0), (-200, 0)],
)
def test_normalize_redeem(requested, expected):
    assert normalize_redeem(requested, RULES) == expected


def test_custom_increment_and_minimum():
    rules = LoyaltyRules(redeem_min_points=250, redeem_increment=50)
    assert normalize_redeem(240, rules) == 0
    assert normalize_redeem(299, rules) == 250


def test_points_and_credit_conversion():
    assert points_to_credit_cents(500, RULES) == 500
    assert credit_cents_to_points(1234, RULES) == 1234
    rules = LoyaltyRules(points_per_credit_unit=200)
    assert points_to_credit_cents(500, rules) == 250
    assert credit_cents_to_points(251, rules) == 502


def test_rules_from_settings(settings):
    settings.LOYALTY_EARN_POINTS_PER_UNIT = 5
    settings.LOYALTY_REDEEM_INCREMENT = 0
    rules = LoyaltyRules.from_settings(settings)
    assert rules.earn_points_per_unit == {"USD": 5, "CAD": 5}
    assert rules.redeem_increment == 1


@pytest.mark.parametrize("balance,tier", [(0, "Bronze"), (999, "Bronze"), (1000, "Silver"), (5000, "Gold"), (20000, "Platinum")])
def test_tier_for(balance, tier):
    assert tier_for(balance).name == tier


def test_snapshot_distance_to_next_tier():
    assert snapshot(1200) == {
        "balance": 1200,
        "tier": "Silver",
        "next_tier": "Gold",
        "next_tier_at": 5000,
        "points_to_next": 3800,
    }
    assert snapshot(25000)["next_tier"] is None
    assert snapshot(25000)["points_to_next"] == 0
