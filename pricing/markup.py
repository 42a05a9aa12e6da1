"""Tiered markup engine.

Converts a vendor cost into a sell price. Pure functions over integer cents and
an immutable ``MarkupConfig``; nothing here touches the network or database.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

from common.money import ceil_int, dollars_to_cents, parse_decimal, round_half_up

APPLY_LINE = "line"
APPLY_UNIT = "unit"

MAX_FLOOR_PCT = Decimal("0.95")
DEFAULT_MULTIPLIER = Decimal("1.6")


class PricingError(Exception):
    """Raised when a price cannot be computed from the inputs."""

    code = "pricing_error"


def _clamp_floor(value: Any) -> Decimal:
    parsed = parse_decimal(value)
    if parsed is None:
        return Decimal("0")
    return max(Decimal("0"), min(MAX_FLOOR_PCT, parsed))


@dataclass(frozen=True)
class MarkupTier:
    min_qty: int
    max_qty: Optional[int]
    multiplier: Decimal
    floor_pct: Optional[Decimal] = None

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_qty:
            return False
        return self.max_qty is None or quantity <= self.max_qty


@dataclass(frozen=True)
class MarkupConfig:
    """Markup rules for one market."""

    tiers: tuple[MarkupTier, ...] = field(default_factory=tuple)
    default_multiplier: Decimal = DEFAULT_MULTIPLIER
    min_margin_pct: Decimal = Decimal("0")
    apply_level: str = APPLY_LINE
    charm: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "MarkupConfig":
        """Build a config from settings, clamping and dropping unusable tiers.

        Tiers are sorted by ``min`` so the first match is the lowest band.
        """
        data = data or {}
        default_mult = parse_decimal(data.get("default_multiplier"))
        if default_mult is None or default_mult <= 0:
            default_mult = DEFAULT_MULTIPLIER
        return cls(
            tiers=parse_tiers(data.get("tiers") or [], default_mult),
            default_multiplier=default_mult,
            min_margin_pct=_clamp_floor(data.get("min_margin_pct")),
            apply_level=APPLY_UNIT if str(data.get("apply_level", "")).lower() == APPLY_UNIT else APPLY_LINE,
            charm=bool(data.get("charm", False)),
        )


def parse_tiers(rows: Iterable[dict], fallback_multiplier: Decimal) -> tuple[MarkupTier, ...]:
    tiers = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        min_qty = parse_decimal(row.get("min", 1))
        mult = parse_decimal(row.get("mult", row.get("multiplier", fallback_multiplier)))
        if min_qty is None or mult is None:
            continue
        raw_max = row.get("max")
        max_qty = None
        if raw_max is not None:
            parsed_max = parse_decimal(raw_max)
            if parsed_max is None:
                continue
            max_qty = max(int(parsed_max), 1)
        raw_floor = row.get("floor_pct", row.get("floorPct"))
        tiers.append(
            MarkupTier(
                min_qty=max(1, int(min_qty)),
                max_qty=max_qty,
                multiplier=mult,
                floor_pct=_clamp_floor(raw_floor) if raw_floor is not None else None,
            )
        )
    tiers.sort(key=lambda t: t.min_qty)
    return tuple(tiers)


@dataclass(frozen=True)
class PriceResult:
    unit_sell_cents: int
    line_sell_cents: int
    unit_cost_cents: int
    line_cost_cents: int
    quantity: int
    multiplier: Decimal
    floor_pct: Decimal


def clamp_quantity(quantity: Any) -> int:
    parsed = parse_decimal(quantity)
    if parsed is None or parsed < 1:
        return 1
    return int(parsed)


def pick_tier(config: MarkupConfig, quantity: Any) -> MarkupTier:
    """First tier whose [min, max] contains the quantity, else the default multiplier."""
    q = clamp_quantity(quantity)
    for tier in config.tiers:
        if tier.contains(q):
            return tier
    return MarkupTier(min_qty=1, max_qty=None, multiplier=config.default_multiplier)


def apply_min_margin(sell_cents, cost_cents: int, floor_pct: Decimal) -> int:
    """Never sell below ``cost / (1 - floor)`` when a floor is set."""
    sell = round_half_up(sell_cents)
    if floor_pct <= 0:
        return sell
    return max(sell, ceil_int(Decimal(cost_cents) / (Decimal("1") - floor_pct)))


def charm_99(cents: int) -> int:
    """Round up to the next ``.99`` ending; prices under $10 are left alone."""
    if cents < 1000:
        return cents
    dollars = cents // 100
    target = dollars * 100 + 99
    return target if target >= cents else (dollars + 1) * 100 + 99


def price(
    config: MarkupConfig,
    quantity: Any,
    line_cost_cents: Optional[int] = None,
    unit_cost_cents: Optional[int] = None,
) -> PriceResult:
    """Apply tiered markup to a vendor cost.

    A positive line cost wins; otherwise the unit cost times quantity is used.
    The result always satisfies ``unit_sell_cents * quantity == line_sell_cents``.
    """
    qty = clamp_quantity(quantity)
    line_cost = max(0, round_half_up(line_cost_cents or 0))
    if not line_cost:
        line_cost = max(0, round_half_up(unit_cost_cents or 0)) * qty
    unit_cost = round_half_up(Decimal(line_cost) / qty)

    tier = pick_tier(config, qty)
    mult = tier.multiplier
    floor_pct = max(config.min_margin_pct, tier.floor_pct or Decimal("0"))

    if config.apply_level == APPLY_UNIT:
        unit_sell = apply_min_margin(Decimal(unit_cost) * mult, unit_cost, floor_pct)
        if floor_pct > 0:
            # unit cost is rounded, so hold the floor against the real line cost
            unit_sell = max(unit_sell, ceil_int(Decimal(apply_min_margin(0, line_cost, floor_pct)) / qty))
        if config.charm:
            unit_sell = charm_99(unit_sell)
    else:
        line_sell = apply_min_margin(Decimal(line_cost) * mult, line_cost, floor_pct)
        if config.charm:
            line_sell = charm_99(line_sell)
        unit_sell = round_half_up(Decimal(line_sell) / qty)
        if floor_pct > 0:
            # rounding the unit down must not take the line under the floor
            floor_line = apply_min_margin(0, line_cost, floor_pct)
            if unit_sell * qty < floor_line:
                unit_sell = ceil_int(Decimal(floor_line) / qty)

    return PriceResult(
        unit_sell_cents=unit_sell,
        line_sell_cents=unit_sell * qty,
        unit_cost_cents=unit_cost,
        line_cost_cents=line_cost,
        quantity=qty,
        multiplier=mult,
        floor_pct=floor_pct,
    )


def extract_vendor_cost_cents(payload: Any, quantity: Any) -> int:
    """Pull a line cost in cents out of a vendor or cached price payload.

    Tried in order: ``line_price_cents``, ``unit_price_cents`` x qty,
    ``line_price`` dollars, ``unit_price`` dollars x qty, then the raw vendor
    shapes ``price``, ``response.price`` and ``price2.price`` (dollars per
    configured unit, so multiplied by qty).
    Raises ``PricingError`` when none of them is usable.
    """
    if isinstance(payload, (int, float, Decimal, str)) and not isinstance(payload, bool):
        cents = dollars_to_cents(payload)
        if cents is not None and cents >= 0:
            return cents * clamp_quantity(quantity)
        raise PricingError("Vendor price is not a number")
    if not isinstance(payload, dict):
        raise PricingError("Vendor price payload is empty")

    qty = clamp_quantity(quantity)

    line_cents = parse_decimal(payload.get("line_price_cents"))
    if line_cents is not None and line_cents >= 0:
        return round_half_up(line_cents)
    unit_cents = parse_decimal(payload.get("unit_price_cents"))
    if unit_cents is not None and unit_cents >= 0:
        return round_half_up(unit_cents) * qty

    line_dollars = dollars_to_cents(payload.get("line_price"))
    if line_dollars is not None and line_dollars >= 0:
        return line_dollars
    unit_dollars = dollars_to_cents(payload.get("unit_price"))
    if unit_dollars is not None and unit_dollars >= 0:
        return unit_dollars * qty

    response = payload.get("response")
    price2 = payload.get("price2")
    for candidate in (
        payload.get("price"),
        response.get("price") if isinstance(response, dict) else None,
        price2.get("price") if isinstance(price2, dict) else None,
    ):
        cents = dollars_to_cents(candidate)
        if cents is not None and cents >= 0:
            return cents * qty
    raise PricingError("Vendor price payload has no usable price field")
