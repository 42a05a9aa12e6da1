"""Money parsing helpers.

Everything past these functions works in integer minor units (cents). Values
arriving from vendor JSON or the stored shipping selection are in major units
(dollars) and are converted here, with half-up rounding.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

CENT = Decimal("1")
HUNDRED = Decimal("100")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse ints, floats, Decimals and numeric strings; None when not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "").lstrip("$")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def round_half_up(value) -> int:
    """Round a Decimal/number to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def ceil_int(value) -> int:
    return int(Decimal(str(value)).quantize(CENT, rounding=ROUND_CEILING))


def dollars_to_cents(value: Any) -> Optional[int]:
    """Convert a major-unit amount to cents; None when the value is not numeric."""
    parsed = parse_decimal(value)
    if parsed is None:
        return None
    return round_half_up(parsed * HUNDRED)


def cents_to_dollars(cents: int) -> Decimal:
    return (Decimal(int(cents)) / HUNDRED).quantize(Decimal("0.01"))


def _positive_cents_from_dollars(value: Any) -> Optional[int]:
    cents = dollars_to_cents(value)
    if cents is None or cents <= 0:
        return None
    return cents


def shipping_cents_from_selection(selection: Any) -> int:
    """Resolve the selected-shipping record to integer cents.

    Stored selections have taken several shapes over time. The first usable
    field in this chain wins:

    1. ``cost_cents``: integer cents
    2. ``cost``: dollars
    3. ``rate.cost``: dollars, nested rate object
    4. ``rate.amount``: dollars, nested rate object
    5. ``price``: dollars
    6. ``amount``: dollars

    Missing, non-numeric, non-finite and non-positive values mean no shipping
    has been selected yet and yield 0.
    """
    if not isinstance(selection, dict):
        return 0

    raw_cents = parse_decimal(selection.get("cost_cents"))
    if raw_cents is not None and raw_cents > 0:
        return round_half_up(raw_cents)

    rate = selection.get("rate")
    rate = rate if isinstance(rate, dict) else {}
    for candidate in (
        selection.get("cost"),
        rate.get("cost"),
        rate.get("amount"),
        selection.get("price"),
        selection.get("amount"),
    ):
        cents = _positive_cents_from_dollars(candidate)
        if cents is not None:
            return cents
    return 0
