"""Tax reconciliation for finalized orders.

Credits reduce the taxable base, so every function here takes the net
subtotal (subtotal minus discount), never the gross one.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import stripe
from common.choices import TaxSource

logger = logging.getLogger("storefront.orders")


@dataclass(frozen=True)
class TaxResult:
    tax_cents: int
    source: str


def reconcile_tax(
    *,
    net_subtotal_cents: int,
    shipping_cents: int,
    tax_calculation_id: Optional[str] = None,
    charged_total_cents: Optional[int] = None,
    gateway=None,
) -> TaxResult:
    """Work out the tax on an order.

    1. A tax calculation id, when present, is looked up and its exclusive tax
       amount used if positive.
    2. Otherwise the tax is what the processor charged beyond net subtotal
       plus shipping, floored at zero.
    3. With neither, tax is 0 and marked ``unknown``.

    Lookup failures are logged and fall through to the next step; they never
    abort finalization.
    """
    if tax_calculation_id and gateway is not None:
        amount = 0
        try:
            amount = int(gateway.retrieve_tax_amount(tax_calculation_id) or 0)
        except (stripe.StripeError, ValueError, TypeError) as exc:
            logger.warning(
                "order.tax_lookup_failed",
                extra={
                    "event": "order.tax_lookup_failed",
                    "tax_calculation_id": tax_calculation_id,
                    "error": exc.__class__.__name__,
                },
            )
        if amount > 0:
            return TaxResult(tax_cents=amount, source=TaxSource.CALCULATION)

    if charged_total_cents is not None:
        return reconcile_from_total(net_subtotal_cents, shipping_cents, charged_total_cents)
    return TaxResult(tax_cents=0, source=TaxSource.UNKNOWN)


def reconcile_from_total(net_subtotal_cents: int, shipping_cents: int, charged_total_cents: int) -> TaxResult:
    tax = max(0, int(charged_total_cents) - (int(net_subtotal_cents) + int(shipping_cents)))
    return TaxResult(tax_cents=tax, source=TaxSource.RECONCILED)


def allocate_discount(amounts: list[int], discount_cents: int) -> list[int]:
    """Spread a discount across line amounts in proportion to their size.

    Uses largest remainders so the allocated parts add up to the discount
    exactly; the discount is capped at the sum and no line goes negative.
    Returns the discounted line amounts.
    """
    total = sum(max(0, int(a)) for a in amounts)
    discount = max(0, min(int(discount_cents), total))
    if not amounts or discount == 0 or total == 0:
        return [max(0, int(a)) for a in amounts]

    shares = []
    for idx, amount in enumerate(amounts):
        exact_num = max(0, int(amount)) * discount
        shares.append([idx, exact_num // total, exact_num % total])
    leftover = discount - sum(share[1] for share in shares)
    for share in sorted(shares, key=lambda s: (-s[2], s[0]))[:leftover]:
        share[1] += 1
    return [max(0, int(amounts[idx])) - part for idx, part, _ in shares]
