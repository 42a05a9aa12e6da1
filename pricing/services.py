"""Pricing services: turn a product configuration into a sell price."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from django.apps import apps

from common.choices import currency_for, store_code_for

from .markup import MarkupConfig, PricingError, extract_vendor_cost_cents, price
from .options import normalize_for_pricing, pricing_payload
from .vendor import PricingUnavailable, VendorClient, VendorError

logger = logging.getLogger("storefront.pricing")


@dataclass(frozen=True)
class LineQuote:
    product_id: int
    market: str
    currency: str
    quantity: int
    option_ids: list[int]
    by_group: dict[str, int]
    unit_price_cents: int
    line_total_cents: int
    unit_cost_cents: int
    line_cost_cents: int
    defaulted_groups: list[str] = field(default_factory=list)


def markup_config_for(market: str) -> MarkupConfig:
    """Markup rules loaded at startup for ``market``; defaults when none are configured."""
    rules = getattr(apps.get_app_config("pricing"), "markup", {}) or {}
    return rules.get(market) or MarkupConfig()


def get_product_options(*, product_id: int, market: str, client: Optional[VendorClient] = None):
    client = client or VendorClient.from_settings()
    try:
        return client.get_product_options(product_id, store_code_for(market))
    except VendorError as exc:
        raise PricingUnavailable(str(exc), status=exc.status, path=exc.path) from exc


def quote_line(
    *,
    product_id: int,
    quantity: int,
    option_ids: Iterable,
    market: str,
    client: Optional[VendorClient] = None,
    markup: Optional[MarkupConfig] = None,
) -> LineQuote:
    """Validate options, fetch the vendor cost and apply markup.

    Raises ``OptionValidationError`` for bad option ids and
    ``PricingUnavailable`` when the vendor cannot produce a usable price.
    """
    client = client or VendorClient.from_settings()
    store_code = store_code_for(market)
    options = get_product_options(product_id=product_id, market=market, client=client)
    if not options:
        raise PricingUnavailable(f"No options for product {product_id}")

    normalized = normalize_for_pricing(option_ids, options)
    try:
        payload = client.get_price(product_id, store_code, pricing_payload(normalized))
    except VendorError as exc:
        raise PricingUnavailable(str(exc), status=exc.status, path=exc.path) from exc

    try:
        line_cost = extract_vendor_cost_cents(payload, quantity)
    except PricingError as exc:
        raise PricingUnavailable(str(exc)) from exc
    if line_cost <= 0:
        raise PricingUnavailable(f"Vendor returned a zero price for product {product_id}")

    result = price(markup or markup_config_for(market), quantity, line_cost_cents=line_cost)
    logger.info(
        "pricing.quoted",
        extra={
            "event": "pricing.quoted",
            "product_id": product_id,
            "market": market,
            "quantity": result.quantity,
            "line_cost_cents": result.line_cost_cents,
            "line_sell_cents": result.line_sell_cents,
            "multiplier": str(result.multiplier),
        },
    )
    return LineQuote(
        product_id=int(product_id),
        market=market,
        currency=currency_for(market),
        quantity=result.quantity,
        option_ids=normalized.option_ids,
        by_group=normalized.by_group,
        unit_price_cents=result.unit_sell_cents,
        line_total_cents=result.line_sell_cents,
        unit_cost_cents=result.unit_cost_cents,
        line_cost_cents=result.line_cost_cents,
        defaulted_groups=normalized.defaulted_groups,
    )
