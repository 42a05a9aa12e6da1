from unittest.mock import patch

import pytest
from pricing.markup import MarkupConfig
from pricing.services import quote_line
from pricing.tests.fakes import FakeVendorClient
from pricing.vendor import PricingUnavailable, VendorError
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db

QUOTE_URL = "/api/v1/pricing/products/42/quote/"


def _patched(client):
    return patch("pricing.services.VendorClient.from_settings", return_value=client)


def test_quote_applies_market_tier_and_defaults_quantity_group():
    vendor = FakeVendorClient(price="1.00")
    with _patched(vendor):
        resp = APIClient().post(QUOTE_URL, {"quantity": 10, "option_ids": [11, 21]}, format="json")

    assert resp.status_code == 200
    data = resp.json()
    assert data["line_total_cents"] == 1500
    assert data["unit_price_cents"] == 150
    assert data["currency"] == "USD"
    assert data["defaulted_groups"] == ["Qty"]
    assert data["by_group"] == {"Paper": 21, "Qty": 31, "Size": 11}
    product_id, store_code, options = vendor.price_calls[0]
    assert (product_id, store_code) == (42, 9)
    assert options == {"Paper": "21", "Qty": "31", "Size": "11"}


def test_quote_for_canada_uses_store_six_and_cad():
    vendor = FakeVendorClient(price="1.00")
    with _patched(vendor):
        resp = APIClient().post(QUOTE_URL, {"quantity": 1, "option_ids": [11, 21], "market": "CA"}, format="json")

    assert resp.status_code == 200
    assert resp.json()["currency"] == "CAD"
    assert resp.json()["line_total_cents"] == 200
    assert vendor.price_calls[0][1] == 6


def test_quote_reports_missing_groups():
    with _patched(FakeVendorClient()):
        resp = APIClient().post(QUOTE_URL, {"quantity": 1, "option_ids": [11]}, format="json")

    assert resp.status_code == 400
    assert resp.json()["code"] == "missing_groups"
    assert resp.json()["missing_groups"] == ["Paper"]


def test_quote_reports_unknown_ids():
    with _patched(FakeVendorClient()):
        resp = APIClient().post(QUOTE_URL, {"quantity": 1, "option_ids": [11, 21, 777]}, format="json")

    assert resp.status_code == 400
    assert resp.json()["unknown_option_ids"] == ["777"]


def test_vendor_failure_is_502():
    with _patched(FakeVendorClient(error=VendorError("boom", status=500))):
        resp = APIClient().post(QUOTE_URL, {"quantity": 1, "option_ids": [11, 21]}, format="json")

    assert resp.status_code == 502
    assert resp.json()["code"] == "pricing_unavailable"


def test_zero_vendor_price_is_unavailable():
    with pytest.raises(PricingUnavailable):
        quote_line(product_id=1, quantity=1, option_ids=[11, 21], market="US", client=FakeVendorClient(price="0"))


def test_unusable_vendor_payload_is_unavailable():
    with pytest.raises(PricingUnavailable):
        quote_line(
            product_id=1, quantity=1, option_ids=[11, 21], market="US", client=FakeVendorClient(price={"oops": 1})
        )


def test_quote_line_with_explicit_markup():
    markup = MarkupConfig.from_dict({"tiers": [{"min": 1, "mult": "3"}]})
    quote = quote_line(
        product_id=9, quantity=2, option_ids=[12, 22, 32], market="US", client=FakeVendorClient(price="0.50"), markup=markup
    )
    assert quote.line_cost_cents == 100
    assert quote.line_total_cents == 300
    assert quote.unit_price_cents == 150
    assert quote.option_ids == [22, 32, 12]


def test_product_options_endpoint():
    with _patched(FakeVendorClient()):
        resp = APIClient().get("/api/v1/pricing/products/42/options/")

    assert resp.status_code == 200
    assert {"id": 11, "group": "Size", "name": "4x6"} in resp.json()


def test_product_options_rejects_unknown_market():
    resp = APIClient().get("/api/v1/pricing/products/42/options/?market=MX")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_market"
