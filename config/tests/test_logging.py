import json
import logging

import pytest
from config.logging import JsonFormatter, SamplingFilter
from rest_framework.test import APIClient


def _record(msg="order.finalized", level=logging.INFO, **extra):
    record = logging.LogRecord("storefront.orders", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_merges_extra_fields():
    line = JsonFormatter().format(_record(event="order.finalized", order_id=7, when=object()))
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["name"] == "storefront.orders"
    assert payload["message"] == "order.finalized"
    assert payload["event"] == "order.finalized"
    assert payload["order_id"] == 7
    assert isinstance(payload["when"], str)
    assert payload["time"].endswith("Z")


def test_sampling_never_drops_allowed_events():
    sampler = SamplingFilter(rate=0.0, allow_events=["order.finalized"])
    assert sampler.filter(_record("order finalized", event="order.finalized"))
    assert not sampler.filter(_record("cart.line_added", event="cart.line_added"))


def test_sampling_ignores_other_levels():
    sampler = SamplingFilter(rate=0.0, levels=["INFO"])
    assert sampler.filter(_record("order.total_mismatch", level=logging.WARNING))


def test_bad_rate_means_keep_everything():
    assert SamplingFilter(rate="often").rate == 1.0


@pytest.mark.django_db
def test_health():
    resp = APIClient().get("/health/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
