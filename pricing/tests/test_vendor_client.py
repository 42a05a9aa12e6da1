import json
from unittest.mock import Mock

import pytest
import requests
from django.core.cache import cache
from pricing.vendor import (
    TOKEN_CACHE_KEY,
    TransientVendorError,
    VendorClient,
    VendorError,
    parse_shipping_rows,
)


def _response(status=200, body=None):
    resp = Mock()
    resp.status_code = status
    resp.text = "" if body is None else json.dumps(body)
    resp.content = resp.text.encode()
    resp.json.return_value = body
    return resp


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


def _client(session, **kwargs):
    kwargs.setdefault("access_token", "test-token")
    return VendorClient(base_url="https://vendor.test/", session=session, cache=cache, timeout=3, **kwargs)


def test_get_price_posts_product_options_with_static_token():
    session = Mock()
    session.request.return_value = _response(body={"price": "0.15"})

    payload = _client(session).get_price(42, 9, {"Size": "11"})

    assert payload == {"price": "0.15"}
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", "https://vendor.test/price/42/9")
    assert kwargs["json"] == {"productOptions": {"Size": "11"}}
    assert kwargs["headers"]["Authorization"] == "Bearer test-token"
    assert kwargs["timeout"] == 3


def test_oauth_token_is_fetched_once_and_cached():
    session = Mock()
    session.post.return_value = _response(body={"access_token": "abc", "token_type": "Bearer", "expires_in": 3600})
    session.request.return_value = _response(body={"price": 1})
    client = _client(session, access_token="", auth_url="https://auth.test/token", client_id="id", client_secret="s")

    client.get_price(1, 9, {})
    client.get_price(1, 9, {})

    assert session.post.call_count == 1
    assert session.post.call_args.kwargs["json"]["grant_type"] == "client_credentials"
    assert cache.get(TOKEN_CACHE_KEY) == "Bearer abc"
    assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer abc"


def test_missing_credentials_raise():
    client = _client(Mock(), access_token="")
    with pytest.raises(VendorError):
        client.get_price(1, 9, {})


def test_transient_status_is_retried():
    session = Mock()
    session.request.side_effect = [_response(503, {"error": "busy"}), _response(body={"price": "2.00"})]

    assert _client(session).get_price(1, 9, {}) == {"price": "2.00"}
    assert session.request.call_count == 2


def test_client_error_is_not_retried():
    session = Mock()
    session.request.return_value = _response(404, {"error": "nope"})

    with pytest.raises(VendorError) as exc:
        _client(session).get_price(1, 9, {})
    assert not isinstance(exc.value, TransientVendorError)
    assert exc.value.status == 404
    assert session.request.call_count == 1


def test_connection_errors_exhaust_retries():
    session = Mock()
    session.request.side_effect = requests.ConnectionError("down")

    with pytest.raises(VendorError, match="unreachable"):
        _client(session).get_price(1, 9, {})
    assert session.request.call_count == 3


def test_non_json_body_is_a_vendor_error():
    session = Mock()
    resp = _response(body={"x": 1})
    resp.json.side_effect = ValueError("bad json")
    session.request.return_value = resp

    with pytest.raises(VendorError, match="non-JSON"):
        _client(session).get_price(1, 9, {})


def test_product_options_are_cached_per_product_and_store():
    session = Mock()
    session.request.return_value = _response(body={"options": [{"id": 1, "group": "Size", "name": "A"}]})
    client = _client(session)

    first = client.get_product_options(7, 9)
    second = client.get_product_options(7, 9)

    assert [opt.id for opt in first] == [1]
    assert second == first
    assert session.request.call_count == 1
    assert session.request.call_args.args[1] == "https://vendor.test/product/7/9"


def test_product_options_accept_nested_list_shape():
    session = Mock()
    session.request.return_value = _response(body=[[{"id": 3, "group": "Qty", "name": "100"}]])
    assert [opt.group for opt in _client(session).get_product_options(8, 6)] == ["Qty"]


def test_estimate_shipping_request_and_rows():
    session = Mock()
    session.request.return_value = _response(
        body={"body": [["UPS", "Ground", "12.50", 5], ["FedEx", "", "1"], ["USPS", "Priority", "abc"], ["DHL", "Express", 30, "x"]]}
    )

    rates = _client(session).estimate_shipping(
        [{"product_id": 42, "option_ids": [11, 21], "quantity": 100}],
        {"country": "us", "state": "ny", "zip": " 10001 "},
        "USD",
    )

    body = session.request.call_args.kwargs["json"]
    assert body["items"] == [{"productId": 42, "options": ["11", "21"], "quantity": 100}]
    assert body["shippingInfo"] == {"ShipCountry": "US", "ShipState": "NY", "ShipZip": "10001"}
    assert [(r.carrier, r.amount_cents, r.days) for r in rates] == [("UPS", 1250, 5), ("DHL", 3000, None)]
    assert rates[0].eta == "5 business days"


def test_parse_shipping_rows_accepts_bare_list():
    rates = parse_shipping_rows([["UPS", "Next Day", 40, 1]], "CAD")
    assert rates[0].currency == "CAD"
    assert rates[0].eta == "1 business day"


def _oauth_client(session):
    return _client(session, access_token="", auth_url="https://auth.test/token", client_id="id", client_secret="s")


def test_rejected_cached_token_is_evicted_and_refetched_once():
    cache.set(TOKEN_CACHE_KEY, "Bearer stale", 600)
    session = Mock()
    session.post.return_value = _response(body={"access_token": "fresh", "expires_in": 3600})
    session.request.side_effect = [_response(401, {"error": "expired"}), _response(body={"price": "1.00"})]

    assert _oauth_client(session).get_price(1, 9, {}) == {"price": "1.00"}

    assert session.post.call_count == 1
    assert session.request.call_count == 2
    assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh"
    assert cache.get(TOKEN_CACHE_KEY) == "Bearer fresh"


def test_second_401_surfaces_without_looping():
    cache.set(TOKEN_CACHE_KEY, "Bearer stale", 600)
    session = Mock()
    session.post.return_value = _response(body={"access_token": "fresh", "expires_in": 3600})
    session.request.return_value = _response(401, {"error": "denied"})

    with pytest.raises(VendorError) as exc:
        _oauth_client(session).get_price(1, 9, {})
    assert exc.value.status == 401
    assert session.request.call_count == 2


def test_401_with_static_token_is_not_retried():
    session = Mock()
    session.request.return_value = _response(401, {"error": "denied"})

    with pytest.raises(VendorError):
        _client(session).get_price(1, 9, {})
    assert session.request.call_count == 1


def test_token_outage_is_retried_once_per_call_not_per_attempt():
    session = Mock()
    session.post.side_effect = requests.ConnectionError("auth down")

    with pytest.raises(VendorError, match="unreachable"):
        _oauth_client(session).get_price(1, 9, {})
    assert session.post.call_count == 3
    assert session.request.call_count == 0
