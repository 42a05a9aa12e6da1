"""HTTP client for the print vendor's pricing, options and shipping API."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests
from django.conf import settings
from django.core.cache import cache as default_cache
from requests import ConnectionError as RequestsConnectionError
from requests import Timeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from common.money import dollars_to_cents

from .options import VendorOption, parse_options

logger = logging.getLogger("storefront.vendor")

TOKEN_CACHE_KEY = "vendor:access_token"
DEFAULT_TOKEN_TTL = 1200


class VendorError(Exception):
    """The vendor API failed or answered with something unusable."""

    code = "vendor_error"

    def __init__(self, message: str, status: Optional[int] = None, path: str = "", body: str = ""):
        super().__init__(message)
        self.status = status
        self.path = path
        self.body = body[:500] if body else ""


class TransientVendorError(VendorError):
    """429 or 5xx from the vendor; safe to retry."""


class PricingUnavailable(VendorError):
    code = "pricing_unavailable"


class ShippingUnavailable(VendorError):
    code = "shipping_unavailable"


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((RequestsConnectionError, Timeout, TransientVendorError)),
    )


@dataclass(frozen=True)
class ShippingRate:
    carrier: str
    service_code: str
    service_name: str
    amount_cents: int
    currency: str
    days: Optional[int]

    @property
    def eta(self) -> Optional[str]:
        if self.days is None:
            return None
        return f"{self.days} business day{'' if self.days == 1 else 's'}"

    def as_dict(self) -> dict:
        return {
            "carrier": self.carrier,
            "service_code": self.service_code,
            "service_name": self.service_name,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "days": self.days,
            "eta": self.eta,
        }


def _clamp_ttl(value: Any) -> int:
    try:
        ttl = int(value)
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_TTL
    return min(86_400, max(60, ttl))


def parse_shipping_rows(payload: Any, currency: str) -> list[ShippingRate]:
    """Turn ``[carrier, service, price, days]`` rows into rates, skipping malformed rows."""
    rows = payload.get("body") if isinstance(payload, dict) else payload
    rates = []
    for row in rows or []:
        if not isinstance(row, (list, tuple)) or len(row) < 3:
            continue
        carrier, service, raw_price = str(row[0] or "").strip(), str(row[1] or "").strip(), row[2]
        amount_cents = dollars_to_cents(raw_price)
        if not carrier or not service or amount_cents is None or amount_cents < 0:
            continue
        days = None
        if len(row) > 3 and row[3] is not None:
            try:
                days = int(row[3])
            except (TypeError, ValueError):
                days = None
        rates.append(
            ShippingRate(
                carrier=carrier,
                service_code=service,
                service_name=service,
                amount_cents=amount_cents,
                currency=currency,
                days=days,
            )
        )
    return rates


def _options_from_payload(payload: Any) -> list[dict]:
    if isinstance(payload, dict):
        payload = payload.get("options") or []
    if isinstance(payload, list) and payload and isinstance(payload[0], list):
        payload = payload[0]
    return [row for row in payload or [] if isinstance(row, dict)]


class VendorClient:
    """Thin wrapper around the vendor REST API.

    Every call carries an explicit timeout. Connection errors, timeouts, 429
    and 5xx answers are retried three times with exponential backoff; anything
    else surfaces immediately as ``VendorError``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        auth_url: str = "",
        client_id: str = "",
        client_secret: str = "",
        audience: str = "",
        access_token: str = "",
        timeout: float = 15,
        options_cache_seconds: int = 300,
        session: Optional[requests.Session] = None,
        cache=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_url = auth_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.access_token = access_token
        self.timeout = timeout
        self.options_cache_seconds = options_cache_seconds
        self.session = session or requests.Session()
        self.cache = cache or default_cache

    @classmethod
    def from_settings(cls, **overrides) -> "VendorClient":
        kwargs = {
            "base_url": settings.VENDOR_API_BASE_URL,
            "auth_url": settings.VENDOR_AUTH_URL,
            "client_id": settings.VENDOR_CLIENT_ID,
            "client_secret": settings.VENDOR_CLIENT_SECRET,
            "audience": settings.VENDOR_AUDIENCE,
            "access_token": getattr(settings, "VENDOR_ACCESS_TOKEN", ""),
            "timeout": settings.VENDOR_TIMEOUT_SECONDS,
            "options_cache_seconds": settings.VENDOR_OPTIONS_CACHE_SECONDS,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    # Auth

    def _bearer(self) -> str:
        if self.access_token:
            token = self.access_token.strip()
            return token if token.lower().startswith("bearer ") else f"Bearer {token}"
        cached = self.cache.get(TOKEN_CACHE_KEY)
        if cached:
            return cached
        if not (self.auth_url and self.client_id and self.client_secret):
            raise VendorError("Vendor credentials are not configured")

        data = self._fetch_token()
        token = str(data.get("access_token") or "").strip()
        token_type = str(data.get("token_type") or "Bearer").strip()
        if not token:
            raise VendorError("Vendor token response has no access_token", path=self.auth_url)
        bearer = f"{token_type} {token}"
        # refresh a minute before the vendor expires it
        self.cache.set(TOKEN_CACHE_KEY, bearer, _clamp_ttl(data.get("expires_in")) - 60)
        return bearer

    @http_retry()
    def _fetch_token(self) -> dict:
        resp = self.session.post(
            self.auth_url,
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "audience": self.audience,
                "grant_type": "client_credentials",
            },
            timeout=self.timeout,
        )
        return self._decode(resp, self.auth_url) or {}

    # Transport

    def _decode(self, resp: requests.Response, path: str) -> Any:
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientVendorError(
                f"Vendor {resp.status_code} @ {path}", status=resp.status_code, path=path, body=resp.text
            )
        if resp.status_code >= 400:
            raise VendorError(f"Vendor {resp.status_code} @ {path}", status=resp.status_code, path=path, body=resp.text)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise VendorError(f"Vendor returned non-JSON @ {path}", status=502, path=path, body=resp.text) from exc

    @http_retry()
    def _send(self, method: str, path: str, payload: Optional[dict], bearer: str) -> Any:
        url = f"{self.base_url}{path}"
        logger.info("vendor.request", extra={"event": "vendor.request", "method": method, "path": path})
        resp = self.session.request(
            method,
            url,
            json=payload,
            headers={"Authorization": bearer, "Content-Type": "application/json"},
            timeout=self.timeout,
        )
        return self._decode(resp, path)

    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        """One vendor call. The token is resolved once, outside the retry loop;
        a 401 on a cached OAuth token evicts it and tries once more with a fresh one.
        """
        try:
            try:
                return self._send(method, path, payload, self._bearer())
            except VendorError as exc:
                if exc.status != 401 or self.access_token:
                    raise
                logger.warning("vendor.token_rejected", extra={"event": "vendor.token_rejected", "path": path})
                self.cache.delete(TOKEN_CACHE_KEY)
                return self._send(method, path, payload, self._bearer())
        except (RequestsConnectionError, Timeout) as exc:
            logger.warning(
                "vendor.unreachable",
                extra={"event": "vendor.unreachable", "path": path, "error": exc.__class__.__name__},
            )
            raise VendorError(f"Vendor unreachable @ {path}", path=path) from exc

    # Endpoints

    def get_product_options(self, product_id: int, store_code: int) -> list[VendorOption]:
        """Option rows for a product, cached per product and store."""
        key = f"vendor:options:{int(product_id)}:{int(store_code)}"
        rows = self.cache.get(key)
        if rows is None:
            payload = self.request("GET", f"/product/{int(product_id)}/{int(store_code)}")
            rows = _options_from_payload(payload)
            if rows:
                self.cache.set(key, rows, self.options_cache_seconds)
        return parse_options(rows)

    def get_price(self, product_id: int, store_code: int, product_options: dict) -> Any:
        """Raw vendor price payload for one configured product."""
        return self.request(
            "POST",
            f"/price/{int(product_id)}/{int(store_code)}",
            {"productOptions": product_options},
        )

    def estimate_shipping(self, items: Iterable[dict], destination: dict, currency: str) -> list[ShippingRate]:
        """Rates for shipping ``items`` to ``destination`` (country, state, zip)."""
        body = {
            "items": [
                {
                    "productId": int(item["product_id"]),
                    "options": [str(option_id) for option_id in item.get("option_ids") or []],
                    "quantity": int(item["quantity"]),
                }
                for item in items
            ],
            "shippingInfo": {
                "ShipCountry": str(destination.get("country") or "").upper(),
                "ShipState": str(destination.get("state") or "").upper(),
                "ShipZip": str(destination.get("zip") or "").strip(),
            },
        }
        payload = self.request("POST", "/order/shippingEstimate", body)
        return parse_shipping_rows(payload, currency)
