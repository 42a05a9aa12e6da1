"""Scoped throttle shared by the storefront apps.

Rates are looked up from Django settings at request time, so tests using
override_settings affect them. Guests are throttled per ``X-Session-Id``
rather than per IP when they send one.
"""

from django.conf import settings
from rest_framework.throttling import ScopedRateThrottle

from .principal import SESSION_HEADER


class StorefrontScopedRateThrottle(ScopedRateThrottle):
    def get_rate(self):
        rf = getattr(settings, "REST_FRAMEWORK", {})
        rates = rf.get("DEFAULT_THROTTLE_RATES", {})
        return rates.get(self.scope)

    def get_ident(self, request):
        session_id = (request.headers.get(SESSION_HEADER) or "").strip()
        if session_id:
            return f"sid:{session_id}"
        return super().get_ident(request)
