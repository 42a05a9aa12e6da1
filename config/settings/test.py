from .base import *  # noqa
from .base import BASE_DIR
from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test_db.sqlite3",
    }
}

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "storefront-tests"}}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Tests never reach the network; clients are mocked or injected
VENDOR_API_BASE_URL = "https://vendor.test"
VENDOR_AUTH_URL = "https://vendor.test/oauth/token"
VENDOR_CLIENT_ID = "test-client"
VENDOR_CLIENT_SECRET = "test-secret"
VENDOR_ACCESS_TOKEN = "test-token"
STRIPE_SECRET_KEY = "sk_test_dummy"
STRIPE_WEBHOOK_SECRET = "whsec_test"
ORDER_TOTAL_MISMATCH_POLICY = "flag"
ORDER_TOTAL_MISMATCH_TOLERANCE_CENTS = 0

PRICING_MARKUP = {
    "US": {
        "tiers": [
            {"min": 1, "max": 9, "mult": "2.0"},
            {"min": 10, "max": 99, "mult": "1.5"},
            {"min": 100, "mult": "1.25"},
        ],
        "default_multiplier": "1.6",
        "min_margin_pct": "0",
        "apply_level": "line",
        "charm": False,
    },
    "CA": {
        "tiers": [{"min": 1, "mult": "2.0"}],
        "default_multiplier": "1.6",
        "min_margin_pct": "0",
        "apply_level": "line",
        "charm": False,
    },
}

# Relax throttling for tests to reduce flakiness
REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "user": "10000/min",
    "anon": "10000/min",
    "pricing": "10000/min",
    "cart": "10000/min",
    "cart_write": "10000/min",
    "orders": "10000/min",
    "orders_write": "10000/min",
    "loyalty": "10000/min",
}
