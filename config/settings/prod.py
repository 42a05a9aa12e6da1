import sentry_sdk
from decouple import Csv, config
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK
from .base import *  # noqa

DEBUG = False

# No defaults here: a storefront that cannot take payments or price products must not boot
SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", cast=Csv())
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET")
VENDOR_CLIENT_ID = config("VENDOR_CLIENT_ID")
VENDOR_CLIENT_SECRET = config("VENDOR_CLIENT_SECRET")

# The storefront frontend is the only browser origin
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default=FRONTEND_URL, cast=Csv())  # noqa: F405
CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default=FRONTEND_URL, cast=Csv())  # noqa: F405

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = config("SECURE_HSTS_SECONDS", default=31536000, cast=int)
SECURE_HSTS_INCLUDE_SUBDOMAINS = True

EMAIL_BACKEND = config("EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend")

# Quote and cart traffic is chatty; checkout and ledger events are always kept
_KEEP_EVENTS = [
    "order.finalized",
    "order.total_mismatch",
    "checkout.started",
    "loyalty.adjusted",
    "loyalty.credit_applied",
    "loyalty.credit_reduced",
]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {"json": {"()": "config.logging.JsonFormatter"}},
    "filters": {
        "quote_sample": {
            "()": "config.logging.SamplingFilter",
            "rate": config("PRICING_LOG_SAMPLE_RATE", default=0.1, cast=float),
            "levels": ["INFO", "DEBUG"],
        },
        "ledger_sample": {
            "()": "config.logging.SamplingFilter",
            "rate": config("ORDERS_LOG_SAMPLE_RATE", default=1.0, cast=float),
            "levels": ["INFO"],
            "allow_events": _KEEP_EVENTS,
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
        "sampled_console": {"class": "logging.StreamHandler", "formatter": "json", "filters": ["quote_sample"]},
        "ledger_console": {"class": "logging.StreamHandler", "formatter": "json", "filters": ["ledger_sample"]},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
        "storefront": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "storefront.pricing": {"handlers": ["sampled_console"], "level": "INFO", "propagate": False},
        "storefront.cart": {"handlers": ["sampled_console"], "level": "INFO", "propagate": False},
        "storefront.vendor": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "storefront.orders": {"handlers": ["ledger_console"], "level": "INFO", "propagate": False},
        "storefront.loyalty": {"handlers": ["ledger_console"], "level": "INFO", "propagate": False},
    },
}

SENTRY_DSN = config("SENTRY_DSN", default="")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=config("SENTRY_ENV", default="production"),
        release=config("SENTRY_RELEASE", default=None),
        integrations=[DjangoIntegration(), LoggingIntegration(event_level=None)],
        traces_sample_rate=config("SENTRY_TRACES_SAMPLE_RATE", default=0.0, cast=float),
        # Shipping addresses and emails ride along on checkout requests
        send_default_pii=False,
    )

REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "pricing": config("THROTTLE_PRICING", default="60/min"),
    "cart": config("THROTTLE_CART", default="120/min"),
    "cart_write": config("THROTTLE_CART_WRITE", default="60/min"),
    "orders_write": config("THROTTLE_ORDERS_WRITE", default="20/min"),
}
