from pathlib import Path

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Core security
SECRET_KEY = config("SECRET_KEY", default="dev-secret-key-change-me")

# Hosts and CORS
ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="localhost,127.0.0.1", cast=Csv())
CORS_ALLOW_ALL_ORIGINS = config("CORS_ALLOW_ALL_ORIGINS", default=True, cast=bool)
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())
CORS_ALLOW_HEADERS = (
    "accept",
    "authorization",
    "content-type",
    "idempotency-key",
    "origin",
    "x-csrftoken",
    "x-requested-with",
    "x-session-id",
)

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "rest_framework",
    "django_filters",
    "drf_spectacular",
    "corsheaders",
    # Local
    "pricing",
    "cart",
    "orders",
    "loyalty",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# Database
DB_ENGINE = config("DATABASE_ENGINE", default="sqlite")
if DB_ENGINE.lower() == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": config("DATABASE_NAME", default="postgres"),
            "USER": config("DATABASE_USER", default="postgres"),
            "PASSWORD": config("DATABASE_PASSWORD", default=""),
            "HOST": config("DATABASE_HOST", default="localhost"),
            "PORT": config("DATABASE_PORT", default="5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# Cache: vendor tokens and option rows. Use redis in production via REDIS_URL.
REDIS_URL = config("REDIS_URL", default="")
if REDIS_URL:
    CACHES = {"default": {"BACKEND": "django.core.cache.backends.redis.RedisCache", "LOCATION": REDIS_URL}}
else:
    CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "storefront"}}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Django 5 storages for whitenoise
STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Email (dev defaults to console backend; override via env for SMTP)
EMAIL_BACKEND = config(
    "EMAIL_BACKEND",
    default="django.core.mail.backends.console.EmailBackend",
)
EMAIL_HOST = config("EMAIL_HOST", default="")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD", default="")
EMAIL_USE_TLS = config("EMAIL_USE_TLS", default=True, cast=bool)
EMAIL_USE_SSL = config("EMAIL_USE_SSL", default=False, cast=bool)
DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="Print Shop <noreply@example.com>")
FRONTEND_URL = config("FRONTEND_URL", default="http://localhost:3000")

# Print vendor API
VENDOR_API_BASE_URL = config("VENDOR_API_BASE_URL", default="https://api.vendor.example.com/v1")
VENDOR_AUTH_URL = config("VENDOR_AUTH_URL", default="https://auth.vendor.example.com/oauth/token")
VENDOR_CLIENT_ID = config("VENDOR_CLIENT_ID", default="")
VENDOR_CLIENT_SECRET = config("VENDOR_CLIENT_SECRET", default="")
VENDOR_AUDIENCE = config("VENDOR_AUDIENCE", default="")
VENDOR_ACCESS_TOKEN = config("VENDOR_ACCESS_TOKEN", default="")
VENDOR_TIMEOUT_SECONDS = config("VENDOR_TIMEOUT_SECONDS", default=15, cast=float)
VENDOR_OPTIONS_CACHE_SECONDS = config("VENDOR_OPTIONS_CACHE_SECONDS", default=300, cast=int)

# Markup per market. Tiers: min/max quantity (max omitted = no upper bound),
# mult, optional floor_pct overriding nothing below the global min_margin_pct.
PRICING_MARKUP = {
    "US": {
        "tiers": [
            {"min": 1, "max": 49, "mult": "2.0"},
            {"min": 50, "max": 249, "mult": "1.8"},
            {"min": 250, "mult": "1.6", "floor_pct": "0.25"},
        ],
        "default_multiplier": "1.6",
        "min_margin_pct": config("PRICING_MIN_MARGIN_PCT", default="0.2"),
        "apply_level": config("PRICING_APPLY_LEVEL", default="line"),
        "charm": config("PRICING_CHARM", default=False, cast=bool),
    },
    "CA": {
        "tiers": [
            {"min": 1, "max": 49, "mult": "2.1"},
            {"min": 50, "max": 249, "mult": "1.9"},
            {"min": 250, "mult": "1.7", "floor_pct": "0.25"},
        ],
        "default_multiplier": "1.7",
        "min_margin_pct": config("PRICING_MIN_MARGIN_PCT", default="0.2"),
        "apply_level": config("PRICING_APPLY_LEVEL", default="line"),
        "charm": config("PRICING_CHARM", default=False, cast=bool),
    },
}

# Payments
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="")
STRIPE_TIMEOUT_SECONDS = config("STRIPE_TIMEOUT_SECONDS", default=10, cast=float)

# Checkout: what to do when the charged amount differs from the computed total
ORDER_TOTAL_MISMATCH_POLICY = config("ORDER_TOTAL_MISMATCH_POLICY", default="flag")
ORDER_TOTAL_MISMATCH_TOLERANCE_CENTS = config("ORDER_TOTAL_MISMATCH_TOLERANCE_CENTS", default=0, cast=int)
IDEMPOTENCY_TTL_HOURS = config("IDEMPOTENCY_TTL_HOURS", default=24, cast=int)
CART_ABANDON_TTL_MINUTES = config("CART_ABANDON_TTL_MINUTES", default=1440, cast=int)

# Loyalty
LOYALTY_EARN_POINTS_PER_UNIT = config("LOYALTY_EARN_POINTS_PER_UNIT", default=10, cast=int)
LOYALTY_POINTS_PER_CREDIT_UNIT = config("LOYALTY_POINTS_PER_CREDIT_UNIT", default=100, cast=int)
LOYALTY_REDEEM_MIN_POINTS = config("LOYALTY_REDEEM_MIN_POINTS", default=100, cast=int)
LOYALTY_REDEEM_INCREMENT = config("LOYALTY_REDEEM_INCREMENT", default=100, cast=int)

# DRF + Spectacular
REST_FRAMEWORK = {
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "common.throttling.StorefrontScopedRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
        "rest_framework.throttling.AnonRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        # Global throttles
        "user": "200/min",
        "anon": "60/min",
        # Scoped throttles per flow
        "pricing": "60/min",
        "cart": "120/min",
        "cart_write": "60/min",
        "orders": "60/min",
        "orders_write": "20/min",
        "loyalty": "60/min",
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Print Storefront API",
    "DESCRIPTION": "Pricing, cart, checkout and loyalty API for the print storefront",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "storefront": {"handlers": ["console"], "level": config("STOREFRONT_LOG_LEVEL", default="INFO")},
    },
}
