"""Build-phase settings: collectstatic and schema generation without secrets or a database.

Only loaded when BUILD_PHASE=1 is set explicitly; runtime processes use
prod.py, which refuses to start without its secrets.
"""

import os

from django.core.exceptions import ImproperlyConfigured

if os.environ.get("BUILD_PHASE") != "1":
    raise ImproperlyConfigured("config.settings.build is for the build phase only; set BUILD_PHASE=1")

from .base import *  # noqa: E402

DEBUG = False
SECRET_KEY = "build-phase-only"
ALLOWED_HOSTS = ["localhost"]

DATABASES = {"default": {"ENGINE": "django.db.backends.dummy"}}
CACHES = {"default": {"BACKEND": "django.core.cache.backends.dummy.DummyCache"}}

STRIPE_SECRET_KEY = ""
STRIPE_WEBHOOK_SECRET = ""
VENDOR_CLIENT_ID = ""
VENDOR_CLIENT_SECRET = ""
