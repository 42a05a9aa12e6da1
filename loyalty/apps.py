"""Django app configuration for the Loyalty app."""

from django.apps import AppConfig


class LoyaltyConfig(AppConfig):
    """AppConfig for the points ledger; rules are read from settings once in ``ready()``."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "loyalty"

    def ready(self):
        from django.conf import settings

        from .rules import LoyaltyRules

        self.rules = LoyaltyRules.from_settings(settings)
