"""Django app configuration for the Pricing app."""

from django.apps import AppConfig


class PricingConfig(AppConfig):
    """AppConfig for vendor pricing: option validation and markup.

    Markup rules are parsed from ``settings.PRICING_MARKUP`` once per process
    in ``ready()`` and kept on this instance.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "pricing"

    def ready(self):
        from django.conf import settings

        from .markup import MarkupConfig

        self.markup = {
            market: MarkupConfig.from_dict(rules) for market, rules in (settings.PRICING_MARKUP or {}).items()
        }
