"""Django app configuration for the Orders app."""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """AppConfig for checkout, order finalization and order history.

    The total-mismatch policy is read from settings once in ``ready()``; an
    unknown policy name stops the process from starting.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"

    def ready(self):
        from .services import CheckoutPolicy

        self.policy = CheckoutPolicy.from_settings()
