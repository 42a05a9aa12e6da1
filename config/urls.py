"""Root URL configuration: admin, API schema, health and the v1 API."""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from orders.views import StripeWebhookView

from .health import health

admin.site.site_header = "Print Storefront Admin"
admin.site.index_title = "Admin"

urlpatterns = [
    path("admin/", admin.site.urls),
    # API schema and Swagger UI
    path("api/schema/", SpectacularAPIView.as_view(), name="api-schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="api-schema"), name="api-docs"),
    # Healthcheck
    path("health/", health, name="health"),
    # Versioned v1 routes only
    path("api/v1/pricing/", include("pricing.urls")),
    path("api/v1/cart/", include("cart.urls")),
    path("api/v1/checkout/", include("orders.checkout_urls")),
    path("api/v1/webhooks/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
    path("api/v1/orders/", include("orders.urls")),
    path("api/v1/loyalty/", include("loyalty.urls")),
]
