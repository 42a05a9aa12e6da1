"""Cart URL routes (v1)."""

from django.urls import path

from .views import (
    CartClaimView,
    CartClearView,
    CartCreditView,
    CartDetailView,
    CartLineDetailView,
    CartLinesView,
    ShippingChooseView,
    ShippingEstimateView,
)

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("lines/", CartLinesView.as_view(), name="cart-lines"),
    path("lines/<int:line_id>/", CartLineDetailView.as_view(), name="cart-line-detail"),
    path("clear/", CartClearView.as_view(), name="cart-clear"),
    path("shipping/estimate/", ShippingEstimateView.as_view(), name="cart-shipping-estimate"),
    path("shipping/choose/", ShippingChooseView.as_view(), name="cart-shipping-choose"),
    path("credit/", CartCreditView.as_view(), name="cart-credit"),
    path("claim/", CartClaimView.as_view(), name="cart-claim"),
]
