"""Pricing URL routes (v1)."""

from django.urls import path

from .views import ProductOptionsView, QuoteView

app_name = "pricing"

urlpatterns = [
    path("products/<int:product_id>/options/", ProductOptionsView.as_view(), name="product-options"),
    path("products/<int:product_id>/quote/", QuoteView.as_view(), name="product-quote"),
]
