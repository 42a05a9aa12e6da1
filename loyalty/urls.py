"""Loyalty URL routes (v1)."""

from django.urls import path

from .views import AdjustView, TransactionListView, WalletView

app_name = "loyalty"

urlpatterns = [
    path("", WalletView.as_view(), name="wallet"),
    path("transactions/", TransactionListView.as_view(), name="transactions"),
    path("adjust/", AdjustView.as_view(), name="adjust"),
]
