from django.urls import path

from .views import CheckoutSessionView, FreeCheckoutView

app_name = "checkout"

urlpatterns = [
    path("session/", CheckoutSessionView.as_view(), name="checkout-session"),
    path("free/", FreeCheckoutView.as_view(), name="checkout-free"),
]
