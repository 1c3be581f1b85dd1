"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import CheckoutView, VerifyPaymentView

urlpatterns = [
    path("payments/checkout/", CheckoutView.as_view(), name="payment-checkout"),
    path("payments/verify/", VerifyPaymentView.as_view(), name="payment-verify"),
]
