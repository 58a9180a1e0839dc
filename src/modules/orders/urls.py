"""Order URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.orders.views import (
    CheckoutView,
    OrderPhoneView,
    OrderStatusView,
    PaymentWebhookView,
    ProofDownloadView,
)

urlpatterns = [
    path("checkout", CheckoutView.as_view(), name="checkout"),
    path("webhook", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("order/<str:token>", OrderStatusView.as_view(), name="order-status"),
    path("order/<str:token>/phone", OrderPhoneView.as_view(), name="order-phone"),
    path(
        "order/<str:token>/proof/<str:kind>",
        ProofDownloadView.as_view(),
        name="order-proof",
    ),
]
