"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import SimpleRouter

from modules.payments.views import PaymentViewSet, StripeWebhookView

router = SimpleRouter(trailing_slash=True)
router.register("payments", PaymentViewSet, basename="payment")

urlpatterns = [
    path(
        "payments/webhooks/stripe/",
        StripeWebhookView.as_view(),
        name="stripe-webhook",
    ),
    *router.urls,
]
