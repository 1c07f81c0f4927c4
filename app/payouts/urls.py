"""
URL configuration for the payouts app.

Routes:
    - /payouts/        Payout admin API (PayoutViewSet)
    - /chargebacks/    Chargeback admin API (ChargebackViewSet)
    - POST /webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/ when included in the main URLconf.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from payouts.views import ChargebackViewSet, PayoutViewSet
from payouts.webhooks.views import stripe_webhook

app_name = "payouts"

router = DefaultRouter()
router.register("payouts", PayoutViewSet, basename="payout")
router.register("chargebacks", ChargebackViewSet, basename="chargeback")

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
] + router.urls
