"""
URL configuration for the payout engine.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain a JWT pair (simplejwt)
    /api/v1/auth/token/refresh/    - Refresh an access token
    /api/v1/                       - Payout engine endpoints
        payouts/                   - Payout list (?status=, organization_id, event_id)
        payouts/{id}/              - Payout detail with reserve ledger
        payouts/review/            - Held payouts needing review
        payouts/{id}/approve/      - Approve a held payout (POST)
        payouts/{id}/reject/       - Reject a payout (POST)
        payouts/process/           - Run the payout batch now (POST)
        payouts/process-reserves/  - Run the reserve release now (POST)
        chargebacks/               - Chargeback list (?status=)
        chargebacks/{id}/resolve/  - Resolve a chargeback (POST)
        webhooks/stripe/           - Stripe webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # JWT authentication for the admin API
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Payout engine
    path("", include("payouts.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Payout Engine Admin"
admin.site.site_title = "Payout Engine"
admin.site.index_title = "Payouts, reserves and chargebacks"
