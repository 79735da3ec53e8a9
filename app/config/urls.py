"""
URL configuration for the refund service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/                       - Refund endpoints
        refund-requests/           - Refund request list/create
        refund-requests/{id}/      - Refund request detail/cancel
        refund-requests/{id}/approve/ - Approve request (admin)
        refund-requests/{id}/reject/  - Reject request (admin)
        refunds/                   - Refund list
        refunds/{id}/              - Refund detail
        refunds/process/           - Process a refund (admin)
        refunds/webhooks/stripe/   - Stripe webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("", include("refunds.urls")),
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
admin.site.site_header = "Refunds Admin"
admin.site.site_title = "Refunds Admin"
admin.site.index_title = "Orders and refunds"
