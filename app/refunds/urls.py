"""
URL configuration for the refunds API.

Routes:
    /refund-requests/                  GET, POST
    /refund-requests/{id}/             GET, DELETE
    /refund-requests/{id}/approve/     POST
    /refund-requests/{id}/reject/      POST
    /refunds/                          GET
    /refunds/{id}/                     GET
    /refunds/process/                  POST
    /refunds/webhooks/stripe/          POST (Stripe)

All routes are prefixed with /api/v1/ when included in the main URLconf.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from refunds.views import RefundRequestViewSet, RefundViewSet
from refunds.webhooks.views import stripe_webhook

router = DefaultRouter()
router.register(r"refund-requests", RefundRequestViewSet, basename="refund-request")
router.register(r"refunds", RefundViewSet, basename="refund")

app_name = "refunds"

urlpatterns = [
    # Ahead of the router so refunds/{pk}/ never shadows it
    path("refunds/webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("", include(router.urls)),
]
