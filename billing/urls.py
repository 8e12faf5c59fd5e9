from django.urls import path
from .view_stripe import StripeWebhookView
from .views import (
    BillingStatusView,
    CheckoutView,
    TopUpView,
    TopUpSyncView,
    TopUpHistoryView,
    )

urlpatterns = [
    path("api/v1/billing/", BillingStatusView.as_view(), name="billing_status"),
    path("api/v1/checkout", CheckoutView.as_view(), name="checkout"),
    path("api/v1/billing/topup", TopUpView.as_view(), name="billing_topup"),
    path("api/v1/billing/topup/sync", TopUpSyncView.as_view(), name="billing_topup_sync"),
    path("api/v1/billing/topups", TopUpHistoryView.as_view(), name="billing_topups"),
    path("api/v1/webhooks/stripe", StripeWebhookView.as_view(), name="stripe_webhook"),
]
