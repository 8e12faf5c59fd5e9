import logging
from rest_framework import generics
from rest_framework.views import APIView
from auth_core.responses import success, validation_failure
from auth_core.views import PrivateUserViewMixin
from billing.payment_gateway.router import load_gateway
from .metering import get_quota
from .models import TopUpRecord
from .pagination import TopUpPagination
from .serializers import (
    BillingAccountSerializer,
    CheckoutSerializer,
    TopUpRecordSerializer,
    TopUpSerializer,
    TopUpSyncSerializer,
)
from .services import get_billing_account

logger = logging.getLogger(__name__)


class BillingStatusView(PrivateUserViewMixin, APIView):
    """
    GET /api/v1/billing/
    Current plan, counters, balance and remaining quota.
    """

    def get(self, request):
        account = get_billing_account(request.user)
        return success({
            "account": BillingAccountSerializer(account).data,
            "quota": get_quota(request.user),
        })


class CheckoutView(PrivateUserViewMixin, APIView):
    """
    POST /api/v1/checkout
    Creates a Stripe Checkout Session for a subscription tier.
    """
    provider = "stripe"

    def post(self, request, *args, **kwargs):
        serializer = CheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        gateway = load_gateway(self.provider)
        session = gateway.create_checkout_session(
            request.user,
            serializer.validated_data["tier"],
            serializer.validated_data["interval"],
        )
        return success({"url": session["url"], "session_id": session["id"]})


class TopUpView(PrivateUserViewMixin, APIView):
    """
    POST /api/v1/billing/topup
    Starts a one-time payment that adds to the spendable balance.
    """
    provider = "stripe"

    def post(self, request, *args, **kwargs):
        serializer = TopUpSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        gateway = load_gateway(self.provider)
        session = gateway.create_top_up_session(request.user, serializer.validated_data["amount"])
        return success({"url": session["url"], "session_id": session["id"]})


class TopUpSyncView(PrivateUserViewMixin, APIView):
    """
    POST /api/v1/billing/topup/sync
    Credits a paid top-up when the browser returns before the webhook.
    """
    provider = "stripe"

    def post(self, request, *args, **kwargs):
        serializer = TopUpSyncSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        gateway = load_gateway(self.provider)
        result = gateway.sync_checkout_session(serializer.validated_data["session_id"], user=request.user)
        account = get_billing_account(request.user)
        return success({**result, "top_up_balance": account.top_up_balance})


class TopUpHistoryView(PrivateUserViewMixin, generics.ListAPIView):
    """GET /api/v1/billing/topups"""
    serializer_class = TopUpRecordSerializer
    pagination_class = TopUpPagination

    def get_queryset(self):
        return TopUpRecord.objects.filter(user=self.request.user).order_by("-created_at")
