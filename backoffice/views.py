from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics
from rest_framework.views import APIView
from auth_core.responses import failure, success, validation_failure
from auth_core.views import AdminViewMixin
from billing import services
from billing.conf import get_setting
from billing.models import AdminAdjustment, AppConfig, BillingAccount, SubscriptionStatus, SubscriptionTier, TopUpRecord, TopUpStatus
from billing.serializers import AdminAdjustmentSerializer
from usage.analytics import build_usage_analytics, parse_analytics_filters
from .pagination import AdminUserPagination
from .serializers import (
    AdjustBalanceSerializer,
    AdjustUsageSerializer,
    AdminUserSerializer,
    CancelSubscriptionSerializer,
    PricingSerializer,
    ReasonSerializer,
    SetRoleSerializer,
    SetSubscriptionSerializer,
)

User = get_user_model()

MAX_ADJUSTMENTS_LIMIT = 100
DEFAULT_ADJUSTMENTS_LIMIT = 50


def _int_param(value, default, minimum, maximum):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return min(maximum, max(minimum, number))


class AdminUserListView(AdminViewMixin, generics.ListAPIView):
    """
    GET /api/v1/admin/users
    Newest users first; ?search= matches email, name and company.
    """
    serializer_class = AdminUserSerializer
    pagination_class = AdminUserPagination

    def get_queryset(self):
        queryset = User.objects.select_related("profile", "billing").order_by("-date_joined", "-id")
        search = (self.request.query_params.get("search") or "").strip()
        if search:
            queryset = queryset.filter(
                Q(email__icontains=search)
                | Q(profile__name__icontains=search)
                | Q(profile__company__icontains=search)
            )
        return queryset


class AdminUserDetailView(AdminViewMixin, APIView):
    """GET /api/v1/admin/users/<id> with the latest adjustments made to the user."""

    def get(self, request, pk):
        user = get_object_or_404(User.objects.select_related("profile", "billing"), pk=pk)
        adjustments = (
            AdminAdjustment.objects.filter(user=user)
            .select_related("user", "admin")[:get_setting("MAX_ADJUSTMENT_HISTORY")]
        )
        return success({
            "user": AdminUserSerializer(user).data,
            "adjustments": AdminAdjustmentSerializer(adjustments, many=True).data,
        })


class AdminUserActionView(AdminViewMixin, APIView):
    """
    Base for POST /api/v1/admin/users/<id>/<action>. Subclasses name the input
    serializer and apply the change through the billing services.
    """
    serializer_class = ReasonSerializer

    def perform(self, user, admin, data):
        raise NotImplementedError

    def post(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        try:
            result = self.perform(user, request.user, serializer.validated_data)
        except ValueError as e:
            return failure(str(e), status=400, code="VALIDATION_ERROR")
        return success(result)


class AdjustBalanceView(AdminUserActionView):
    serializer_class = AdjustBalanceSerializer

    def perform(self, user, admin, data):
        return services.adjust_balance(user, admin, data["amount"], data["reason"])


class AdjustUsageView(AdminUserActionView):
    serializer_class = AdjustUsageSerializer

    def perform(self, user, admin, data):
        return services.adjust_usage(user, admin, data["action"], data["amount"], data["reason"])


class SetSubscriptionView(AdminUserActionView):
    serializer_class = SetSubscriptionSerializer

    def perform(self, user, admin, data):
        return services.set_subscription(user, admin, data["tier"], data["reason"], status=data.get("status"))


class ResetUsageView(AdminUserActionView):
    def perform(self, user, admin, data):
        return services.reset_usage(user, admin, data["reason"])


class CancelSubscriptionView(AdminUserActionView):
    serializer_class = CancelSubscriptionSerializer

    def perform(self, user, admin, data):
        return services.cancel_subscription(user, admin, data["reason"], immediate=data["immediate"])


class DisableUserView(AdminUserActionView):
    def perform(self, user, admin, data):
        return services.disable_user(user, admin, data["reason"])


class EnableUserView(AdminUserActionView):
    def perform(self, user, admin, data):
        return services.enable_user(user, admin, data["reason"])


class SetRoleView(AdminUserActionView):
    serializer_class = SetRoleSerializer

    def perform(self, user, admin, data):
        return services.set_role(user, admin, data["role"], data["reason"])


class AdjustmentListView(AdminViewMixin, APIView):
    """GET /api/v1/admin/adjustments across all users, newest first."""

    def get(self, request):
        limit = _int_param(
            request.query_params.get("limit"), DEFAULT_ADJUSTMENTS_LIMIT, 1, MAX_ADJUSTMENTS_LIMIT
        )
        adjustments = AdminAdjustment.objects.select_related("user", "admin")[:limit]
        return success({"adjustments": AdminAdjustmentSerializer(adjustments, many=True).data})


class AdminStatsView(AdminViewMixin, APIView):
    """GET /api/v1/admin/stats"""

    def get(self, request):
        now = timezone.now()
        start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        by_tier = {
            row["subscription_tier"]: row["count"]
            for row in BillingAccount.objects.values("subscription_tier").annotate(count=Count("id")).order_by()
        }
        active_subscriptions = (
            BillingAccount.objects.exclude(subscription_tier=SubscriptionTier.FREE)
            .filter(subscription_status=SubscriptionStatus.ACTIVE)
            .count()
        )
        revenue = TopUpRecord.objects.filter(status=TopUpStatus.COMPLETED).aggregate(total=Sum("amount_dollars"))
        usage = BillingAccount.objects.aggregate(
            interviews=Sum("interviews_used"), matches=Sum("resume_matches_used")
        )

        return success({
            "total_users": User.objects.count(),
            "users_by_tier": by_tier,
            "active_subscriptions": active_subscriptions,
            "new_users_this_month": User.objects.filter(date_joined__gte=start_of_month).count(),
            "total_revenue": revenue["total"] or 0,
            "total_interviews_used": usage["interviews"] or 0,
            "total_matches_used": usage["matches"] or 0,
        })


class UsageAnalyticsView(AdminViewMixin, APIView):
    """
    GET /api/v1/admin/usage/analytics
    ?from=&to=&bucket=hour|day|week&userId=&module=&endpoint=
    """

    def get(self, request):
        try:
            filters = parse_analytics_filters(request.query_params)
        except ValueError as e:
            return failure(str(e), status=400, code="VALIDATION_ERROR")
        return success(build_usage_analytics(filters))


class AppConfigView(AdminViewMixin, APIView):
    """GET /api/v1/admin/config"""

    def get(self, request):
        configs = AppConfig.objects.values("key", "value", "updated_by_id", "updated_at")
        return success({"configs": list(configs)})


class PricingView(AdminViewMixin, APIView):
    """
    POST /api/v1/admin/config/pricing
    Body: {"starter": 29, "growth": 99, "business": 299}, any subset.
    """

    def post(self, request):
        serializer = PricingSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        try:
            results = services.update_pricing(request.user, serializer.validated_data)
        except ValueError as e:
            return failure(str(e), status=400, code="VALIDATION_ERROR")
        return success({"updated": results})
