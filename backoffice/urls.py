from django.urls import path
from .views import (
    AdjustBalanceView,
    AdjustmentListView,
    AdjustUsageView,
    AdminStatsView,
    AdminUserDetailView,
    AdminUserListView,
    AppConfigView,
    CancelSubscriptionView,
    DisableUserView,
    EnableUserView,
    PricingView,
    ResetUsageView,
    SetRoleView,
    SetSubscriptionView,
    UsageAnalyticsView,
)

urlpatterns = [
    path('api/v1/admin/users', AdminUserListView.as_view(), name='admin_users'),
    path('api/v1/admin/users/<int:pk>', AdminUserDetailView.as_view(), name='admin_user_detail'),
    path('api/v1/admin/users/<int:pk>/adjust-balance', AdjustBalanceView.as_view(), name='admin_adjust_balance'),
    path('api/v1/admin/users/<int:pk>/adjust-usage', AdjustUsageView.as_view(), name='admin_adjust_usage'),
    path('api/v1/admin/users/<int:pk>/set-subscription', SetSubscriptionView.as_view(), name='admin_set_subscription'),
    path('api/v1/admin/users/<int:pk>/reset-usage', ResetUsageView.as_view(), name='admin_reset_usage'),
    path('api/v1/admin/users/<int:pk>/cancel-subscription', CancelSubscriptionView.as_view(),
         name='admin_cancel_subscription'),
    path('api/v1/admin/users/<int:pk>/disable', DisableUserView.as_view(), name='admin_disable_user'),
    path('api/v1/admin/users/<int:pk>/enable', EnableUserView.as_view(), name='admin_enable_user'),
    path('api/v1/admin/users/<int:pk>/set-role', SetRoleView.as_view(), name='admin_set_role'),
    path('api/v1/admin/adjustments', AdjustmentListView.as_view(), name='admin_adjustments'),
    path('api/v1/admin/stats', AdminStatsView.as_view(), name='admin_stats'),
    path('api/v1/admin/usage/analytics', UsageAnalyticsView.as_view(), name='admin_usage_analytics'),
    path('api/v1/admin/config', AppConfigView.as_view(), name='admin_config'),
    path('api/v1/admin/config/pricing', PricingView.as_view(), name='admin_config_pricing'),
]
