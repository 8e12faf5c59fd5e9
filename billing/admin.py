from django.contrib import admin, messages
from billing.payment_gateway.router import load_gateway
from .exceptions import BillingError
from .models import AdminAdjustment, AppConfig, BillingAccount, StripeEventLog, TopUpRecord
from .services import reset_usage_counters


@admin.register(BillingAccount)
class BillingAccountAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "subscription_tier",
        "subscription_status",
        "interviews_used",
        "resume_matches_used",
        "top_up_balance",
        "current_period_end",
    )
    list_filter = ("subscription_tier", "subscription_status", "cancel_at_period_end")
    search_fields = ("user__username", "user__email", "stripe_customer_id", "subscription_id")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-created_at",)

    actions = ["sync_from_gateway", "reset_usage"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("user")

    @admin.action(description="Sync from Stripe")
    def sync_from_gateway(self, request, queryset):
        gateway = load_gateway("stripe", required=False)
        if gateway is None:
            self.message_user(request, "Stripe is not configured.", level=messages.ERROR)
            return

        updated = 0
        errors = 0
        for account in queryset.exclude(subscription_id__isnull=True):
            try:
                gateway.sync_subscription_status(account)
                updated += 1
            except BillingError as e:
                errors += 1
                self.message_user(
                    request,
                    f"Error syncing subscription {account.subscription_id}: {e}",
                    level=messages.ERROR,
                )

        self.message_user(
            request,
            f"Synced {updated} account(s). {'Errors: ' + str(errors) if errors else ''}",
            level=messages.SUCCESS if errors == 0 else messages.WARNING,
        )

    @admin.action(description="Reset monthly usage counters")
    def reset_usage(self, request, queryset):
        for account in queryset:
            reset_usage_counters(account.user)
        self.message_user(request, f"Reset usage for {queryset.count()} account(s).")


@admin.register(TopUpRecord)
class TopUpRecordAdmin(admin.ModelAdmin):
    list_display = ("stripe_session_id", "user", "amount_dollars", "currency", "status", "created_at", "completed_at")
    list_filter = ("status", "currency")
    search_fields = ("stripe_session_id", "stripe_payment_intent_id", "user__email")
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        # Created by checkout sessions only
        return False


@admin.register(AdminAdjustment)
class AdminAdjustmentAdmin(admin.ModelAdmin):
    list_display = ("created_at", "type", "user", "admin", "amount", "old_value", "new_value")
    list_filter = ("type",)
    search_fields = ("user__email", "admin__email", "reason")
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        # Audit rows are immutable
        return False


@admin.register(AppConfig)
class AppConfigAdmin(admin.ModelAdmin):
    list_display = ("key", "value", "updated_by", "updated_at")
    search_fields = ("key",)


@admin.register(StripeEventLog)
class StripeEventLogAdmin(admin.ModelAdmin):
    list_display = ("event_type", "event_id", "received_at")
    list_filter = ("event_type",)
    search_fields = ("event_id", "event_type")
    ordering = ("-received_at",)

    def has_add_permission(self, request):
        # Webhooks create these automatically
        return False

    def has_change_permission(self, request, obj=None):
        return False
