from rest_framework import serializers
from .conf import get_setting
from .models import AdminAdjustment, BillingAccount, TopUpRecord


class BillingAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingAccount
        fields = [
            "subscription_tier", "subscription_status", "subscription_id", "stripe_customer_id",
            "current_period_end", "trial_end", "cancel_at_period_end",
            "interviews_used", "resume_matches_used", "top_up_balance",
        ]


class TopUpRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = TopUpRecord
        fields = ["id", "stripe_session_id", "amount_dollars", "currency", "status", "created_at", "completed_at"]


class AdminAdjustmentSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source="user.email", read_only=True)
    admin_email = serializers.EmailField(source="admin.email", read_only=True, default=None)

    class Meta:
        model = AdminAdjustment
        fields = [
            "id", "user", "user_email", "admin", "admin_email", "type",
            "amount", "old_value", "new_value", "reason", "created_at",
        ]


class CheckoutSerializer(serializers.Serializer):
    tier = serializers.CharField()
    interval = serializers.CharField()

    def validate_tier(self, value):
        if value not in get_setting("CHECKOUT_TIERS"):
            raise serializers.ValidationError("Invalid tier")
        return value

    def validate_interval(self, value):
        if value not in get_setting("CHECKOUT_INTERVALS"):
            raise serializers.ValidationError("Invalid billing interval")
        return value


class TopUpSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, value):
        minimum, maximum = get_setting("TOP_UP_MIN"), get_setting("TOP_UP_MAX")
        if value < minimum or value > maximum:
            raise serializers.ValidationError(f"Amount must be between ${minimum:.2f} and ${maximum:.2f}.")
        return value


class TopUpSyncSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=255)
