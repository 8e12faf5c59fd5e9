from decimal import Decimal
from django.contrib.auth import get_user_model
from rest_framework import serializers
from billing.conf import get_setting
from billing.models import BillableAction, SubscriptionStatus, SubscriptionTier
from billing.serializers import BillingAccountSerializer
from user_profile.constants import ROLE_ADMIN, ROLE_USER

User = get_user_model()


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, error_messages={
        "required": "reason is required",
        "blank": "reason is required",
    })

    def validate_reason(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("reason is required")
        return value


class AdjustBalanceSerializer(ReasonSerializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, value):
        if value == 0:
            raise serializers.ValidationError("amount must be a non-zero number")
        return value


class AdjustUsageSerializer(ReasonSerializer):
    action = serializers.ChoiceField(choices=BillableAction.values, error_messages={
        "invalid_choice": 'action must be "interview" or "match"',
    })
    amount = serializers.IntegerField()

    def validate_amount(self, value):
        if value == 0:
            raise serializers.ValidationError("amount must be a non-zero number")
        return value


class SetSubscriptionSerializer(ReasonSerializer):
    tier = serializers.ChoiceField(choices=SubscriptionTier.values, error_messages={
        "invalid_choice": f"tier must be one of: {', '.join(SubscriptionTier.values)}",
    })
    status = serializers.ChoiceField(choices=SubscriptionStatus.values, required=False, allow_null=True, error_messages={
        "invalid_choice": f"status must be one of: {', '.join(SubscriptionStatus.values)}",
    })


class CancelSubscriptionSerializer(ReasonSerializer):
    immediate = serializers.BooleanField(default=False)


class SetRoleSerializer(ReasonSerializer):
    role = serializers.ChoiceField(choices=[ROLE_ADMIN, ROLE_USER], error_messages={
        "invalid_choice": 'role must be "admin" or "user"',
    })


class PricingSerializer(serializers.Serializer):
    """Monthly price per paid tier; at least one tier must be given."""
    starter = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    growth = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    business = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)

    def validate(self, attrs):
        prices = {
            tier: price for tier, price in attrs.items()
            if tier in get_setting("PRICED_TIERS") and price > Decimal("0")
        }
        if not prices:
            raise serializers.ValidationError("Provide at least one tier price to update")
        return prices


class AdminUserSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="profile.name", read_only=True, default="")
    company = serializers.CharField(source="profile.company", read_only=True, default="")
    role = serializers.CharField(source="profile.role", read_only=True, default=ROLE_USER)
    provider = serializers.CharField(source="profile.provider", read_only=True, default="email")
    billing = BillingAccountSerializer(read_only=True)

    class Meta:
        model = User
        fields = ["id", "email", "name", "company", "role", "provider", "is_active", "date_joined",
                  "last_login", "billing"]
