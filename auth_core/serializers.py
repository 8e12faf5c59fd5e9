from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers
from billing.serializers import BillingAccountSerializer
from billing.services import get_billing_account
from user_profile.models import Profile
from .models import VALID_SCOPES, APIKey

User = get_user_model()


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    company = serializers.CharField(required=False, allow_blank=True, max_length=150)

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    @transaction.atomic
    def create(self, validated_data):
        email = validated_data["email"]
        user = User.objects.create_user(username=email, email=email, password=validated_data["password"])
        Profile.objects.update_or_create(
            user=user,
            defaults={
                "name": validated_data.get("name", "").strip(),
                "company": validated_data.get("company", "").strip(),
            },
        )
        return user


class LoginSerializer(serializers.Serializer):
    email = serializers.CharField()
    password = serializers.CharField(write_only=True)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True, required=False, allow_blank=True, trim_whitespace=False)
    new_password = serializers.CharField(write_only=True, required=False, allow_blank=True, trim_whitespace=False)

    def validate(self, attrs):
        current_password = attrs.get("current_password")
        new_password = attrs.get("new_password")
        if not current_password or not new_password:
            raise serializers.ValidationError("Current password and new password are required")

        user = self.context["request"].user
        if not user.check_password(current_password):
            raise serializers.ValidationError("Current password is incorrect")
        if len(new_password) < 8:
            raise serializers.ValidationError("New password must be at least 8 characters long")
        try:
            validate_password(new_password, user)
        except DjangoValidationError as e:
            raise serializers.ValidationError({"new_password": list(e.messages)})
        return attrs

    def save(self):
        user = self.context["request"].user
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user


class ProfileUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ["name", "company"]


class UserSerializer(serializers.ModelSerializer):
    """User with profile attributes and the billing snapshot."""
    name = serializers.CharField(source="profile.name", read_only=True)
    company = serializers.CharField(source="profile.company", read_only=True)
    role = serializers.CharField(source="profile.role", read_only=True)
    provider = serializers.CharField(source="profile.provider", read_only=True)
    billing = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "username", "name", "company", "role", "provider", "is_active",
                  "date_joined", "last_login", "billing"]

    def get_billing(self, obj):
        return BillingAccountSerializer(get_billing_account(obj)).data


class APIKeySerializer(serializers.ModelSerializer):
    class Meta:
        model = APIKey
        fields = ["id", "name", "prefix", "masked_key", "scopes", "is_active", "expires_at",
                  "last_used_at", "rate_limit", "created_on", "updated_on"]
        read_only_fields = fields


class APIKeyCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    scopes = serializers.ListField(child=serializers.CharField(), required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name is required")
        return value

    def validate_scopes(self, value):
        return [scope for scope in dict.fromkeys(value) if scope in VALID_SCOPES]

    def validate_expires_at(self, value):
        if value is not None and value <= timezone.now():
            raise serializers.ValidationError("Invalid or past expiration date")
        return value


class APIKeyUpdateSerializer(APIKeyCreateSerializer):
    name = serializers.CharField(max_length=100, required=False)
    is_active = serializers.BooleanField(required=False)
