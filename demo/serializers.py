from rest_framework import serializers
from .models import DemoRequest


class DemoRequestSerializer(serializers.ModelSerializer):
    name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    email = serializers.CharField(required=False, allow_blank=True, max_length=254)
    company = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=150)
    team_size = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=32)
    source = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    message = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=5000)

    class Meta:
        model = DemoRequest
        fields = ["id", "name", "email", "company", "team_size", "source", "message", "created_at"]
        read_only_fields = ["id", "created_at"]

    def to_internal_value(self, data):
        # the marketing site posts camelCase
        if "teamSize" in data and "team_size" not in data:
            data = data.copy()
            data["team_size"] = data["teamSize"]
        return super().to_internal_value(data)

    def validate(self, attrs):
        name = (attrs.get("name") or "").strip()
        email = (attrs.get("email") or "").strip().lower()
        if not name:
            raise serializers.ValidationError("Name is required")
        if "@" not in email:
            raise serializers.ValidationError("A valid email is required")

        attrs["name"] = name
        attrs["email"] = email
        for field in ("company", "team_size", "source", "message"):
            attrs[field] = (attrs.get(field) or "").strip() or None
        return attrs
