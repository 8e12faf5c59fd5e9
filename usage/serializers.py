from rest_framework import serializers
from .models import ApiRequestLog


class ApiRequestLogSerializer(serializers.ModelSerializer):
    api_key = serializers.SerializerMethodField()

    class Meta:
        model = ApiRequestLog
        fields = [
            "id", "request_id", "endpoint", "method", "module", "api_name", "status_code", "duration_ms",
            "prompt_tokens", "completion_tokens", "total_tokens", "llm_calls", "cost", "provider", "model",
            "api_key_id", "api_key", "created_at",
        ]

    def get_api_key(self, obj):
        # select_related leaves None behind when the key row is gone
        api_key = obj.api_key if obj.api_key_id else None
        if api_key is None:
            return None
        return {"id": api_key.pk, "name": api_key.name, "prefix": api_key.prefix}
