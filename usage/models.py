from decimal import Decimal
from django.conf import settings
from django.db import models


class ApiRequestLog(models.Model):
    """
    One row per `/api/` request: who called, how it was classified, how long
    it took and what the LLM work behind it cost.
    """
    request_id = models.CharField(max_length=128, blank=True, null=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="api_requests"
    )
    # Kept after the key is deleted so usage can still be grouped by it
    api_key = models.ForeignKey(
        "auth_core.APIKey", on_delete=models.DO_NOTHING, db_constraint=False,
        null=True, blank=True, related_name="+",
    )
    endpoint = models.CharField(max_length=512)
    method = models.CharField(max_length=10)
    module = models.CharField(max_length=64, db_index=True)
    api_name = models.CharField(max_length=255)
    status_code = models.PositiveSmallIntegerField()
    duration_ms = models.PositiveIntegerField(default=0)
    prompt_tokens = models.PositiveIntegerField(default=0)
    completion_tokens = models.PositiveIntegerField(default=0)
    total_tokens = models.PositiveIntegerField(default=0)
    llm_calls = models.PositiveIntegerField(default=0)
    cost = models.DecimalField(max_digits=14, decimal_places=6, default=Decimal("0"))
    provider = models.CharField(max_length=64, blank=True, null=True)
    model = models.CharField(max_length=128, blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.TextField(blank=True, null=True)
    # Set for authenticated calls to the product endpoints users are billed or
    # reported on. The user usage views only read these rows.
    is_tracked = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="usage_apire_user_id_5c1b7e_idx"),
            models.Index(fields=["user", "is_tracked", "created_at"], name="usage_apire_tracked_7d2e40_idx"),
            models.Index(fields=["module", "created_at"], name="usage_apire_module_9a3f21_idx"),
        ]

    def __str__(self):
        return f"{self.method} {self.endpoint} {self.status_code}"


class LLMCallLog(models.Model):
    """One row per LLM completion made while serving a request."""
    request_log = models.ForeignKey(ApiRequestLog, on_delete=models.CASCADE, related_name="llm_call_logs")
    request_id = models.CharField(max_length=128, blank=True, null=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="llm_calls"
    )
    endpoint = models.CharField(max_length=512)
    module = models.CharField(max_length=64)
    provider = models.CharField(max_length=64)
    model = models.CharField(max_length=128)
    prompt_tokens = models.PositiveIntegerField(default=0)
    completion_tokens = models.PositiveIntegerField(default=0)
    total_tokens = models.PositiveIntegerField(default=0)
    cost = models.DecimalField(max_digits=14, decimal_places=6, default=Decimal("0"))
    duration_ms = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["provider", "model", "created_at"], name="usage_llmca_provide_2b8c11_idx"),
        ]

    def __str__(self):
        return f"{self.provider}/{self.model} {self.total_tokens} tokens"
