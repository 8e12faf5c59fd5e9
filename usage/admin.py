from django.contrib import admin
from .models import ApiRequestLog, LLMCallLog


class LLMCallLogInline(admin.TabularInline):
    model = LLMCallLog
    extra = 0
    can_delete = False
    fields = ("provider", "model", "prompt_tokens", "completion_tokens", "cost", "duration_ms")
    readonly_fields = fields


@admin.register(ApiRequestLog)
class ApiRequestLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "method", "endpoint", "module", "status_code", "duration_ms",
                    "total_tokens", "cost", "is_tracked", "user")
    list_filter = ("module", "method", "status_code", "is_tracked")
    search_fields = ("endpoint", "request_id", "user__email")
    readonly_fields = [field.name for field in ApiRequestLog._meta.fields]
    date_hierarchy = "created_at"
    inlines = [LLMCallLogInline]


@admin.register(LLMCallLog)
class LLMCallLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "provider", "model", "total_tokens", "cost", "duration_ms", "user")
    list_filter = ("provider", "model")
    search_fields = ("request_id", "endpoint", "user__email")
    readonly_fields = [field.name for field in LLMCallLog._meta.fields]
    date_hierarchy = "created_at"
