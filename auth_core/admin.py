from django.contrib import admin
from .models import APIKey


class APIKeyAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'prefix', 'scopes', 'is_active', 'expires_at', 'last_used_at', 'created_on']
    list_filter = ['is_active']
    search_fields = ['name', 'prefix', 'user__email']
    readonly_fields = ['prefix', 'last_used_at', 'created_on', 'updated_on']
    actions = ['regenerate_selected_keys', 'deactivate_selected_keys']

    @admin.action(description='Regenerate selected API keys')
    def regenerate_selected_keys(self, request, queryset):
        for obj in queryset:
            obj.regenerate_key()
        self.message_user(request, "Selected API keys have been regenerated.")

    @admin.action(description='Deactivate selected API keys')
    def deactivate_selected_keys(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} API key(s) deactivated.")


admin.site.register(APIKey, APIKeyAdmin)
