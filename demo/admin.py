from django.contrib import admin
from .models import DemoRequest


@admin.register(DemoRequest)
class DemoRequestAdmin(admin.ModelAdmin):
    list_display = ("created_at", "name", "email", "company", "team_size", "source", "notified_at")
    list_filter = ("team_size", "source")
    search_fields = ("name", "email", "company")
    readonly_fields = ("ip_address", "notified_at", "created_at")
    date_hierarchy = "created_at"
