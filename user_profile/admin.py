from django.contrib import admin
from .models import Profile


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "name", "company", "role", "provider", "created_on")
    list_filter = ("role", "provider")
    search_fields = ("user__username", "user__email", "name", "company")
