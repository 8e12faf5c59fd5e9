from django.contrib import admin
from .models import Candidate, HiringRequest


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ("name", "email", "match_score", "status")


@admin.register(HiringRequest)
class HiringRequestAdmin(admin.ModelAdmin):
    list_display = ("title", "user", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("title", "user__email")
    inlines = [CandidateInline]


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "hiring_request", "match_score", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("name", "email", "hiring_request__title")
