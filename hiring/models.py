from django.conf import settings
from django.db import models


class HiringRequestStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PAUSED = "paused", "Paused"
    CLOSED = "closed", "Closed"


class CandidateStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SCREENING = "screening", "Screening"
    INTERVIEWED = "interviewed", "Interviewed"
    SHORTLISTED = "shortlisted", "Shortlisted"
    REJECTED = "rejected", "Rejected"


class HiringRequest(models.Model):
    """An open role a customer is recruiting for."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="hiring_requests")
    title = models.CharField(max_length=255)
    requirements = models.TextField()
    job_description = models.TextField(blank=True, null=True)
    webhook_url = models.URLField(max_length=500, blank=True, null=True)
    status = models.CharField(max_length=16, choices=HiringRequestStatus.choices, default=HiringRequestStatus.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status", "created_at"], name="hiring_hire_user_4f0a2c_idx"),
        ]

    def __str__(self):
        return self.title


class Candidate(models.Model):
    hiring_request = models.ForeignKey(HiringRequest, on_delete=models.CASCADE, related_name="candidates")
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, blank=True, null=True)
    resume_text = models.TextField(blank=True, null=True)
    # 0-100, set once the resume has been matched against the requirements
    match_score = models.FloatField(blank=True, null=True)
    status = models.CharField(max_length=16, choices=CandidateStatus.choices, default=CandidateStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["hiring_request", "status"], name="hiring_cand_hiring_8e51d7_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.hiring_request_id})"
