import secrets
from datetime import timedelta
from django.conf import settings
from django.db import models
from django.utils import timezone

API_KEY_PREFIX = "rh_"
API_KEY_DISPLAY_PREFIX_LENGTH = 12
MAX_API_KEYS_PER_USER = 10

SCOPE_READ = "read"
SCOPE_WRITE = "write"
VALID_SCOPES = (SCOPE_READ, SCOPE_WRITE)


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(24)}"


def default_scopes():
    return list(VALID_SCOPES)


class APIKey(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='api_keys')
    name = models.CharField(max_length=100)
    key = models.CharField(max_length=64, editable=False, unique=True)
    prefix = models.CharField(max_length=API_KEY_DISPLAY_PREFIX_LENGTH, editable=False, db_index=True)
    scopes = models.JSONField(default=default_scopes)
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    last_used_at = models.DateTimeField(blank=True, null=True)
    rate_limit = models.IntegerField(default=100)  # max requests
    rate_limit_period = models.DurationField(default=timedelta(minutes=1))  # per minute
    created_on = models.DateTimeField(auto_now_add=True)
    updated_on = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_on']
        verbose_name = 'API key'

    def save(self, *args, **kwargs):
        if not self.key:
            self.key = generate_api_key()
        self.prefix = self.key[:API_KEY_DISPLAY_PREFIX_LENGTH]
        super().save(*args, **kwargs)

    def regenerate_key(self):
        self.key = generate_api_key()
        self.last_used_at = None
        self.save()
        return self.key

    @property
    def masked_key(self):
        return f"{self.key[:API_KEY_DISPLAY_PREFIX_LENGTH]}...{self.key[-4:]}"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= timezone.now()

    def has_scope(self, scope):
        return scope in (self.scopes or [])

    def __str__(self):
        return f"{self.name} ({self.masked_key})"
