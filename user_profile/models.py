from django.db import models
from django.contrib.auth.models import User
from .constants import ROLE, ROLE_ADMIN, ROLE_USER, PROVIDER


class Profile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    role = models.CharField(choices=ROLE, max_length=16, default=ROLE_USER)
    name = models.CharField(max_length=150, blank=True)
    company = models.CharField(max_length=150, blank=True)
    provider = models.CharField(choices=PROVIDER, max_length=16, default="email")
    created_on = models.DateTimeField(auto_now_add=True)
    updated_on = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.email or self.user.username} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.user.get_full_name() or self.user.username
