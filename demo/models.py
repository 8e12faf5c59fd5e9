from django.db import models


class DemoRequest(models.Model):
    """A lead captured from the public "request a demo" form."""
    name = models.CharField(max_length=150)
    email = models.EmailField(max_length=254, db_index=True)
    company = models.CharField(max_length=150, blank=True, null=True)
    team_size = models.CharField(max_length=32, blank=True, null=True)
    source = models.CharField(max_length=64, blank=True, null=True)
    message = models.TextField(blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    notified_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} <{self.email}>"
