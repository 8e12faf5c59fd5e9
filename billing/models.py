from decimal import Decimal
from django.conf import settings
from django.db import models
from .conf import plan_limit

MONEY_MAX_DIGITS = 12


class SubscriptionTier(models.TextChoices):
    FREE = "free", "Free"
    STARTER = "starter", "Starter"
    GROWTH = "growth", "Growth"
    BUSINESS = "business", "Business"
    CUSTOM = "custom", "Custom"


class SubscriptionStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    TRIALING = "trialing", "Trialing"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"


class BillableAction(models.TextChoices):
    INTERVIEW = "interview", "Interview"
    MATCH = "match", "Resume match"


USAGE_FIELDS = {
    BillableAction.INTERVIEW: "interviews_used",
    BillableAction.MATCH: "resume_matches_used",
}


class BillingAccount(models.Model):
    """
    Billing state for one user: plan tier, Stripe linkage, the monthly usage
    counters and the spendable top-up balance.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="billing")
    stripe_customer_id = models.CharField(max_length=128, blank=True, null=True, db_index=True)

    subscription_tier = models.CharField(max_length=16, choices=SubscriptionTier.choices, default=SubscriptionTier.FREE)
    subscription_status = models.CharField(max_length=16, choices=SubscriptionStatus.choices, default=SubscriptionStatus.ACTIVE)
    subscription_id = models.CharField(max_length=128, blank=True, null=True, db_index=True)
    current_period_end = models.DateTimeField(blank=True, null=True)
    trial_end = models.DateTimeField(blank=True, null=True)
    cancel_at_period_end = models.BooleanField(default=False)

    interviews_used = models.PositiveIntegerField(default=0)
    resume_matches_used = models.PositiveIntegerField(default=0)
    top_up_balance = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, default=Decimal("0.00"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user_id}: {self.subscription_tier} ({self.subscription_status})"

    @property
    def is_paid_tier(self) -> bool:
        return self.subscription_tier != SubscriptionTier.FREE

    @property
    def is_active(self) -> bool:
        return self.subscription_status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}

    def used(self, action: str) -> int:
        return getattr(self, USAGE_FIELDS[action])

    def limit(self, action: str):
        return plan_limit(self.subscription_tier, action)

    def remaining(self, action: str):
        limit = self.limit(action)
        if limit is None:
            return None
        return max(limit - self.used(action), 0)

    def tier_snapshot(self) -> dict:
        return {"tier": self.subscription_tier, "status": self.subscription_status}


class TopUpStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    EXPIRED = "expired", "Expired"


class TopUpRecord(models.Model):
    """One Stripe checkout session buying spendable balance."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="top_ups")
    stripe_session_id = models.CharField(max_length=255, unique=True)
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, null=True)
    amount_dollars = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2)
    currency = models.CharField(max_length=10, default="usd")
    status = models.CharField(max_length=16, choices=TopUpStatus.choices, default=TopUpStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.stripe_session_id} {self.amount_dollars} ({self.status})"


class AdjustmentType(models.TextChoices):
    BALANCE = "balance", "Balance"
    USAGE_INTERVIEW = "usage_interview", "Interview usage"
    USAGE_MATCH = "usage_match", "Match usage"
    SUBSCRIPTION = "subscription", "Subscription"
    ROLE = "role", "Role"
    PRICING = "pricing", "Pricing"


class AdminAdjustment(models.Model):
    """
    Audit row for a manual change made by an administrator. Values are stored
    as text so balances, counters and JSON snapshots share one column.
    """
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="adjustments")
    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="adjustments_made"
    )
    type = models.CharField(max_length=24, choices=AdjustmentType.choices)
    amount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, blank=True, null=True)
    old_value = models.TextField(blank=True, null=True)
    new_value = models.TextField(blank=True, null=True)
    reason = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.type} on {self.user_id} by {self.admin_id}"


class AppConfig(models.Model):
    """Runtime key/value settings editable from the back-office."""
    key = models.CharField(max_length=120, unique=True)
    value = models.TextField()
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]
        verbose_name = "App config"

    def __str__(self):
        return f"{self.key}={self.value}"

    @classmethod
    def get_value(cls, key: str, default=None):
        row = cls.objects.filter(key=key).first()
        return row.value if row else default

    @classmethod
    def set_value(cls, key: str, value, updated_by=None):
        row, _ = cls.objects.update_or_create(
            key=key, defaults={"value": str(value), "updated_by": updated_by}
        )
        return row


class StripeEventLog(models.Model):
    event_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    event_type = models.CharField(max_length=100)
    data = models.JSONField()
    received_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.event_type} ({self.event_id or '-'})"
