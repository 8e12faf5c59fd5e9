import logging
from decimal import Decimal
from typing import NamedTuple
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from .conf import get_setting, pay_per_use_price
from .exceptions import SubscriptionInactive, UsageLimitExceeded
from .models import BillableAction, BillingAccount, USAGE_FIELDS
from usage.mixins import TrackedUsageMixin
from .services import get_billing_account, lock_billing_account

logger = logging.getLogger(__name__)


class UsageCharge(NamedTuple):
    source: str  # "plan" or "topup"
    action: str
    cost: Decimal


def _label(action: str) -> str:
    return get_setting("ACTION_LABELS").get(action, action)


@transaction.atomic
def charge_usage(user, action: str) -> UsageCharge:
    """
    Consume one billable action for ``user``.

    Plan quota is used first. Once it is spent the pay-per-use price is
    debited from the top-up balance. A paid plan that is past due or
    canceled is refused outright only while the balance is empty.
    """
    if action not in BillableAction.values:
        raise ValueError(f"Unknown billable action: {action}")

    account = lock_billing_account(user)
    field = USAGE_FIELDS[action]
    price = pay_per_use_price(action)
    balance = account.top_up_balance
    used = account.used(action)
    limit = account.limit(action)
    inactive = account.is_paid_tier and not account.is_active

    if inactive and balance <= 0:
        raise SubscriptionInactive(
            "Your subscription is not active. Please update your payment method or top up your balance.",
            details={"tier": account.subscription_tier, "status": account.subscription_status},
        )

    if limit is None or used < limit:
        BillingAccount.objects.filter(pk=account.pk).update(
            **{field: F(field) + 1, "updated_at": timezone.now()}
        )
        return UsageCharge("plan", action, Decimal("0.00"))

    if balance >= price:
        BillingAccount.objects.filter(pk=account.pk).update(
            **{field: F(field) + 1, "top_up_balance": F("top_up_balance") - price, "updated_at": timezone.now()}
        )
        logger.info("Charged user %s $%s from balance for %s", user.pk, price, action)
        return UsageCharge("topup", action, price)

    label = _label(action)
    raise UsageLimitExceeded(
        f"You've reached your monthly {label} limit ({limit or 0}). "
        f"Top up your balance to continue at ${price:.2f} per {label}.",
        details={
            "action": action,
            "used": used,
            "limit": limit,
            "pricePerUnit": float(price),
            "currentBalance": float(balance),
            "requiredBalance": float(price),
        },
    )


def get_quota(user) -> dict:
    account = get_billing_account(user)
    quota = {
        "tier": account.subscription_tier,
        "status": account.subscription_status,
        "top_up_balance": account.top_up_balance,
        "limits": {},
        "used": {},
        "remaining": {},
        "pay_per_use": {},
    }
    for action in BillableAction.values:
        quota["limits"][action] = account.limit(action)
        quota["used"][action] = account.used(action)
        quota["remaining"][action] = account.remaining(action)
        quota["pay_per_use"][action] = pay_per_use_price(action)
    return quota


class MeteredActionMixin(TrackedUsageMixin):
    """
    Integration hook for the AI endpoints (resume matching, interviews).
    Mix it into the view and set ``metered_action``; one action is charged per
    unsafe request before the handler runs and the call is tracked as usage.
    Billing errors are rendered by the project exception handler.
    """
    metered_action = None

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        if self.metered_action and request.method not in ("GET", "HEAD", "OPTIONS"):
            request.usage_charge = charge_usage(request.user, self.metered_action)
