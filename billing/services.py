import json
import logging
from decimal import Decimal
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from user_profile.constants import ROLE_ADMIN, ROLE_USER
from .conf import get_setting
from .exceptions import GatewayError, TopUpError
from .models import (
    AdjustmentType,
    AdminAdjustment,
    AppConfig,
    BillableAction,
    BillingAccount,
    SubscriptionStatus,
    SubscriptionTier,
    TopUpRecord,
    TopUpStatus,
    USAGE_FIELDS,
)
from .payment_gateway.router import load_gateway

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

USAGE_ADJUSTMENT_TYPES = {
    BillableAction.INTERVIEW: AdjustmentType.USAGE_INTERVIEW,
    BillableAction.MATCH: AdjustmentType.USAGE_MATCH,
}


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


def format_money(value) -> str:
    return f"{to_money(value):.2f}"


def get_billing_account(user) -> BillingAccount:
    account, _ = BillingAccount.objects.get_or_create(user=user)
    return account


def lock_billing_account(user) -> BillingAccount:
    """Return the user's billing row locked for update. Call inside a transaction."""
    BillingAccount.objects.get_or_create(user=user)
    return BillingAccount.objects.select_for_update().get(user=user)


def _audit(user, admin, type_, reason, *, amount=None, old_value=None, new_value=None) -> AdminAdjustment:
    return AdminAdjustment.objects.create(
        user=user,
        admin=admin,
        type=type_,
        amount=amount,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )


# --------------------------------------------------------------------------
# Admin adjustments
# --------------------------------------------------------------------------

@transaction.atomic
def adjust_balance(user, admin, amount, reason: str) -> dict:
    """
    Credit (positive) or debit (negative) a user's top-up balance.
    The balance never drops below zero.
    """
    amount = to_money(amount)
    account = lock_billing_account(user)

    old_balance = account.top_up_balance
    new_balance = max(ZERO, old_balance + amount)
    account.top_up_balance = new_balance
    account.save(update_fields=["top_up_balance", "updated_at"])

    _audit(
        user, admin, AdjustmentType.BALANCE, reason,
        amount=amount,
        old_value=format_money(old_balance),
        new_value=format_money(new_balance),
    )
    logger.info("Admin %s adjusted balance of user %s by %s", admin.pk, user.pk, amount)

    return {"old_balance": old_balance, "new_balance": new_balance, "adjustment": amount}


@transaction.atomic
def adjust_usage(user, admin, action: str, amount: int, reason: str) -> dict:
    field = USAGE_FIELDS[action]
    account = lock_billing_account(user)

    old_value = getattr(account, field)
    new_value = max(0, old_value + amount)
    setattr(account, field, new_value)
    account.save(update_fields=[field, "updated_at"])

    _audit(
        user, admin, USAGE_ADJUSTMENT_TYPES[action], reason,
        amount=amount,
        old_value=str(old_value),
        new_value=str(new_value),
    )
    logger.info("Admin %s adjusted %s of user %s by %s", admin.pk, field, user.pk, amount)

    return {"action": action, "old_value": old_value, "new_value": new_value, "adjustment": amount}


@transaction.atomic
def set_subscription(user, admin, tier: str, reason: str, status: str | None = None) -> dict:
    if tier not in SubscriptionTier.values:
        raise ValueError(f"Invalid tier: {tier}")
    if status is not None and status not in SubscriptionStatus.values:
        raise ValueError(f"Invalid status: {status}")

    account = lock_billing_account(user)
    old = account.tier_snapshot()

    account.subscription_tier = tier
    if status is not None:
        account.subscription_status = status
    account.save(update_fields=["subscription_tier", "subscription_status", "updated_at"])

    new = account.tier_snapshot()
    _audit(
        user, admin, AdjustmentType.SUBSCRIPTION, reason,
        old_value=json.dumps(old),
        new_value=json.dumps(new),
    )
    logger.info("Admin %s set subscription of user %s to %s", admin.pk, user.pk, new)

    return {"old": old, "new": new}


@transaction.atomic
def reset_usage(user, admin, reason: str) -> dict:
    account = lock_billing_account(user)
    old_interviews = account.interviews_used
    old_matches = account.resume_matches_used

    account.interviews_used = 0
    account.resume_matches_used = 0
    account.save(update_fields=["interviews_used", "resume_matches_used", "updated_at"])

    audit_reason = f"[Reset] {reason}"
    if old_interviews:
        _audit(
            user, admin, AdjustmentType.USAGE_INTERVIEW, audit_reason,
            amount=-old_interviews, old_value=str(old_interviews), new_value="0",
        )
    if old_matches:
        _audit(
            user, admin, AdjustmentType.USAGE_MATCH, audit_reason,
            amount=-old_matches, old_value=str(old_matches), new_value="0",
        )
    if not old_interviews and not old_matches:
        _audit(
            user, admin, AdjustmentType.USAGE_INTERVIEW, audit_reason,
            amount=0, old_value="0", new_value="0",
        )

    return {
        "old_interviews_used": old_interviews,
        "old_resume_matches_used": old_matches,
        "interviews_used": 0,
        "resume_matches_used": 0,
    }


def _cancel_remote(subscription_id, *, immediate: bool) -> bool:
    """Cancel on Stripe when it is configured. Failures are logged, not raised."""
    if not subscription_id:
        return False
    gateway = load_gateway("stripe", required=False)
    if gateway is None:
        return False
    try:
        gateway.cancel_remote_subscription(subscription_id, immediate=immediate)
    except GatewayError:
        logger.exception("Could not cancel Stripe subscription %s", subscription_id)
        return False
    return True


def cancel_subscription(user, admin, reason: str, immediate: bool = False) -> dict:
    """
    Immediate cancellation drops the account to free/canceled right away.
    Otherwise the subscription runs until the end of the paid period.
    """
    account = get_billing_account(user)
    remote_canceled = _cancel_remote(account.subscription_id, immediate=immediate)

    with transaction.atomic():
        account = lock_billing_account(user)
        old = account.tier_snapshot()
        cancel_mode = "immediate" if immediate else "end_of_period"

        if immediate:
            account.subscription_tier = SubscriptionTier.FREE
            account.subscription_status = SubscriptionStatus.CANCELED
            account.subscription_id = None
            account.current_period_end = None
            account.cancel_at_period_end = False
        elif account.subscription_id:
            account.cancel_at_period_end = True
        account.save(update_fields=[
            "subscription_tier", "subscription_status", "subscription_id",
            "current_period_end", "cancel_at_period_end", "updated_at",
        ])

        new = {**account.tier_snapshot(), "cancelMode": cancel_mode}
        _audit(
            user, admin, AdjustmentType.SUBSCRIPTION, reason,
            old_value=json.dumps(old),
            new_value=json.dumps(new),
        )

    logger.info("Admin %s canceled subscription of user %s (%s)", admin.pk, user.pk, cancel_mode)
    return {
        "cancel_mode": cancel_mode,
        "remote_canceled": remote_canceled,
        "tier": account.subscription_tier,
        "status": account.subscription_status,
        "cancel_at_period_end": account.cancel_at_period_end,
    }


def disable_user(user, admin, reason: str) -> dict:
    account = get_billing_account(user)
    _cancel_remote(account.subscription_id, immediate=True)

    with transaction.atomic():
        account = lock_billing_account(user)
        old = account.tier_snapshot()
        account.subscription_tier = SubscriptionTier.FREE
        account.subscription_status = SubscriptionStatus.CANCELED
        account.subscription_id = None
        account.current_period_end = None
        account.cancel_at_period_end = False
        account.save(update_fields=[
            "subscription_tier", "subscription_status", "subscription_id",
            "current_period_end", "cancel_at_period_end", "updated_at",
        ])
        new = account.tier_snapshot()
        _audit(
            user, admin, AdjustmentType.SUBSCRIPTION, f"[Disabled] {reason}",
            old_value=json.dumps(old),
            new_value=json.dumps(new),
        )

    logger.warning("Admin %s disabled user %s", admin.pk, user.pk)
    return {"old": old, "new": new}


@transaction.atomic
def enable_user(user, admin, reason: str) -> dict:
    account = lock_billing_account(user)
    old = account.tier_snapshot()
    account.subscription_status = SubscriptionStatus.ACTIVE
    account.save(update_fields=["subscription_status", "updated_at"])
    new = account.tier_snapshot()

    _audit(
        user, admin, AdjustmentType.SUBSCRIPTION, f"[Enabled] {reason}",
        old_value=json.dumps(old),
        new_value=json.dumps(new),
    )
    logger.info("Admin %s enabled user %s", admin.pk, user.pk)
    return {"old": old, "new": new}


@transaction.atomic
def set_role(user, admin, role: str, reason: str) -> dict:
    from user_profile.models import Profile

    if role not in (ROLE_ADMIN, ROLE_USER):
        raise ValueError(f"Invalid role: {role}")

    Profile.objects.get_or_create(user=user)
    profile = Profile.objects.select_for_update().get(user=user)
    old_role = profile.role
    profile.role = role
    profile.save(update_fields=["role", "updated_on"])

    _audit(
        user, admin, AdjustmentType.ROLE, f"[Role change] {reason}",
        old_value=old_role,
        new_value=role,
    )
    logger.info("Admin %s changed role of user %s from %s to %s", admin.pk, user.pk, old_role, role)
    return {"old_role": old_role, "new_role": role}


def update_pricing(admin, prices: dict) -> dict:
    """
    Store new monthly prices per tier. When Stripe is configured a fresh
    monthly price is created for each tier and becomes the checkout price.
    """
    allowed = get_setting("PRICED_TIERS")
    prices = {tier: to_money(price) for tier, price in prices.items()}
    if not prices:
        raise ValueError("At least one tier price is required.")
    for tier, price in prices.items():
        if tier not in allowed:
            raise ValueError(f"Invalid tier: {tier}")
        if price <= 0:
            raise ValueError(f"Price for {tier} must be greater than zero.")

    # Stripe calls stay outside the transaction
    gateway = load_gateway("stripe", required=False)
    results = {}
    for tier, price in prices.items():
        stripe_price_id = None
        if gateway is not None:
            try:
                stripe_price_id = gateway.create_tier_price(tier, price, admin)
            except GatewayError:
                logger.exception("Could not create Stripe price for %s", tier)
        results[tier] = {"price": price, "stripe_price_id": stripe_price_id}

    with transaction.atomic():
        for tier, price in prices.items():
            AppConfig.set_value(f"price_{tier}_monthly", format_money(price), updated_by=admin)

        summary = ", ".join(f"{tier}=${format_money(price)}" for tier, price in prices.items())
        _audit(
            admin, admin, AdjustmentType.PRICING, f"Updated pricing: {summary}",
            new_value=json.dumps({
                tier: {"price": format_money(row["price"]), "stripePriceId": row["stripe_price_id"]}
                for tier, row in results.items()
            }),
        )

    logger.info("Admin %s updated pricing: %s", admin.pk, summary)
    return results


# --------------------------------------------------------------------------
# Renewal and top-ups
# --------------------------------------------------------------------------

def reset_usage_counters(user) -> None:
    """Zero both monthly counters, e.g. when a billing period renews."""
    BillingAccount.objects.filter(user=user).update(
        interviews_used=0,
        resume_matches_used=0,
        updated_at=timezone.now(),
    )


@transaction.atomic
def credit_top_up(session_id: str, *, user=None, amount=None, payment_intent_id=None, currency=None):
    """
    Credit a paid top-up session exactly once.

    Returns ``(record, credited)``; ``credited`` is False when the session
    had already been credited. An unknown session needs ``user`` and
    ``amount`` so a record can be created for it.
    """
    record = TopUpRecord.objects.select_for_update().filter(stripe_session_id=session_id).first()
    if record is None:
        if user is None or amount is None:
            raise TopUpError(f"Unknown top-up session {session_id}.")
        record = TopUpRecord.objects.create(
            user=user,
            stripe_session_id=session_id,
            amount_dollars=to_money(amount),
            currency=(currency or get_setting("CURRENCY")).lower(),
        )

    if record.status == TopUpStatus.COMPLETED:
        logger.info("Top-up %s already credited, skipping", session_id)
        return record, False

    if amount is not None:
        record.amount_dollars = to_money(amount)
    record.status = TopUpStatus.COMPLETED
    record.completed_at = timezone.now()
    if payment_intent_id:
        record.stripe_payment_intent_id = payment_intent_id
    record.save(update_fields=["amount_dollars", "status", "completed_at", "stripe_payment_intent_id"])

    BillingAccount.objects.get_or_create(user=record.user)
    BillingAccount.objects.filter(user=record.user).update(
        top_up_balance=F("top_up_balance") + record.amount_dollars,
        updated_at=timezone.now(),
    )
    logger.info("Credited top-up %s: $%s to user %s", session_id, record.amount_dollars, record.user_id)
    return record, True


def mark_top_up(session_id: str, status: str) -> bool:
    """Move a pending top-up to a terminal status. Completed records are left alone."""
    updated = TopUpRecord.objects.filter(
        stripe_session_id=session_id, status=TopUpStatus.PENDING
    ).update(status=status)
    return bool(updated)
