import logging
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
import stripe
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from billing.conf import frontend_url, get_setting
from billing.exceptions import GatewayError, PriceNotConfigured, SessionOwnershipError, TopUpError
from billing.models import (
    AppConfig,
    BillingAccount,
    StripeEventLog,
    SubscriptionStatus,
    SubscriptionTier,
    TopUpStatus,
    TopUpRecord,
)
from billing.services import (
    credit_top_up,
    format_money,
    get_billing_account,
    mark_top_up,
    reset_usage_counters,
    to_money,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}

TOP_UP_TYPE = "topup"


def configure(keys: dict):
    """
    Inject Stripe API credentials dynamically.
    Called automatically by the payment router.
    """
    stripe.api_key = keys.get("secret_key")


def _get(obj, key, default=None):
    """Read a field from a Stripe object or plain dict, tolerating absence."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _timestamp(value):
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _cents(amount) -> int:
    return int((to_money(amount) * 100).to_integral_value())


def _user_for(user_id):
    if user_id is None or not str(user_id).isdigit():
        return None
    return get_user_model().objects.filter(pk=int(user_id)).first()


def resolve_price_id(tier: str, interval: str):
    """A price id stored by an admin wins over the one from the environment."""
    price_id = AppConfig.get_value(f"stripe_price_id_{tier}_{interval}")
    if price_id:
        return price_id
    return (getattr(settings, "STRIPE_PRICE_IDS", None) or {}).get(f"{tier}_{interval}")


# --------------------------------------------------------------------------
# Customers and checkout
# --------------------------------------------------------------------------

def get_or_create_customer(user) -> str:
    """Ensure a Stripe Customer exists and is linked to the user's billing account."""
    account = get_billing_account(user)
    if account.stripe_customer_id:
        return account.stripe_customer_id

    profile = getattr(user, "profile", None)
    try:
        customer = stripe.Customer.create(
            email=user.email,
            name=(profile.display_name if profile else None) or user.get_username(),
            metadata={"userId": str(user.pk)},
        )
    except stripe.StripeError as exc:
        raise GatewayError("Could not create the payment customer.") from exc

    BillingAccount.objects.filter(pk=account.pk).update(stripe_customer_id=customer["id"])
    logger.info("Created Stripe customer %s for user %s", customer["id"], user.pk)
    return customer["id"]


def create_checkout_session(user, tier: str, interval: str):
    """
    Create a Stripe Checkout Session for a subscription plan.
    """
    if tier not in get_setting("CHECKOUT_TIERS"):
        raise ValueError("Invalid tier")
    if interval not in get_setting("CHECKOUT_INTERVALS"):
        raise ValueError("Invalid billing interval")

    price_id = resolve_price_id(tier, interval)
    if not price_id:
        raise PriceNotConfigured("Price not configured for this plan. Please contact support.")

    customer_id = get_or_create_customer(user)
    try:
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            payment_method_types=get_setting("PAYMENT_METHOD_TYPES"),
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=frontend_url("/dashboard?welcome=1"),
            cancel_url=frontend_url("/pricing"),
            client_reference_id=str(user.pk),
            metadata={"tier": tier, "interval": interval, "userId": str(user.pk)},
        )
    except stripe.StripeError as exc:
        raise GatewayError("Failed to create checkout session.") from exc

    logger.info("Checkout session %s created for user %s (%s/%s)", session["id"], user.pk, tier, interval)
    return session


def create_top_up_session(user, amount):
    """
    Create a one-time payment session that buys spendable balance and
    record it as a pending top-up.
    """
    amount = to_money(amount)
    minimum, maximum = get_setting("TOP_UP_MIN"), get_setting("TOP_UP_MAX")
    if amount < minimum or amount > maximum:
        raise TopUpError(
            f"Top-up amount must be between ${format_money(minimum)} and ${format_money(maximum)}.",
            details={"min": float(minimum), "max": float(maximum)},
        )

    currency = get_setting("CURRENCY")
    customer_id = get_or_create_customer(user)
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            customer=customer_id,
            payment_method_types=get_setting("PAYMENT_METHOD_TYPES"),
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": _cents(amount),
                        "product_data": {"name": "RoboHire balance top-up"},
                    },
                    "quantity": 1,
                }
            ],
            success_url=frontend_url("/dashboard/account?topup=success&session_id={CHECKOUT_SESSION_ID}"),
            cancel_url=frontend_url("/dashboard/account?topup=canceled"),
            client_reference_id=str(user.pk),
            metadata={"type": TOP_UP_TYPE, "userId": str(user.pk), "amount": format_money(amount)},
        )
    except stripe.StripeError as exc:
        raise GatewayError("Failed to create top-up session.") from exc

    TopUpRecord.objects.create(
        user=user,
        stripe_session_id=session["id"],
        amount_dollars=amount,
        currency=currency,
    )
    logger.info("Top-up session %s created for user %s ($%s)", session["id"], user.pk, amount)
    return session


def _credit_from_session(session):
    amount_total = _get(session, "amount_total")
    amount = Decimal(amount_total) / 100 if amount_total is not None else None
    owner_id = _get(session, "client_reference_id") or _get(_get(session, "metadata", {}), "userId")
    return credit_top_up(
        session["id"],
        user=_user_for(owner_id),
        amount=amount,
        payment_intent_id=_get(session, "payment_intent"),
        currency=_get(session, "currency"),
    )


def sync_checkout_session(session_id: str, user=None) -> dict:
    """
    Pull a checkout session from Stripe and credit it when paid.
    Used when the browser returns before the webhook arrives.
    """
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.InvalidRequestError as exc:
        raise TopUpError("Checkout session not found.") from exc
    except stripe.StripeError as exc:
        raise GatewayError("Could not reach the payment provider.") from exc

    metadata = _get(session, "metadata", {})
    owner_id = _get(session, "client_reference_id") or _get(metadata, "userId")
    if user is not None and str(owner_id) != str(user.pk):
        raise SessionOwnershipError("This checkout session belongs to another account.")
    if _get(metadata, "type") != TOP_UP_TYPE:
        raise TopUpError("Checkout session is not a top-up.")

    if _get(session, "payment_status") != "paid":
        if _get(session, "status") == "expired":
            mark_top_up(session_id, TopUpStatus.EXPIRED)
        record = TopUpRecord.objects.filter(stripe_session_id=session_id).first()
        return {
            "credited": False,
            "status": record.status if record else TopUpStatus.PENDING,
            "amount": record.amount_dollars if record else None,
        }

    record, credited = _credit_from_session(session)
    return {"credited": credited, "status": record.status, "amount": record.amount_dollars}


# --------------------------------------------------------------------------
# Webhooks
# --------------------------------------------------------------------------

def handle_webhook(event: dict) -> bool:
    """
    Apply a verified Stripe event. Returns False for an event id that was
    already processed. The log row and the state change commit together,
    so a failed handler leaves the event open for Stripe's retry.
    """
    event_id = event.get("id")
    event_type = event["type"]

    with transaction.atomic():
        if event_id and StripeEventLog.objects.filter(event_id=event_id).exists():
            logger.info("Ignoring duplicate Stripe event %s (%s)", event_id, event_type)
            return False

        StripeEventLog.objects.create(event_id=event_id, event_type=event_type, data=event)

        handler = WEBHOOK_HANDLERS.get(event_type)
        if handler is None:
            logger.debug("Unhandled Stripe event type %s", event_type)
            return True
        handler(event["data"]["object"])

    return True


def _account_for(customer_id=None, subscription_id=None):
    qs = BillingAccount.objects.select_for_update()
    account = None
    if customer_id:
        account = qs.filter(stripe_customer_id=customer_id).first()
    if account is None and subscription_id:
        account = qs.filter(subscription_id=subscription_id).first()
    return account


def _downgrade(account):
    account.subscription_tier = SubscriptionTier.FREE
    account.subscription_status = SubscriptionStatus.CANCELED
    account.subscription_id = None
    account.current_period_end = None
    account.cancel_at_period_end = False
    account.save(update_fields=[
        "subscription_tier", "subscription_status", "subscription_id",
        "current_period_end", "cancel_at_period_end", "updated_at",
    ])


def _period_end(subscription):
    """Newer API versions carry the period on the subscription items."""
    period_end = _get(subscription, "current_period_end")
    if not period_end:
        items = _get(_get(subscription, "items", {}), "data", [])
        if items:
            period_end = _get(items[0], "current_period_end")
    return _timestamp(period_end)


def _apply_subscription(account, subscription):
    status = STATUS_MAP.get(_get(subscription, "status"), SubscriptionStatus.PAST_DUE)
    if status == SubscriptionStatus.CANCELED:
        _downgrade(account)
        return account

    account.subscription_status = status
    account.subscription_id = _get(subscription, "id", account.subscription_id)
    account.current_period_end = _period_end(subscription)
    account.cancel_at_period_end = bool(_get(subscription, "cancel_at_period_end", False))
    account.trial_end = _timestamp(_get(subscription, "trial_end"))
    account.save(update_fields=[
        "subscription_status", "subscription_id", "current_period_end",
        "cancel_at_period_end", "trial_end", "updated_at",
    ])
    return account


def _on_checkout_completed(session):
    metadata = _get(session, "metadata", {})

    if _get(metadata, "type") == TOP_UP_TYPE:
        if _get(session, "payment_status") == "paid":
            _credit_from_session(session)
        return

    user = _user_for(_get(session, "client_reference_id") or _get(metadata, "userId"))
    tier = _get(metadata, "tier")
    if user is None or tier not in SubscriptionTier.values:
        logger.warning("Checkout session %s has no usable user/tier metadata", _get(session, "id"))
        return

    account = get_billing_account(user)
    account.subscription_tier = tier
    account.subscription_status = SubscriptionStatus.ACTIVE
    account.subscription_id = _get(session, "subscription")
    account.cancel_at_period_end = False
    account.stripe_customer_id = _get(session, "customer", account.stripe_customer_id)
    account.save(update_fields=[
        "subscription_tier", "subscription_status", "subscription_id",
        "cancel_at_period_end", "stripe_customer_id", "updated_at",
    ])
    logger.info("User %s subscribed to %s", user.pk, tier)


def _on_checkout_expired(session):
    if _get(_get(session, "metadata", {}), "type") == TOP_UP_TYPE:
        mark_top_up(session["id"], TopUpStatus.EXPIRED)


def _on_subscription_updated(subscription):
    account = _account_for(_get(subscription, "customer"), _get(subscription, "id"))
    if account is None:
        logger.warning("No billing account for Stripe subscription %s", _get(subscription, "id"))
        return
    _apply_subscription(account, subscription)


def _on_subscription_deleted(subscription):
    account = _account_for(_get(subscription, "customer"), _get(subscription, "id"))
    if account is None:
        return
    _downgrade(account)
    logger.info("Subscription %s deleted, user %s moved to free", _get(subscription, "id"), account.user_id)


def _on_invoice_payment_failed(invoice):
    account = _account_for(_get(invoice, "customer"), _get(invoice, "subscription"))
    if account is None:
        return
    account.subscription_status = SubscriptionStatus.PAST_DUE
    account.save(update_fields=["subscription_status", "updated_at"])
    logger.warning("Invoice payment failed for user %s", account.user_id)


def _on_invoice_payment_succeeded(invoice):
    if _get(invoice, "billing_reason") != "subscription_cycle":
        return
    account = _account_for(_get(invoice, "customer"), _get(invoice, "subscription"))
    if account is None:
        return
    reset_usage_counters(account.user)
    BillingAccount.objects.filter(pk=account.pk).update(
        subscription_status=SubscriptionStatus.ACTIVE, updated_at=timezone.now()
    )
    logger.info("Subscription renewed for user %s, usage counters reset", account.user_id)


WEBHOOK_HANDLERS = {
    "checkout.session.completed": _on_checkout_completed,
    "checkout.session.expired": _on_checkout_expired,
    "customer.subscription.updated": _on_subscription_updated,
    "customer.subscription.deleted": _on_subscription_deleted,
    "invoice.payment_failed": _on_invoice_payment_failed,
    "invoice.payment_succeeded": _on_invoice_payment_succeeded,
}


# --------------------------------------------------------------------------
# Reconciliation and admin operations
# --------------------------------------------------------------------------

def sync_subscription_status(account):
    """
    Sync local billing state with the Stripe subscription.
    Useful when webhook events were missed or delayed.
    """
    if not account.subscription_id:
        return account

    try:
        subscription = stripe.Subscription.retrieve(account.subscription_id)
    except stripe.InvalidRequestError:
        logger.warning("Stripe subscription %s no longer exists, downgrading user %s",
                       account.subscription_id, account.user_id)
        _downgrade(account)
        return account
    except stripe.StripeError as exc:
        raise GatewayError(f"Could not sync subscription {account.subscription_id}.") from exc

    return _apply_subscription(account, subscription)


def cancel_remote_subscription(subscription_id: str, immediate: bool = False):
    try:
        if immediate:
            return stripe.Subscription.cancel(subscription_id)
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
    except stripe.StripeError as exc:
        raise GatewayError(f"Could not cancel subscription {subscription_id}.") from exc


def create_tier_price(tier: str, amount, admin=None) -> str:
    """
    Create a new monthly price for ``tier`` and make it the checkout price.
    Stripe prices are immutable, so the previous one is archived.
    """
    from billing.payment_gateway.sync_stripe import ensure_product_for_tier

    product_id = ensure_product_for_tier(tier, updated_by=admin)
    try:
        price = stripe.Price.create(
            product=product_id,
            unit_amount=_cents(amount),
            currency=get_setting("CURRENCY"),
            recurring={"interval": "month"},
            metadata={"tier": tier, "updatedBy": str(admin.pk) if admin else ""},
        )
    except stripe.StripeError as exc:
        raise GatewayError(f"Could not create a Stripe price for {tier}.") from exc

    key = f"stripe_price_id_{tier}_monthly"
    old_price_id = AppConfig.get_value(key)
    if old_price_id:
        try:
            stripe.Price.modify(old_price_id, active=False)
        except stripe.StripeError:
            logger.warning("Could not archive Stripe price %s", old_price_id, exc_info=True)

    AppConfig.set_value(key, price["id"], updated_by=admin)
    logger.info("Stripe price %s is now the %s monthly price", price["id"], tier)
    return price["id"]
