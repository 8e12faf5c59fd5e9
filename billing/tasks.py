import logging
from datetime import timedelta
from celery import shared_task
from django.utils import timezone
from billing.conf import get_setting
from billing.exceptions import BillingError
from billing.models import BillingAccount, TopUpRecord, TopUpStatus
from billing.payment_gateway.router import load_gateway

logger = logging.getLogger(__name__)


@shared_task(name="billing.sync_stripe_subscriptions")
def sync_stripe_subscriptions():
    """
    Re-sync every billing account that still points at a Stripe subscription.
    Covers webhook events that were missed or delayed.
    """
    gateway = load_gateway("stripe", required=False)
    if gateway is None:
        logger.info("Stripe is not configured, skipping subscription sync")
        return {"synced": 0, "failed": 0}

    accounts = BillingAccount.objects.exclude(subscription_id__isnull=True).exclude(subscription_id="")
    logger.info("Syncing %s Stripe subscriptions", accounts.count())

    synced = failed = 0
    for account in accounts.iterator():
        try:
            gateway.sync_subscription_status(account)
            synced += 1
        except BillingError:
            failed += 1
            logger.exception("Sync failed for subscription %s", account.subscription_id)

    logger.info("Subscription sync finished: %s succeeded, %s failed", synced, failed)
    return {"synced": synced, "failed": failed}


@shared_task(name="billing.reconcile_pending_top_ups")
def reconcile_pending_top_ups():
    """
    Re-check pending top-ups older than the grace period. Paid sessions are
    credited and expired ones are closed.
    """
    gateway = load_gateway("stripe", required=False)
    if gateway is None:
        logger.info("Stripe is not configured, skipping top-up reconciliation")
        return {"checked": 0, "credited": 0}

    cutoff = timezone.now() - timedelta(minutes=get_setting("TOP_UP_RECONCILE_AFTER_MINUTES"))
    pending = TopUpRecord.objects.filter(status=TopUpStatus.PENDING, created_at__lt=cutoff)

    checked = credited = 0
    for record in pending.iterator():
        checked += 1
        try:
            result = gateway.sync_checkout_session(record.stripe_session_id)
        except BillingError:
            logger.exception("Could not reconcile top-up %s", record.stripe_session_id)
            continue
        if result["credited"]:
            credited += 1

    logger.info("Top-up reconciliation: %s checked, %s credited", checked, credited)
    return {"checked": checked, "credited": credited}
