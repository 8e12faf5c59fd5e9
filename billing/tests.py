import json
import tempfile
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from pathlib import Path
from unittest import mock
import stripe
from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient, APIRequestFactory, force_authenticate
from rest_framework.views import APIView
from auth_core.responses import success
from auth_core.views import PrivateUserViewMixin
from billing import services
from billing.exceptions import (
    GatewayError,
    GatewayNotConfigured,
    PriceNotConfigured,
    SessionOwnershipError,
    SubscriptionInactive,
    TopUpError,
    UsageLimitExceeded,
)
from billing.metering import MeteredActionMixin, charge_usage, get_quota
from billing.models import AdminAdjustment, AppConfig, BillingAccount, StripeEventLog, TopUpRecord
from billing.payment_gateway import stripe as gateway
from billing.payment_gateway.router import get_gateway, load_gateway
from billing.tasks import reconcile_pending_top_ups, sync_stripe_subscriptions


def make_user(email, tier="free", status="active", balance="0.00", **account_fields):
    user = User.objects.create_user(username=email, email=email, password="S3cure-pass-2024")
    BillingAccount.objects.filter(user=user).update(
        subscription_tier=tier,
        subscription_status=status,
        top_up_balance=Decimal(balance),
        **account_fields,
    )
    return user


def account_of(user):
    return BillingAccount.objects.get(user=user)


def paid_top_up_session(session_id, user, amount_cents=2000, **extra):
    session = {
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": "paid",
        "status": "complete",
        "amount_total": amount_cents,
        "currency": "usd",
        "client_reference_id": str(user.pk),
        "payment_intent": "pi_123",
        "metadata": {"type": "topup", "userId": str(user.pk), "amount": f"{amount_cents / 100:.2f}"},
    }
    session.update(extra)
    return session


def webhook_event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


class ChargeUsageTest(TestCase):

    def test_plan_quota_is_used_first(self):
        user = make_user("starter@example.com", tier="starter", balance="10.00")
        charge = charge_usage(user, "interview")
        self.assertEqual(charge.source, "plan")
        self.assertEqual(charge.cost, Decimal("0.00"))
        account = account_of(user)
        self.assertEqual(account.interviews_used, 1)
        self.assertEqual(account.top_up_balance, Decimal("10.00"))

    def test_balance_is_debited_once_quota_is_spent(self):
        user = make_user("over@example.com", tier="starter", balance="5.00", interviews_used=15)
        charge = charge_usage(user, "interview")
        self.assertEqual(charge.source, "topup")
        self.assertEqual(charge.cost, Decimal("2.00"))
        account = account_of(user)
        self.assertEqual(account.top_up_balance, Decimal("3.00"))
        self.assertEqual(account.interviews_used, 16)

    def test_limit_exceeded_when_balance_is_short(self):
        user = make_user("short@example.com", tier="starter", balance="0.10", resume_matches_used=30)
        with self.assertRaises(UsageLimitExceeded) as ctx:
            charge_usage(user, "match")

        details = ctx.exception.details
        self.assertEqual(ctx.exception.status_code, 402)
        self.assertEqual(details["limit"], 30)
        self.assertEqual(details["used"], 30)
        self.assertEqual(details["pricePerUnit"], 0.4)
        self.assertEqual(details["currentBalance"], 0.1)
        self.assertEqual(account_of(user).resume_matches_used, 30)

    def test_free_tier_draws_only_on_balance(self):
        user = make_user("free@example.com", balance="1.00")
        self.assertEqual(charge_usage(user, "match").source, "topup")
        with self.assertRaises(UsageLimitExceeded):
            charge_usage(user, "interview")

    def test_custom_tier_is_unlimited(self):
        user = make_user("custom@example.com", tier="custom", interviews_used=10000)
        self.assertEqual(charge_usage(user, "interview").source, "plan")

    def test_inactive_paid_plan_without_balance_is_refused(self):
        user = make_user("pastdue@example.com", tier="growth", status="past_due")
        with self.assertRaises(SubscriptionInactive) as ctx:
            charge_usage(user, "interview")
        self.assertEqual(ctx.exception.code, "SUBSCRIPTION_INACTIVE")

    def test_inactive_paid_plan_with_balance_keeps_plan_quota(self):
        user = make_user("pastdue3@example.com", tier="starter", status="past_due", balance="10.00")
        charge = charge_usage(user, "interview")
        self.assertEqual(charge.source, "plan")
        self.assertEqual(charge.cost, Decimal("0.00"))
        account = account_of(user)
        self.assertEqual(account.top_up_balance, Decimal("10.00"))
        self.assertEqual(account.interviews_used, 1)

    def test_inactive_paid_plan_falls_back_to_balance(self):
        user = make_user("pastdue2@example.com", tier="growth", status="past_due", balance="4.00",
                         interviews_used=120)
        charge = charge_usage(user, "interview")
        self.assertEqual(charge.source, "topup")
        self.assertEqual(account_of(user).top_up_balance, Decimal("2.00"))

    def test_unknown_action(self):
        user = make_user("x@example.com")
        with self.assertRaises(ValueError):
            charge_usage(user, "translate")

    def test_quota(self):
        user = make_user("quota@example.com", tier="starter", interviews_used=5)
        quota = get_quota(user)
        self.assertEqual(quota["limits"]["interview"], 15)
        self.assertEqual(quota["remaining"]["interview"], 10)
        self.assertEqual(quota["remaining"]["match"], 30)
        self.assertEqual(quota["pay_per_use"]["match"], Decimal("0.40"))


class MeteredView(MeteredActionMixin, PrivateUserViewMixin, APIView):
    metered_action = "interview"

    def get(self, request):
        return success({"charged": hasattr(request, "usage_charge")})

    def post(self, request):
        return success({"source": request.usage_charge.source})


class MeteredActionMixinTest(TestCase):

    def setUp(self):
        cache.clear()
        self.factory = APIRequestFactory()
        self.view = MeteredView.as_view()

    def test_post_is_charged(self):
        user = make_user("m@example.com", tier="starter")
        request = self.factory.post("/api/v1/evaluate-interview")
        force_authenticate(request, user=user)
        response = self.view(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["source"], "plan")
        self.assertEqual(account_of(user).interviews_used, 1)

    def test_get_is_free(self):
        user = make_user("g@example.com", tier="starter")
        request = self.factory.get("/api/v1/evaluate-interview")
        force_authenticate(request, user=user)
        response = self.view(request)
        self.assertFalse(response.data["data"]["charged"])
        self.assertEqual(account_of(user).interviews_used, 0)

    def test_exhausted_quota_returns_402(self):
        user = make_user("e@example.com")
        request = self.factory.post("/api/v1/evaluate-interview")
        force_authenticate(request, user=user)
        response = self.view(request)
        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.data["code"], "USAGE_LIMIT_EXCEEDED")
        self.assertEqual(response.data["details"]["requiredBalance"], 2.0)


class AdminAdjustmentServicesTest(TestCase):

    def setUp(self):
        self.admin = make_user("admin@example.com")
        self.user = make_user("user@example.com", tier="starter", balance="10.00",
                              interviews_used=3, resume_matches_used=5)

    def test_adjust_balance_never_goes_negative(self):
        result = services.adjust_balance(self.user, self.admin, Decimal("-25"), "Refund reversal")
        self.assertEqual(result["old_balance"], Decimal("10.00"))
        self.assertEqual(result["new_balance"], Decimal("0.00"))
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("0.00"))

        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(audit.type, "balance")
        self.assertEqual(audit.admin, self.admin)
        self.assertEqual(audit.amount, Decimal("-25.00"))
        self.assertEqual((audit.old_value, audit.new_value), ("10.00", "0.00"))
        self.assertEqual(audit.reason, "Refund reversal")

    def test_adjust_usage(self):
        result = services.adjust_usage(self.user, self.admin, "match", -10, "Credit back")
        self.assertEqual((result["old_value"], result["new_value"]), (5, 0))
        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(audit.type, "usage_match")
        self.assertEqual((audit.old_value, audit.new_value), ("5", "0"))

    def test_set_subscription_records_snapshots(self):
        services.set_subscription(self.user, self.admin, "business", "Upgrade", status="trialing")
        account = account_of(self.user)
        self.assertEqual((account.subscription_tier, account.subscription_status), ("business", "trialing"))
        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(json.loads(audit.old_value), {"tier": "starter", "status": "active"})
        self.assertEqual(json.loads(audit.new_value), {"tier": "business", "status": "trialing"})

    def test_set_subscription_rejects_unknown_tier(self):
        with self.assertRaises(ValueError):
            services.set_subscription(self.user, self.admin, "platinum", "nope")
        self.assertFalse(AdminAdjustment.objects.exists())

    def test_reset_usage_writes_row_per_counter(self):
        services.reset_usage(self.user, self.admin, "Goodwill")
        account = account_of(self.user)
        self.assertEqual((account.interviews_used, account.resume_matches_used), (0, 0))
        rows = AdminAdjustment.objects.filter(user=self.user).order_by("type")
        self.assertEqual([row.type for row in rows], ["usage_interview", "usage_match"])
        self.assertTrue(all(row.reason == "[Reset] Goodwill" for row in rows))
        self.assertEqual(rows[0].amount, Decimal("-3"))

    def test_reset_usage_with_nothing_used_still_audits(self):
        services.reset_usage(self.user, self.admin, "Start fresh")
        services.reset_usage(self.user, self.admin, "Again")
        row = AdminAdjustment.objects.filter(reason="[Reset] Again").get()
        self.assertEqual(row.type, "usage_interview")
        self.assertEqual(row.amount, Decimal("0"))

    def test_cancel_immediately(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_id="sub_1")
        with mock.patch("stripe.Subscription.cancel") as cancel:
            result = services.cancel_subscription(self.user, self.admin, "Fraud", immediate=True)
        cancel.assert_called_once_with("sub_1")
        self.assertTrue(result["remote_canceled"])

        account = account_of(self.user)
        self.assertEqual((account.subscription_tier, account.subscription_status), ("free", "canceled"))
        self.assertIsNone(account.subscription_id)
        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(json.loads(audit.new_value)["cancelMode"], "immediate")

    def test_cancel_at_period_end_survives_stripe_failure(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_id="sub_1")
        with mock.patch("stripe.Subscription.modify", side_effect=stripe.APIConnectionError("down")):
            result = services.cancel_subscription(self.user, self.admin, "Requested")
        self.assertFalse(result["remote_canceled"])
        self.assertEqual(result["cancel_mode"], "end_of_period")

        account = account_of(self.user)
        self.assertTrue(account.cancel_at_period_end)
        self.assertEqual(account.subscription_tier, "starter")

    def test_cancel_at_period_end_needs_a_subscription(self):
        result = services.cancel_subscription(self.user, self.admin, "Requested")
        self.assertEqual(result["cancel_mode"], "end_of_period")
        self.assertFalse(result["cancel_at_period_end"])
        self.assertFalse(account_of(self.user).cancel_at_period_end)
        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(json.loads(audit.new_value)["cancelMode"], "end_of_period")

    @override_settings(STRIPE_SECRET_KEY="")
    def test_cancel_without_stripe_is_local_only(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_id="sub_1")
        result = services.cancel_subscription(self.user, self.admin, "Requested", immediate=True)
        self.assertFalse(result["remote_canceled"])
        self.assertEqual(account_of(self.user).subscription_tier, "free")

    def test_disable_and_enable(self):
        services.disable_user(self.user, self.admin, "Abuse")
        self.assertEqual(account_of(self.user).subscription_status, "canceled")
        services.enable_user(self.user, self.admin, "Resolved")
        self.assertEqual(account_of(self.user).subscription_status, "active")

        reasons = list(AdminAdjustment.objects.filter(user=self.user).values_list("reason", flat=True))
        self.assertIn("[Disabled] Abuse", reasons)
        self.assertIn("[Enabled] Resolved", reasons)

    def test_set_role(self):
        result = services.set_role(self.user, self.admin, "admin", "New teammate")
        self.assertEqual(result, {"old_role": "user", "new_role": "admin"})
        self.user.profile.refresh_from_db()
        self.assertTrue(self.user.profile.is_admin)
        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual((audit.type, audit.reason), ("role", "[Role change] New teammate"))

        with self.assertRaises(ValueError):
            services.set_role(self.user, self.admin, "owner", "nope")


class UpdatePricingTest(TestCase):

    def setUp(self):
        self.admin = make_user("admin@example.com")

    def test_creates_prices_and_archives_the_old_one(self):
        AppConfig.set_value("stripe_price_id_starter_monthly", "price_old")
        with mock.patch("stripe.Product.create", return_value={"id": "prod_starter"}), \
                mock.patch("stripe.Price.create", return_value={"id": "price_new"}) as create_price, \
                mock.patch("stripe.Price.modify") as modify_price:
            results = services.update_pricing(self.admin, {"starter": Decimal("29")})

        self.assertEqual(results["starter"]["stripe_price_id"], "price_new")
        self.assertEqual(create_price.call_args.kwargs["unit_amount"], 2900)
        modify_price.assert_called_once_with("price_old", active=False)
        self.assertEqual(AppConfig.get_value("price_starter_monthly"), "29.00")
        self.assertEqual(AppConfig.get_value("stripe_price_id_starter_monthly"), "price_new")
        self.assertEqual(AppConfig.get_value("stripe_product_id_starter"), "prod_starter")

        audit = AdminAdjustment.objects.get(type="pricing")
        self.assertEqual(audit.reason, "Updated pricing: starter=$29.00")
        self.assertEqual(json.loads(audit.new_value)["starter"]["stripePriceId"], "price_new")

    def test_stripe_failure_keeps_the_stored_price(self):
        with mock.patch("stripe.Product.create", side_effect=stripe.APIConnectionError("down")):
            results = services.update_pricing(self.admin, {"growth": 99})
        self.assertIsNone(results["growth"]["stripe_price_id"])
        self.assertEqual(AppConfig.get_value("price_growth_monthly"), "99.00")

    def test_stripe_is_called_outside_the_transaction(self):
        outer = len(connection.savepoint_ids)
        depth = []
        remote = mock.Mock()
        remote.create_tier_price.side_effect = lambda tier, price, admin: (
            depth.append(len(connection.savepoint_ids)) or f"price_{tier}"
        )
        with mock.patch("billing.services.load_gateway", return_value=remote):
            services.update_pricing(self.admin, {"starter": 29, "growth": 99})

        self.assertEqual(depth, [outer, outer])
        self.assertEqual(AppConfig.get_value("price_growth_monthly"), "99.00")

    def test_validation(self):
        with self.assertRaises(ValueError):
            services.update_pricing(self.admin, {})
        with self.assertRaises(ValueError):
            services.update_pricing(self.admin, {"enterprise": 10})
        with self.assertRaises(ValueError):
            services.update_pricing(self.admin, {"starter": 0})


class CreditTopUpTest(TestCase):

    def setUp(self):
        self.user = make_user("buyer@example.com", balance="1.00")
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"))

    def test_credits_exactly_once(self):
        record, credited = services.credit_top_up("cs_1", payment_intent_id="pi_1")
        self.assertTrue(credited)
        self.assertEqual(record.status, "completed")
        self.assertIsNotNone(record.completed_at)

        record, credited = services.credit_top_up("cs_1")
        self.assertFalse(credited)
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("21.00"))

    def test_unknown_session_is_created_when_owner_known(self):
        record, credited = services.credit_top_up("cs_new", user=self.user, amount=Decimal("7.50"))
        self.assertTrue(credited)
        self.assertEqual(record.amount_dollars, Decimal("7.50"))
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("8.50"))

    def test_unknown_session_without_owner(self):
        with self.assertRaises(TopUpError):
            services.credit_top_up("cs_missing")

    def test_mark_top_up_only_moves_pending(self):
        self.assertTrue(services.mark_top_up("cs_1", "expired"))
        services.credit_top_up("cs_1")
        self.assertEqual(TopUpRecord.objects.get(stripe_session_id="cs_1").status, "completed")
        self.assertFalse(services.mark_top_up("cs_1", "expired"))


class GatewayRouterTest(TestCase):

    def test_loads_configured_gateway(self):
        self.assertIs(load_gateway("stripe"), gateway)
        self.assertEqual(stripe.api_key, "sk_test_dummy")

    @override_settings(STRIPE_SECRET_KEY="")
    def test_missing_key(self):
        with self.assertRaises(GatewayNotConfigured):
            load_gateway("stripe")
        self.assertIsNone(load_gateway("stripe", required=False))

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            get_gateway("paypal")


class CheckoutSessionTest(TestCase):

    def setUp(self):
        self.user = make_user("shopper@example.com")

    def test_subscription_checkout(self):
        with mock.patch("stripe.Customer.create", return_value={"id": "cus_1"}), \
                mock.patch("stripe.checkout.Session.create",
                           return_value={"id": "cs_sub", "url": "https://stripe.test/cs_sub"}) as create:
            session = gateway.create_checkout_session(self.user, "starter", "monthly")

        self.assertEqual(session["id"], "cs_sub")
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["mode"], "subscription")
        self.assertEqual(kwargs["line_items"], [{"price": "price_starter_monthly", "quantity": 1}])
        self.assertEqual(kwargs["success_url"], "http://frontend.test/dashboard?welcome=1")
        self.assertEqual(kwargs["metadata"], {"tier": "starter", "interval": "monthly", "userId": str(self.user.pk)})
        self.assertEqual(account_of(self.user).stripe_customer_id, "cus_1")

    def test_admin_price_overrides_environment(self):
        AppConfig.set_value("stripe_price_id_growth_annual", "price_admin")
        self.assertEqual(gateway.resolve_price_id("growth", "annual"), "price_admin")
        self.assertEqual(gateway.resolve_price_id("growth", "monthly"), "price_growth_monthly")

    def test_missing_price(self):
        with self.assertRaises(PriceNotConfigured):
            gateway.create_checkout_session(self.user, "growth", "annual")

    def test_invalid_tier(self):
        with self.assertRaises(ValueError):
            gateway.create_checkout_session(self.user, "custom", "monthly")

    def test_top_up_session_records_pending_top_up(self):
        BillingAccount.objects.filter(user=self.user).update(stripe_customer_id="cus_9")
        with mock.patch("stripe.checkout.Session.create",
                        return_value={"id": "cs_top", "url": "https://stripe.test/cs_top"}) as create:
            gateway.create_top_up_session(self.user, Decimal("25"))

        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["mode"], "payment")
        self.assertEqual(kwargs["customer"], "cus_9")
        self.assertEqual(kwargs["line_items"][0]["price_data"]["unit_amount"], 2500)
        self.assertEqual(kwargs["metadata"]["type"], "topup")
        record = TopUpRecord.objects.get(stripe_session_id="cs_top")
        self.assertEqual((record.status, record.amount_dollars), ("pending", Decimal("25.00")))

    def test_top_up_bounds(self):
        with self.assertRaises(TopUpError):
            gateway.create_top_up_session(self.user, Decimal("4.99"))
        with self.assertRaises(TopUpError):
            gateway.create_top_up_session(self.user, Decimal("1000.01"))

    def test_stripe_failure_is_a_gateway_error(self):
        with mock.patch("stripe.Customer.create", side_effect=stripe.APIConnectionError("down")):
            with self.assertRaises(GatewayError):
                gateway.create_checkout_session(self.user, "starter", "monthly")


class SyncCheckoutSessionTest(TestCase):

    def setUp(self):
        self.user = make_user("sync@example.com")
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"))

    def test_paid_session_is_credited_once(self):
        with mock.patch("stripe.checkout.Session.retrieve", return_value=paid_top_up_session("cs_1", self.user)):
            first = gateway.sync_checkout_session("cs_1", user=self.user)
            second = gateway.sync_checkout_session("cs_1", user=self.user)

        self.assertTrue(first["credited"])
        self.assertFalse(second["credited"])
        self.assertEqual(second["status"], "completed")
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("20.00"))

    def test_other_users_session(self):
        intruder = make_user("intruder@example.com")
        with mock.patch("stripe.checkout.Session.retrieve", return_value=paid_top_up_session("cs_1", self.user)):
            with self.assertRaises(SessionOwnershipError):
                gateway.sync_checkout_session("cs_1", user=intruder)
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("0.00"))

    def test_unpaid_expired_session_is_closed(self):
        session = paid_top_up_session("cs_1", self.user, payment_status="unpaid", status="expired")
        with mock.patch("stripe.checkout.Session.retrieve", return_value=session):
            result = gateway.sync_checkout_session("cs_1", user=self.user)
        self.assertEqual(result, {"credited": False, "status": "expired", "amount": Decimal("20.00")})

    def test_subscription_session_is_not_a_top_up(self):
        session = paid_top_up_session("cs_1", self.user, metadata={"tier": "starter"})
        with mock.patch("stripe.checkout.Session.retrieve", return_value=session):
            with self.assertRaises(TopUpError):
                gateway.sync_checkout_session("cs_1", user=self.user)

    def test_unknown_session(self):
        error = stripe.InvalidRequestError("No such checkout.session", "id")
        with mock.patch("stripe.checkout.Session.retrieve", side_effect=error):
            with self.assertRaises(TopUpError):
                gateway.sync_checkout_session("cs_nope", user=self.user)


class WebhookHandlingTest(TestCase):

    def setUp(self):
        self.user = make_user("hook@example.com", stripe_customer_id="cus_1")

    def test_subscription_checkout_completed(self):
        session = {
            "id": "cs_sub", "mode": "subscription", "customer": "cus_1", "subscription": "sub_1",
            "client_reference_id": str(self.user.pk), "metadata": {"tier": "growth", "interval": "monthly"},
        }
        self.assertTrue(gateway.handle_webhook(webhook_event("checkout.session.completed", session)))
        account = account_of(self.user)
        self.assertEqual((account.subscription_tier, account.subscription_status), ("growth", "active"))
        self.assertEqual(account.subscription_id, "sub_1")

    def test_duplicate_events_are_ignored(self):
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"))
        event = webhook_event("checkout.session.completed", paid_top_up_session("cs_1", self.user))
        self.assertTrue(gateway.handle_webhook(event))
        self.assertFalse(gateway.handle_webhook(event))
        self.assertEqual(StripeEventLog.objects.count(), 1)
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("20.00"))

    def test_top_up_credited_by_webhook_and_sync_only_once(self):
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"))
        session = paid_top_up_session("cs_1", self.user)
        gateway.handle_webhook(webhook_event("checkout.session.completed", session))
        with mock.patch("stripe.checkout.Session.retrieve", return_value=session):
            result = gateway.sync_checkout_session("cs_1", user=self.user)
        self.assertFalse(result["credited"])
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("20.00"))

    def test_expired_top_up(self):
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_2", amount_dollars=Decimal("5.00"))
        session = {"id": "cs_2", "metadata": {"type": "topup"}}
        gateway.handle_webhook(webhook_event("checkout.session.expired", session))
        self.assertEqual(TopUpRecord.objects.get(stripe_session_id="cs_2").status, "expired")

    def test_subscription_updated_reads_period_from_items(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_tier="starter", subscription_id="sub_1")
        subscription = {
            "id": "sub_1", "customer": "cus_1", "status": "past_due", "cancel_at_period_end": True,
            "items": {"data": [{"current_period_end": 1767225600}]},
        }
        gateway.handle_webhook(webhook_event("customer.subscription.updated", subscription))
        account = account_of(self.user)
        self.assertEqual(account.subscription_status, "past_due")
        self.assertTrue(account.cancel_at_period_end)
        self.assertEqual(account.current_period_end.year, 2026)

    def test_subscription_deleted_downgrades(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_tier="business", subscription_id="sub_1")
        gateway.handle_webhook(webhook_event("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_x"}))
        account = account_of(self.user)
        self.assertEqual((account.subscription_tier, account.subscription_status), ("free", "canceled"))
        self.assertIsNone(account.subscription_id)

    def test_invoice_events(self):
        BillingAccount.objects.filter(user=self.user).update(
            subscription_tier="starter", subscription_id="sub_1", interviews_used=9, resume_matches_used=4,
        )
        invoice = {"customer": "cus_1", "subscription": "sub_1"}
        gateway.handle_webhook(webhook_event("invoice.payment_failed", invoice, event_id="evt_fail"))
        self.assertEqual(account_of(self.user).subscription_status, "past_due")

        first_invoice = {**invoice, "billing_reason": "subscription_create"}
        gateway.handle_webhook(webhook_event("invoice.payment_succeeded", first_invoice, event_id="evt_create"))
        self.assertEqual(account_of(self.user).interviews_used, 9)

        renewal = {**invoice, "billing_reason": "subscription_cycle"}
        gateway.handle_webhook(webhook_event("invoice.payment_succeeded", renewal, event_id="evt_cycle"))
        account = account_of(self.user)
        self.assertEqual((account.interviews_used, account.resume_matches_used), (0, 0))
        self.assertEqual(account.subscription_status, "active")

    def test_failed_handler_leaves_event_retryable(self):
        boom = mock.Mock(side_effect=RuntimeError("db down"))
        with mock.patch.dict(gateway.WEBHOOK_HANDLERS, {"invoice.payment_failed": boom}):
            with self.assertRaises(RuntimeError):
                gateway.handle_webhook(webhook_event("invoice.payment_failed", {"customer": "cus_1"}))
        self.assertFalse(StripeEventLog.objects.exists())

    def test_unhandled_event_is_logged(self):
        self.assertTrue(gateway.handle_webhook(webhook_event("customer.created", {"id": "cus_2"})))
        self.assertEqual(StripeEventLog.objects.get().event_type, "customer.created")


class SubscriptionSyncTest(TestCase):

    def setUp(self):
        self.user = make_user("sub@example.com", tier="starter", subscription_id="sub_1")

    def test_sync_applies_remote_status(self):
        remote = {"id": "sub_1", "status": "trialing", "current_period_end": 1767225600, "trial_end": 1767225600}
        with mock.patch("stripe.Subscription.retrieve", return_value=remote):
            gateway.sync_subscription_status(account_of(self.user))
        account = account_of(self.user)
        self.assertEqual(account.subscription_status, "trialing")
        self.assertIsNotNone(account.trial_end)

    def test_missing_remote_subscription_downgrades(self):
        error = stripe.InvalidRequestError("No such subscription", "id")
        with mock.patch("stripe.Subscription.retrieve", side_effect=error):
            gateway.sync_subscription_status(account_of(self.user))
        self.assertEqual(account_of(self.user).subscription_tier, "free")

    def test_connection_error(self):
        with mock.patch("stripe.Subscription.retrieve", side_effect=stripe.APIConnectionError("down")):
            with self.assertRaises(GatewayError):
                gateway.sync_subscription_status(account_of(self.user))

    def test_sync_task_counts(self):
        make_user("nosub@example.com")
        with mock.patch("stripe.Subscription.retrieve", return_value={"id": "sub_1", "status": "active"}):
            result = sync_stripe_subscriptions()
        self.assertEqual(result, {"synced": 1, "failed": 0})

    def test_sync_task_counts_failures(self):
        with mock.patch("stripe.Subscription.retrieve", side_effect=stripe.APIConnectionError("down")):
            result = sync_stripe_subscriptions()
        self.assertEqual(result, {"synced": 0, "failed": 1})


class ReconcileTopUpsTest(TestCase):

    def setUp(self):
        self.user = make_user("late@example.com")
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_old", amount_dollars=Decimal("15.00"))
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_new", amount_dollars=Decimal("15.00"))
        TopUpRecord.objects.filter(stripe_session_id="cs_old").update(
            created_at=timezone.now() - timedelta(hours=3)
        )

    def test_only_stale_pending_sessions_are_checked(self):
        session = paid_top_up_session("cs_old", self.user, amount_cents=1500)
        with mock.patch("stripe.checkout.Session.retrieve", return_value=session) as retrieve:
            result = reconcile_pending_top_ups()

        retrieve.assert_called_once_with("cs_old")
        self.assertEqual(result, {"checked": 1, "credited": 1})
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("15.00"))

    @override_settings(STRIPE_SECRET_KEY="")
    def test_skipped_without_stripe(self):
        self.assertEqual(reconcile_pending_top_ups(), {"checked": 0, "credited": 0})


class StripeWebhookViewTest(TestCase):
    url = "/api/v1/webhooks/stripe"

    def setUp(self):
        self.user = make_user("wh@example.com")
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"))
        self.event = webhook_event("checkout.session.completed", paid_top_up_session("cs_1", self.user))

    def post(self, event):
        return self.client.post(self.url, data=json.dumps(event), content_type="application/json",
                                HTTP_STRIPE_SIGNATURE="t=1,v1=abc")

    def test_verified_event_is_processed(self):
        with mock.patch("stripe.Webhook.construct_event") as construct:
            response = self.post(self.event)
            duplicate = self.post(self.event)

        construct.assert_called()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"received": True, "duplicate": False})
        self.assertEqual(duplicate.json(), {"received": True, "duplicate": True})
        self.assertEqual(account_of(self.user).top_up_balance, Decimal("20.00"))

    def test_bad_signature(self):
        error = stripe.SignatureVerificationError("bad signature", "t=1,v1=abc")
        with mock.patch("stripe.Webhook.construct_event", side_effect=error):
            response = self.post(self.event)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(StripeEventLog.objects.exists())

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_not_configured(self):
        self.assertEqual(self.post(self.event).status_code, 503)

    def test_handler_failure_returns_500(self):
        with mock.patch("stripe.Webhook.construct_event"), \
                mock.patch("billing.payment_gateway.stripe.credit_top_up", side_effect=RuntimeError("boom")):
            response = self.post(self.event)
        self.assertEqual(response.status_code, 500)
        self.assertFalse(StripeEventLog.objects.exists())


class BillingViewsTest(TestCase):

    def setUp(self):
        cache.clear()
        self.user = make_user("api@example.com", tier="starter", balance="3.00")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_billing_status(self):
        response = self.client.get("/api/v1/billing/")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["account"]["subscription_tier"], "starter")
        self.assertEqual(data["quota"]["remaining"]["interview"], 15)

    def test_checkout_validation(self):
        response = self.client.post("/api/v1/checkout", {"tier": "platinum", "interval": "monthly"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_checkout(self):
        with mock.patch("stripe.Customer.create", return_value={"id": "cus_1"}), \
                mock.patch("stripe.checkout.Session.create", return_value={"id": "cs_1", "url": "https://pay"}):
            response = self.client.post("/api/v1/checkout", {"tier": "starter", "interval": "monthly"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"url": "https://pay", "session_id": "cs_1"})

    def test_missing_price_is_reported(self):
        response = self.client.post("/api/v1/checkout", {"tier": "growth", "interval": "annual"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "PRICE_NOT_CONFIGURED")

    @override_settings(STRIPE_SECRET_KEY="")
    def test_payments_not_configured(self):
        response = self.client.post("/api/v1/billing/topup", {"amount": "20"}, format="json")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "PAYMENTS_NOT_CONFIGURED")

    def test_top_up_amount_bounds(self):
        response = self.client.post("/api/v1/billing/topup", {"amount": "2"}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_top_up_sync_returns_balance(self):
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_9", amount_dollars=Decimal("10.00"))
        session = paid_top_up_session("cs_9", self.user, amount_cents=1000)
        with mock.patch("stripe.checkout.Session.retrieve", return_value=session):
            response = self.client.post("/api/v1/billing/topup/sync", {"session_id": "cs_9"}, format="json")
        data = response.json()["data"]
        self.assertTrue(data["credited"])
        self.assertEqual(Decimal(str(data["top_up_balance"])), Decimal("13.00"))

    def test_top_up_sync_of_foreign_session(self):
        other = make_user("other@example.com")
        with mock.patch("stripe.checkout.Session.retrieve", return_value=paid_top_up_session("cs_x", other)):
            response = self.client.post("/api/v1/billing/topup/sync", {"session_id": "cs_x"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FORBIDDEN")

    def test_top_up_history_is_paginated(self):
        for i in range(12):
            TopUpRecord.objects.create(user=self.user, stripe_session_id=f"cs_{i}", amount_dollars=Decimal("5.00"))
        data = self.client.get("/api/v1/billing/topups").json()["data"]
        self.assertEqual(len(data["results"]), 10)
        self.assertEqual(data["pagination"]["count"], 12)
        self.assertEqual(data["pagination"]["next"], 2)


class ManagementCommandsTest(TestCase):

    def test_sync_stripe_products(self):
        created = iter([{"id": "prod_a"}, {"id": "prod_b"}, {"id": "prod_c"}])
        out = StringIO()
        with mock.patch("stripe.Product.create", side_effect=lambda **kwargs: next(created)):
            call_command("sync_stripe_products", stdout=out)
        self.assertEqual(AppConfig.get_value("stripe_product_id_business"), "prod_c")
        self.assertIn("3 tiers processed", out.getvalue())

    def test_existing_inactive_product_is_reactivated(self):
        AppConfig.set_value("stripe_product_id_starter", "prod_old")
        with mock.patch("stripe.Product.retrieve", return_value={"id": "prod_old", "active": False}), \
                mock.patch("stripe.Product.modify") as modify:
            from billing.payment_gateway.sync_stripe import ensure_product_for_tier
            self.assertEqual(ensure_product_for_tier("starter"), "prod_old")
        modify.assert_called_once_with("prod_old", active=True)

    def test_seed_accounts_from_yaml(self):
        content = (
            "- email: Seeded@Example.com\n"
            "  password: S3cure-pass-2024\n"
            "  tier: growth\n"
            "  balance: '12.50'\n"
            "  role: admin\n"
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "accounts.yaml"
            path.write_text(content, encoding="utf-8")
            call_command("seed_accounts", str(path), stdout=StringIO())

        user = User.objects.get(email="seeded@example.com")
        self.assertTrue(user.check_password("S3cure-pass-2024"))
        self.assertTrue(user.profile.is_admin)
        self.assertEqual(account_of(user).subscription_tier, "growth")
        self.assertEqual(account_of(user).top_up_balance, Decimal("12.50"))
