import json
from decimal import Decimal
from unittest import mock
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient
from billing import services
from billing.models import AdminAdjustment, AppConfig, BillingAccount, TopUpRecord, TopUpStatus
from user_profile.constants import ROLE_ADMIN


def make_user(email, role=None, **account_fields):
    user = User.objects.create_user(username=email, email=email, password="S3cure-pass-2024")
    if role:
        user.profile.role = role
        user.profile.save()
    if account_fields:
        BillingAccount.objects.filter(user=user).update(**account_fields)
    return user


class AdminTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.admin = make_user("admin@example.com", role=ROLE_ADMIN)
        self.user = make_user(
            "member@example.com", subscription_tier="starter", top_up_balance=Decimal("10.00"),
            interviews_used=4, resume_matches_used=2,
        )
        self.client = APIClient()
        self.client.force_authenticate(self.admin)

    def post_action(self, action, data, user=None):
        user = user or self.user
        return self.client.post(f"/api/v1/admin/users/{user.pk}/{action}", data, format="json")

    def account(self, user=None):
        return BillingAccount.objects.get(user=user or self.user)


class AdminAccessTest(AdminTestCase):

    def test_requires_authentication(self):
        response = APIClient().get("/api/v1/admin/users")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "AUTH_REQUIRED")

    def test_requires_admin_role(self):
        client = APIClient()
        client.force_authenticate(self.user)
        response = client.post(f"/api/v1/admin/users/{self.user.pk}/adjust-balance",
                               {"amount": 100, "reason": "self service"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {
            "success": False, "error": "Admin access required", "code": "ADMIN_REQUIRED",
        })
        self.assertEqual(self.account().top_up_balance, Decimal("10.00"))

    def test_unknown_user(self):
        response = self.client.post("/api/v1/admin/users/999999/adjust-balance",
                                    {"amount": 5, "reason": "x"}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "NOT_FOUND")


class AdminUsersTest(AdminTestCase):

    def test_list_newest_first(self):
        data = self.client.get("/api/v1/admin/users").json()["data"]
        self.assertEqual(data["pagination"]["count"], 2)
        self.assertEqual(data["results"][0]["email"], "member@example.com")
        self.assertEqual(data["results"][0]["billing"]["subscription_tier"], "starter")
        self.assertEqual(data["results"][1]["role"], "admin")

    def test_search(self):
        self.user.profile.company = "Acme Robotics"
        self.user.profile.save()

        data = self.client.get("/api/v1/admin/users", {"search": "acme"}).json()["data"]
        self.assertEqual([row["email"] for row in data["results"]], ["member@example.com"])

        data = self.client.get("/api/v1/admin/users", {"search": "ADMIN@"}).json()["data"]
        self.assertEqual([row["email"] for row in data["results"]], ["admin@example.com"])

    def test_detail_includes_adjustments(self):
        services.adjust_balance(self.user, self.admin, Decimal("5"), "Goodwill")
        data = self.client.get(f"/api/v1/admin/users/{self.user.pk}").json()["data"]
        self.assertEqual(data["user"]["email"], "member@example.com")
        self.assertEqual(len(data["adjustments"]), 1)
        self.assertEqual(data["adjustments"][0]["admin_email"], "admin@example.com")
        self.assertEqual(data["adjustments"][0]["reason"], "Goodwill")


class AdminActionsTest(AdminTestCase):

    def test_adjust_balance(self):
        response = self.post_action("adjust-balance", {"amount": "15.50", "reason": "Conference credit"})
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual((data["old_balance"], data["new_balance"]), (10.0, 25.5))
        self.assertEqual(self.account().top_up_balance, Decimal("25.50"))
        self.assertEqual(AdminAdjustment.objects.get(user=self.user).type, "balance")

    def test_adjust_balance_validation(self):
        response = self.post_action("adjust-balance", {"amount": 0, "reason": "nothing"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "amount: amount must be a non-zero number")

        response = self.post_action("adjust-balance", {"amount": 5, "reason": "   "})
        self.assertEqual(response.json()["error"], "reason: reason is required")

        response = self.post_action("adjust-balance", {"amount": 5})
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertFalse(AdminAdjustment.objects.exists())

    def test_adjust_usage(self):
        response = self.post_action("adjust-usage", {"action": "interview", "amount": -10, "reason": "Outage"})
        self.assertEqual(response.json()["data"]["new_value"], 0)
        self.assertEqual(self.account().interviews_used, 0)

        response = self.post_action("adjust-usage", {"action": "resume", "amount": 1, "reason": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], 'action: action must be "interview" or "match"')

    def test_set_subscription(self):
        response = self.post_action("set-subscription", {"tier": "growth", "status": "trialing", "reason": "Pilot"})
        self.assertEqual(response.json()["data"]["new"], {"tier": "growth", "status": "trialing"})
        self.assertEqual(self.account().subscription_tier, "growth")

        audit = AdminAdjustment.objects.get(user=self.user)
        self.assertEqual(json.loads(audit.old_value), {"tier": "starter", "status": "active"})

        response = self.post_action("set-subscription", {"tier": "platinum", "reason": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()["error"].startswith("tier: tier must be one of:"))

    def test_reset_usage(self):
        response = self.post_action("reset-usage", {"reason": "New contract"})
        self.assertEqual(response.json()["data"]["old_interviews_used"], 4)
        account = self.account()
        self.assertEqual((account.interviews_used, account.resume_matches_used), (0, 0))
        self.assertEqual(AdminAdjustment.objects.filter(user=self.user).count(), 2)

    def test_cancel_subscription_at_period_end(self):
        BillingAccount.objects.filter(user=self.user).update(subscription_id="sub_member")
        with mock.patch("stripe.Subscription.modify") as modify:
            response = self.post_action("cancel-subscription", {"reason": "Requested by customer"})
        modify.assert_called_once_with("sub_member", cancel_at_period_end=True)
        data = response.json()["data"]
        self.assertEqual(data["cancel_mode"], "end_of_period")
        self.assertTrue(data["remote_canceled"])
        account = self.account()
        self.assertTrue(account.cancel_at_period_end)
        self.assertEqual(account.subscription_tier, "starter")

    def test_cancel_subscription_immediately(self):
        response = self.post_action("cancel-subscription", {"reason": "Chargeback", "immediate": True})
        self.assertEqual(response.json()["data"]["cancel_mode"], "immediate")
        account = self.account()
        self.assertEqual((account.subscription_tier, account.subscription_status), ("free", "canceled"))

    def test_disable_and_enable(self):
        self.post_action("disable", {"reason": "Abuse"})
        account = self.account()
        self.assertEqual((account.subscription_tier, account.subscription_status), ("free", "canceled"))

        self.post_action("enable", {"reason": "Appeal accepted"})
        self.assertEqual(self.account().subscription_status, "active")
        reasons = list(AdminAdjustment.objects.filter(user=self.user).values_list("reason", flat=True))
        self.assertEqual(sorted(reasons), ["[Disabled] Abuse", "[Enabled] Appeal accepted"])

    def test_set_role(self):
        response = self.post_action("set-role", {"role": "admin", "reason": "New teammate"})
        self.assertEqual(response.json()["data"], {"old_role": "user", "new_role": "admin"})
        self.user.profile.refresh_from_db()
        self.assertTrue(self.user.profile.is_admin)

        response = self.post_action("set-role", {"role": "owner", "reason": "x"})
        self.assertEqual(response.status_code, 400)


class AdminReportsTest(AdminTestCase):

    def test_adjustments_limit(self):
        for amount in (1, 2, 3):
            services.adjust_balance(self.user, self.admin, Decimal(amount), f"credit {amount}")

        data = self.client.get("/api/v1/admin/adjustments", {"limit": 2}).json()["data"]
        self.assertEqual(len(data["adjustments"]), 2)
        self.assertEqual(data["adjustments"][0]["user_email"], "member@example.com")

        data = self.client.get("/api/v1/admin/adjustments", {"limit": "lots"}).json()["data"]
        self.assertEqual(len(data["adjustments"]), 3)

    def test_stats(self):
        make_user("growth@example.com", subscription_tier="growth", subscription_status="past_due",
                  interviews_used=1)
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_1", amount_dollars=Decimal("20.00"),
                                   status=TopUpStatus.COMPLETED)
        TopUpRecord.objects.create(user=self.user, stripe_session_id="cs_2", amount_dollars=Decimal("50.00"))

        data = self.client.get("/api/v1/admin/stats").json()["data"]
        self.assertEqual(data["total_users"], 3)
        self.assertEqual(data["users_by_tier"], {"free": 1, "starter": 1, "growth": 1})
        self.assertEqual(data["active_subscriptions"], 1)
        self.assertEqual(data["new_users_this_month"], 3)
        self.assertEqual(data["total_revenue"], 20.0)
        self.assertEqual(data["total_interviews_used"], 5)
        self.assertEqual(data["total_matches_used"], 2)

    def test_usage_analytics(self):
        response = self.client.get("/api/v1/admin/usage/analytics", {"bucket": "month"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "bucket must be one of: hour, day, week")

        response = self.client.get("/api/v1/admin/usage/analytics", {"from": "soon"})
        self.assertEqual(response.json()["error"], "Invalid from/to date format")

        response = self.client.get("/api/v1/admin/usage/analytics", {"bucket": "hour"})
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["filters"]["bucket"], "hour")
        self.assertIn("resume_match", data["workflow"])

    def test_config(self):
        AppConfig.set_value("price_starter_monthly", "29.00", updated_by=self.admin)
        configs = self.client.get("/api/v1/admin/config").json()["data"]["configs"]
        self.assertEqual([(row["key"], row["value"]) for row in configs], [("price_starter_monthly", "29.00")])

    def test_pricing(self):
        gateway = mock.Mock()
        gateway.create_tier_price.return_value = "price_starter_new"
        with mock.patch("billing.services.load_gateway", return_value=gateway):
            response = self.client.post("/api/v1/admin/config/pricing", {"starter": "39", "growth": 0}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["updated"], {
            "starter": {"price": 39.0, "stripe_price_id": "price_starter_new"},
        })
        self.assertEqual(AppConfig.get_value("price_starter_monthly"), "39.00")
        self.assertEqual(AdminAdjustment.objects.get(type="pricing").reason, "Updated pricing: starter=$39.00")

    def test_pricing_requires_a_price(self):
        response = self.client.post("/api/v1/admin/config/pricing", {"starter": -5}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Provide at least one tier price to update")
