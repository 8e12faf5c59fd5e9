from decimal import Decimal
from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from django.test import TestCase
from billing.models import BillingAccount, SubscriptionTier
from .constants import ROLE_ADMIN, ROLE_USER
from .models import Profile


class UserSignalsTest(TestCase):

    def test_new_user_gets_profile_and_billing_account(self):
        user = User.objects.create_user(username="new@example.com", email="new@example.com")

        self.assertEqual(user.profile.role, ROLE_USER)
        self.assertEqual(user.profile.provider, "email")
        account = BillingAccount.objects.get(user=user)
        self.assertEqual(account.subscription_tier, SubscriptionTier.FREE)
        self.assertEqual(account.top_up_balance, Decimal("0"))

    def test_saving_again_does_not_duplicate(self):
        user = User.objects.create_user(username="again@example.com", email="again@example.com")
        user.first_name = "Again"
        user.save()

        self.assertEqual(Profile.objects.filter(user=user).count(), 1)
        self.assertEqual(BillingAccount.objects.filter(user=user).count(), 1)


class ProfileTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="grace", email="grace@example.com")

    def test_display_name(self):
        self.assertEqual(self.user.profile.display_name, "grace")

        self.user.first_name, self.user.last_name = "Grace", "Hopper"
        self.assertEqual(self.user.profile.display_name, "Grace Hopper")

        self.user.profile.name = "Admiral Hopper"
        self.assertEqual(self.user.profile.display_name, "Admiral Hopper")

    def test_is_admin(self):
        self.assertFalse(self.user.profile.is_admin)
        self.user.profile.role = ROLE_ADMIN
        self.assertTrue(self.user.profile.is_admin)


class EmailOrUsernameBackendTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            username="ada", email="Ada@Example.com", password="S3cure-pass-2024"
        )

    def test_login_with_username_or_email(self):
        self.assertEqual(authenticate(username="ada", password="S3cure-pass-2024"), self.user)
        self.assertEqual(authenticate(username="ada@example.com", password="S3cure-pass-2024"), self.user)

    def test_rejects_bad_password_and_unknown_user(self):
        self.assertIsNone(authenticate(username="ada", password="wrong"))
        self.assertIsNone(authenticate(username="nobody@example.com", password="S3cure-pass-2024"))

    def test_inactive_user_cannot_log_in(self):
        self.user.is_active = False
        self.user.save()
        self.assertIsNone(authenticate(username="ada", password="S3cure-pass-2024"))
