import json
from decimal import Decimal
from pathlib import Path
import yaml
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from billing.models import BillingAccount, SubscriptionStatus, SubscriptionTier
from user_profile.constants import ROLE_USER
from user_profile.models import Profile


class Command(BaseCommand):
    help = "Seed demo users with a tier, status and balance from a JSON or YAML file"

    def add_arguments(self, parser):
        parser.add_argument("file_path", type=str, help="Path to JSON/YAML config")

    def handle(self, *args, **opts):
        p = Path(opts["file_path"])
        if not p.exists():
            raise CommandError(f"File not found: {p}")

        if p.suffix.lower() in [".yaml", ".yml"]:
            data = yaml.safe_load(p.read_text(encoding="utf-8"))
        else:
            data = json.loads(p.read_text(encoding="utf-8"))

        if not isinstance(data, list):
            raise CommandError("Expected a list of accounts.")

        User = get_user_model()
        created = 0
        with transaction.atomic():
            for cfg in data:
                email = cfg["email"].strip().lower()
                tier = cfg.get("tier", SubscriptionTier.FREE)
                status = cfg.get("status", SubscriptionStatus.ACTIVE)
                if tier not in SubscriptionTier.values:
                    raise CommandError(f"Invalid tier '{tier}' for {email}")
                if status not in SubscriptionStatus.values:
                    raise CommandError(f"Invalid status '{status}' for {email}")

                user, was_created = User.objects.get_or_create(
                    username=cfg.get("username", email),
                    defaults={"email": email},
                )
                if was_created:
                    created += 1
                if cfg.get("password"):
                    user.set_password(cfg["password"])
                    user.save(update_fields=["password"])

                Profile.objects.update_or_create(
                    user=user,
                    defaults={
                        "name": cfg.get("name", ""),
                        "company": cfg.get("company", ""),
                        "role": cfg.get("role", ROLE_USER),
                    },
                )
                BillingAccount.objects.update_or_create(
                    user=user,
                    defaults={
                        "subscription_tier": tier,
                        "subscription_status": status,
                        "top_up_balance": Decimal(str(cfg.get("balance", "0"))),
                        "interviews_used": cfg.get("interviews_used", 0),
                        "resume_matches_used": cfg.get("resume_matches_used", 0),
                    },
                )

        self.stdout.write(self.style.SUCCESS(f"Seeded {len(data)} accounts ({created} new users)."))


# Run the seeder:

# python manage.py seed_accounts config/seed/accounts.yaml
