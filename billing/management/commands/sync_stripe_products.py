from django.core.management.base import BaseCommand, CommandError
from billing.conf import get_setting
from billing.exceptions import BillingError
from billing.payment_gateway.sync_stripe import ensure_product_for_tier


class Command(BaseCommand):
    help = "Ensure every paid tier has a Stripe Product, storing the ids in AppConfig."

    def handle(self, *args, **options):
        synced = 0
        failed = 0

        for tier in get_setting("PRICED_TIERS"):
            self.stdout.write(f"→ Syncing tier: {tier}")
            try:
                product_id = ensure_product_for_tier(tier)
            except BillingError as e:
                failed += 1
                self.stderr.write(self.style.ERROR(f"Failed to sync tier '{tier}': {e}"))
                continue
            synced += 1
            self.stdout.write(f"  {tier} → {product_id}")

        if failed and not synced:
            raise CommandError("No tier could be synced with Stripe.")
        self.stdout.write(self.style.SUCCESS(f"Sync complete: {synced} tiers processed, {failed} failed."))

# run with this command
# python manage.py sync_stripe_products
