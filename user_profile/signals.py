from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver
from .models import Profile


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    if created:
        Profile.objects.get_or_create(user=instance)


@receiver(post_save, sender=User)
def create_billing_account(sender, instance, created, **kwargs):
    # Every user starts on the free tier with an empty balance.
    if created:
        from billing.models import BillingAccount
        BillingAccount.objects.get_or_create(user=instance)
