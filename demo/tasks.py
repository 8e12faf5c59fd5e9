import logging
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from .models import DemoRequest

logger = logging.getLogger(__name__)


@shared_task(name="demo.notify_demo_request")
def notify_demo_request(demo_request_id):
    """Forward a new demo request to the sales inbox, once."""
    if not settings.CONTACT_EMAIL:
        logger.info("CONTACT_EMAIL is not set, demo request %s was only stored", demo_request_id)
        return False

    lead = DemoRequest.objects.filter(pk=demo_request_id, notified_at__isnull=True).first()
    if lead is None:
        return False

    details = "\n".join(
        f"{label}: {value}"
        for label, value in (
            ("Name", lead.name),
            ("Email", lead.email),
            ("Company", lead.company),
            ("Team size", lead.team_size),
            ("Source", lead.source),
            ("Message", lead.message),
        )
        if value
    )
    send_mail(
        f"New demo request from {lead.name}",
        details,
        settings.DEFAULT_FROM_EMAIL,
        [settings.CONTACT_EMAIL],
        fail_silently=False,
    )
    DemoRequest.objects.filter(pk=lead.pk).update(notified_at=timezone.now())
    logger.info("Demo request %s forwarded to %s", lead.pk, settings.CONTACT_EMAIL)
    return True
