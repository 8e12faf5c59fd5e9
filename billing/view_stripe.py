import json
import logging
import stripe
from django.http import HttpResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from billing.payment_gateway.router import get_config, load_gateway

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(View):
    """
    POST /api/v1/webhooks/stripe
    Verifies the Stripe signature and hands the event to the gateway.
    """
    provider = "stripe"

    def post(self, request, *args, **kwargs):
        keys = get_config(self.provider)
        if not keys.get("secret_key") or not keys.get("webhook_secret"):
            return HttpResponse("Stripe not configured", status=503)

        gateway = load_gateway(self.provider)
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE")

        try:
            stripe.Webhook.construct_event(payload, sig_header, keys["webhook_secret"])
        except ValueError:
            return HttpResponse("Invalid payload", status=400)
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook signature verification failed")
            return HttpResponse("Webhook signature verification failed", status=400)

        event = json.loads(payload)
        try:
            processed = gateway.handle_webhook(event)
        except Exception:
            # Stripe retries on a non-2xx answer
            logger.exception("Stripe webhook %s (%s) failed", event.get("id"), event.get("type"))
            return HttpResponse("Webhook handler error", status=500)

        return JsonResponse({"received": True, "duplicate": not processed})

    def get(self, request, *args, **kwargs):
        return HttpResponse("Stripe webhook endpoint.", status=200)
