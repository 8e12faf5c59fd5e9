from importlib import import_module
from django.conf import settings
from billing.exceptions import GatewayNotConfigured


GATEWAY_MAP = {
    "stripe": "billing.payment_gateway.stripe",
}


def get_gateway(provider_name: str):
    """Dynamically import and return the payment gateway module."""
    provider_name = (provider_name or "").lower().strip()
    if provider_name not in GATEWAY_MAP:
        raise ValueError(f"Unsupported payment provider: {provider_name}")
    return import_module(GATEWAY_MAP[provider_name])


def get_config(provider_name: str) -> dict:
    """
    Return combined configuration for the selected provider:
    secret keys, webhook secret and the front-end redirect base.
    """
    provider_name = (provider_name or "").lower()

    if provider_name == "stripe":
        keys = {
            "secret_key": getattr(settings, "STRIPE_SECRET_KEY", "") or "",
            "webhook_secret": getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "",
        }
    else:
        keys = {}

    return {
        "provider": provider_name,
        "frontend_url": (getattr(settings, "FRONTEND_URL", "") or "").rstrip("/"),
        **keys,
    }


def load_gateway(provider_name: str = "stripe", required: bool = True):
    """
    Return the configured gateway module, or None when the provider has no
    secret key and ``required`` is False.
    """
    config = get_config(provider_name)
    if not config.get("secret_key"):
        if required:
            raise GatewayNotConfigured("Payment processing is not configured. Please contact support.")
        return None

    gateway = get_gateway(provider_name)
    if hasattr(gateway, "configure"):
        gateway.configure(config)
    return gateway
