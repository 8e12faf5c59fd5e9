from django.conf import settings
from .constants import BILLING


def get_setting(key: str, default=None):
    overrides = getattr(settings, "BILLING", None) or {}
    if key in overrides:
        return overrides[key]
    return BILLING.get(key, default)


def plan_limit(tier: str, action: str):
    limits = get_setting("PLAN_LIMITS")
    return (limits.get(tier) or limits["free"])[action]


def pay_per_use_price(action: str):
    return get_setting("PAY_PER_USE")[action]


def frontend_url(path: str = "") -> str:
    base = (getattr(settings, "FRONTEND_URL", "") or "").rstrip("/")
    return f"{base}{path}"
