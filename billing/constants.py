from decimal import Decimal

BILLING = {
    # Monthly quota per tier; None means unlimited.
    "PLAN_LIMITS": {
        "free": {"interview": 0, "match": 0},
        "starter": {"interview": 15, "match": 30},
        "growth": {"interview": 120, "match": 240},
        "business": {"interview": 280, "match": 500},
        "custom": {"interview": None, "match": None},
    },
    # Charged against the top-up balance once the plan quota is spent.
    "PAY_PER_USE": {
        "interview": Decimal("2.00"),
        "match": Decimal("0.40"),
    },
    "ACTION_LABELS": {
        "interview": "interview",
        "match": "resume match",
    },
    "CHECKOUT_TIERS": ["starter", "growth", "business"],
    "CHECKOUT_INTERVALS": ["monthly", "annual"],
    "PRICED_TIERS": ["starter", "growth", "business"],
    "TOP_UP_MIN": Decimal("5.00"),
    "TOP_UP_MAX": Decimal("1000.00"),
    "CURRENCY": "usd",
    "PAYMENT_METHOD_TYPES": ["card"],
    # Pending top-up sessions younger than this are left to the webhook.
    "TOP_UP_RECONCILE_AFTER_MINUTES": 60,
    "MAX_ADJUSTMENT_HISTORY": 50,
}
