class BillingError(Exception):
    """Base class for billing failures surfaced to API callers."""

    status_code = 400
    code = "BILLING_ERROR"

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_payload(self) -> dict:
        payload = {"success": False, "error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class GatewayNotConfigured(BillingError):
    status_code = 503
    code = "PAYMENTS_NOT_CONFIGURED"


class SubscriptionInactive(BillingError):
    status_code = 402
    code = "SUBSCRIPTION_INACTIVE"


class UsageLimitExceeded(BillingError):
    status_code = 402
    code = "USAGE_LIMIT_EXCEEDED"


class TopUpError(BillingError):
    code = "TOP_UP_ERROR"


class GatewayError(BillingError):
    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"


class PriceNotConfigured(BillingError):
    code = "PRICE_NOT_CONFIGURED"


class SessionOwnershipError(TopUpError):
    status_code = 403
    code = "FORBIDDEN"
