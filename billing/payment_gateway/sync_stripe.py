import logging
import stripe
from billing.exceptions import GatewayError
from billing.models import AppConfig
from billing.payment_gateway.router import load_gateway

logger = logging.getLogger(__name__)


def product_config_key(tier: str) -> str:
    return f"stripe_product_id_{tier}"


def ensure_product_for_tier(tier: str, updated_by=None) -> str:
    """
    Ensure the given tier has a matching Stripe Product and return its id.
    The id is kept in AppConfig so prices for the tier share one product.
    """
    # Use the router so Stripe is configured from settings
    load_gateway("stripe")

    key = product_config_key(tier)
    product_id = AppConfig.get_value(key)

    if product_id:
        try:
            product = stripe.Product.retrieve(product_id)
            if not product["active"]:
                stripe.Product.modify(product_id, active=True)
                logger.info("Reactivated Stripe product %s (%s)", product_id, tier)
            return product_id
        except stripe.InvalidRequestError:
            logger.warning("Stripe product %s for %s is gone, creating a new one", product_id, tier)
        except stripe.StripeError as exc:
            raise GatewayError(f"Could not load the Stripe product for {tier}.") from exc

    try:
        product = stripe.Product.create(
            name=f"RoboHire {tier.capitalize()} Plan",
            active=True,
            metadata={"tier": tier},
        )
    except stripe.StripeError as exc:
        raise GatewayError(f"Could not create a Stripe product for {tier}.") from exc

    AppConfig.set_value(key, product["id"], updated_by=updated_by)
    logger.info("Created Stripe product %s for tier '%s'", product["id"], tier)
    return product["id"]
