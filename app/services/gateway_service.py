"""Payment gateway selection.

Builds the configured gateway adapter. No business logic here - only
gateway coordination.
"""

from functools import lru_cache

from app.config import settings
from app.gateways.base import GatewayType, PaymentGateway
from app.gateways.manual import ManualGateway
from app.gateways.stripe_gateway import StripeGateway

# Gateways that move real money
LIVE_GATEWAYS = frozenset({GatewayType.STRIPE})


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_production_for_real_gateway(gateway_type: GatewayType) -> None:
    """Block real gateway operations in non-production environments.

    Raises:
        RuntimeError: If a live gateway is configured outside production
    """
    if gateway_type not in LIVE_GATEWAYS or _is_production():
        return
    if settings.allow_live_gateway_outside_production:
        return
    raise RuntimeError(
        f"Cannot execute real {gateway_type.value} gateway operations "
        f"in {settings.environment} environment. Set ENVIRONMENT=production, "
        f"ALLOW_LIVE_GATEWAY_OUTSIDE_PRODUCTION=true or PAYMENT_GATEWAY=manual."
    )


def build_gateway(gateway_type: str | GatewayType) -> PaymentGateway:
    """Instantiate the adapter for ``gateway_type``."""
    gateway_type = GatewayType(gateway_type)
    _assert_production_for_real_gateway(gateway_type)

    if gateway_type == GatewayType.STRIPE:
        return StripeGateway()
    return ManualGateway()


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway."""
    return build_gateway(settings.payment_gateway)
