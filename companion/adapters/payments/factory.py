"""Factory for the configured payment provider."""

from __future__ import annotations

from companion.adapters.payments.base import AbstractPaymentProvider
from companion.adapters.payments.stripe_client import StripePaymentProvider
from companion.core.config import settings
from companion.core.errors import ServiceUnavailableAppError

_provider: AbstractPaymentProvider | None = None
_provider_key: str | None = None


def create_payment_provider() -> AbstractPaymentProvider:
    """Instantiate the payment provider from settings.

    Raises:
        ServiceUnavailableAppError: If no Stripe secret key is configured.
    """
    if not settings.stripe.secret_key:
        raise ServiceUnavailableAppError(
            code="payments_not_configured",
            message="Billing is not configured on this server",
            details={"hint": "Set STRIPE_SECRET_KEY"},
        )
    return StripePaymentProvider(api_key=settings.stripe.secret_key)


def get_payment_provider() -> AbstractPaymentProvider:
    """FastAPI dependency returning a process-wide provider instance."""
    global _provider, _provider_key

    if _provider is None or _provider_key != settings.stripe.secret_key:
        _provider = create_payment_provider()
        _provider_key = settings.stripe.secret_key
    return _provider


def get_optional_payment_provider() -> AbstractPaymentProvider | None:
    """Like ``get_payment_provider`` but returns None when billing is off."""
    if not settings.stripe.secret_key:
        return None
    return get_payment_provider()
