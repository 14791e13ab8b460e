"""Payment provider adapter layer."""

from companion.adapters.payments.base import AbstractPaymentProvider
from companion.adapters.payments.factory import (
    create_payment_provider,
    get_optional_payment_provider,
    get_payment_provider,
)
from companion.adapters.payments.stripe_client import StripePaymentProvider

__all__ = [
    "AbstractPaymentProvider",
    "StripePaymentProvider",
    "create_payment_provider",
    "get_optional_payment_provider",
    "get_payment_provider",
]
