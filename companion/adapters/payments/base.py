"""Payment provider interface.

Implementations return plain dicts so services never touch provider SDK
objects. Failures surface as ``PaymentProviderAppError``; an object the
provider no longer knows surfaces as ``PaymentResourceMissingError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AbstractPaymentProvider(ABC):
    """Subscription billing operations used by the billing service."""

    @abstractmethod
    def create_checkout_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        customer_id: str | None = None,
        customer_email: str | None = None,
        allow_promotion_codes: bool = False,
        require_billing_address: bool = False,
    ) -> dict[str, Any]:
        """Create a subscription checkout session.

        Returns:
            ``{"id": ..., "url": ...}``
        """
        raise NotImplementedError

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Return ``{id, status, payment_status, customer_id, subscription_id, metadata}``."""
        raise NotImplementedError

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Return ``{id, status, cancel_at_period_end, current_period_start,
        current_period_end, trial_end, customer_id, price_id}``; timestamps are
        UNIX seconds."""
        raise NotImplementedError

    @abstractmethod
    def update_subscription(
        self, subscription_id: str, *, cancel_at_period_end: bool
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def cancel_subscription(self, subscription_id: str) -> None:
        """Cancel immediately."""
        raise NotImplementedError

    @abstractmethod
    def list_invoices(self, customer_id: str, *, limit: int = 10) -> list[dict[str, Any]]:
        """Return invoices newest first with amounts in minor units."""
        raise NotImplementedError

    @abstractmethod
    def list_card_payment_methods(self, customer_id: str) -> list[dict[str, Any]]:
        """Return ``{id, brand, last4, exp_month, exp_year, created}`` per card."""
        raise NotImplementedError

    @abstractmethod
    def get_default_payment_method(self, customer_id: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def detach_payment_method(self, payment_method_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Return the customer portal URL."""
        raise NotImplementedError
