"""Stripe payment provider adapter."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import stripe

from companion.adapters.payments.base import AbstractPaymentProvider
from companion.core.errors import PaymentProviderAppError, PaymentResourceMissingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _call(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a Stripe SDK call and translate its errors into domain errors."""
    try:
        return func(*args, **kwargs)
    except stripe.error.InvalidRequestError as exc:
        if exc.code == "resource_missing":
            logger.info(
                "stripe.resource_missing",
                extra={"operation": operation, "param": exc.param},
            )
            raise PaymentResourceMissingError(
                code="payment_resource_missing",
                message="The requested billing object no longer exists",
                details={"provider_code": exc.code, "operation": operation},
            ) from exc
        logger.warning(
            "stripe.invalid_request",
            extra={"operation": operation, "provider_code": exc.code},
        )
        raise PaymentProviderAppError(
            code="payment_invalid_request",
            message=exc.user_message or "The billing request was rejected",
            details={"provider_code": exc.code, "operation": operation},
        ) from exc
    except stripe.error.StripeError as exc:
        logger.error(
            "stripe.error",
            extra={
                "operation": operation,
                "provider_code": exc.code,
                "error_type": type(exc).__name__,
            },
        )
        raise PaymentProviderAppError(
            code="payment_provider_error",
            message="The payment provider is unavailable. Please try again later.",
            details={"provider_code": exc.code, "operation": operation},
        ) from exc


def _period_bounds(sub: Any) -> tuple[int | None, int | None]:
    """Read the billing period from the subscription or, on newer API
    versions, from its first item."""
    start = sub.get("current_period_start")
    end = sub.get("current_period_end")
    if start is None or end is None:
        items = (sub.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    return start, end


def _price_id(sub: Any) -> str | None:
    items = (sub.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id")


def _id_of(value: Any) -> str | None:
    """Stripe fields may hold either an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


class StripePaymentProvider(AbstractPaymentProvider):
    """Payment provider backed by the official Stripe Python SDK."""

    def __init__(self, api_key: str) -> None:
        stripe.api_key = api_key

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
        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        # Stripe rejects customer and customer_email together
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email
        if allow_promotion_codes:
            params["allow_promotion_codes"] = True
        if require_billing_address:
            params["billing_address_collection"] = "required"

        session = _call("checkout.create", stripe.checkout.Session.create, **params)
        return {"id": session["id"], "url": session["url"]}

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        session = _call("checkout.retrieve", stripe.checkout.Session.retrieve, session_id)
        return {
            "id": session["id"],
            "status": session.get("status"),
            "payment_status": session.get("payment_status"),
            "customer_id": _id_of(session.get("customer")),
            "subscription_id": _id_of(session.get("subscription")),
            "metadata": dict(session.get("metadata") or {}),
        }

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        sub = _call("subscription.retrieve", stripe.Subscription.retrieve, subscription_id)
        return self._subscription_to_dict(sub)

    def update_subscription(
        self, subscription_id: str, *, cancel_at_period_end: bool
    ) -> dict[str, Any]:
        sub = _call(
            "subscription.modify",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel_at_period_end,
        )
        return self._subscription_to_dict(sub)

    def cancel_subscription(self, subscription_id: str) -> None:
        _call("subscription.cancel", stripe.Subscription.cancel, subscription_id)

    def list_invoices(self, customer_id: str, *, limit: int = 10) -> list[dict[str, Any]]:
        invoices = _call("invoice.list", stripe.Invoice.list, customer=customer_id, limit=limit)
        return [
            {
                "id": invoice["id"],
                "number": invoice.get("number"),
                "amount_paid": invoice.get("amount_paid") or 0,
                "currency": invoice.get("currency") or "",
                "status": invoice.get("status"),
                "created": invoice.get("created"),
                "invoice_pdf": invoice.get("invoice_pdf"),
                "hosted_invoice_url": invoice.get("hosted_invoice_url"),
            }
            for invoice in invoices.get("data", [])
        ]

    def list_card_payment_methods(self, customer_id: str) -> list[dict[str, Any]]:
        methods = _call(
            "payment_method.list",
            stripe.PaymentMethod.list,
            customer=customer_id,
            type="card",
        )
        result = []
        for method in methods.get("data", []):
            card = method.get("card") or {}
            result.append(
                {
                    "id": method["id"],
                    "brand": card.get("brand"),
                    "last4": card.get("last4"),
                    "exp_month": card.get("exp_month"),
                    "exp_year": card.get("exp_year"),
                    "created": method.get("created") or 0,
                }
            )
        return result

    def get_default_payment_method(self, customer_id: str) -> str | None:
        customer = _call("customer.retrieve", stripe.Customer.retrieve, customer_id)
        settings_ = customer.get("invoice_settings") or {}
        return _id_of(settings_.get("default_payment_method"))

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        _call(
            "customer.modify",
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    def detach_payment_method(self, payment_method_id: str) -> None:
        _call("payment_method.detach", stripe.PaymentMethod.detach, payment_method_id)

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = _call(
                "billing_portal.create",
                stripe.billing_portal.Session.create,
                customer=customer_id,
                return_url=return_url,
            )
        except PaymentProviderAppError as exc:
            if (exc.details or {}).get("provider_code") == "billing_portal_configuration_invalid":
                raise PaymentProviderAppError(
                    code="billing_portal_not_configured",
                    message=(
                        "The customer portal is not configured yet. "
                        "Please contact support to manage your subscription."
                    ),
                    details=exc.details,
                ) from exc
            raise
        return session["url"]

    @staticmethod
    def _subscription_to_dict(sub: Any) -> dict[str, Any]:
        start, end = _period_bounds(sub)
        return {
            "id": sub["id"],
            "status": sub.get("status"),
            "cancel_at_period_end": bool(sub.get("cancel_at_period_end")),
            "current_period_start": start,
            "current_period_end": end,
            "trial_end": sub.get("trial_end"),
            "customer_id": _id_of(sub.get("customer")),
            "price_id": _price_id(sub),
        }
