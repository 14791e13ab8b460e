"""Subscription lifecycle and billing data.

``activate_subscription`` and ``expire_subscription`` are the two state
transitions of the STANDARD plan; everything else reads from or writes to the
payment provider through ``AbstractPaymentProvider``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from companion.adapters.payments.base import AbstractPaymentProvider
from companion.core.config import settings
from companion.core.errors import (
    NotFoundAppError,
    PaymentProviderAppError,
    PaymentResourceMissingError,
    PermissionAppError,
    ServiceUnavailableAppError,
    ValidationAppError,
)
from companion.db.models import NotificationType, Plan, Subscription, SubscriptionStatus, User
from companion.schemas.billing import (
    CancelResponse,
    CheckoutResponse,
    ExpireResponse,
    InvoiceOut,
    PaymentMethodOut,
    ReactivateResponse,
    SubscriptionInfo,
)
from companion.services.activity_service import notify, record_audit
from companion.services.plans import PLAN_FEATURES
from companion.utils.dates import as_utc, from_timestamp, utcnow

logger = logging.getLogger(__name__)

INVOICE_LIMIT = 10
_ENDED_REMOTE_STATUSES = {"canceled", "incomplete_expired"}


def _customer_id(user: User) -> str | None:
    if user.customer_id:
        return user.customer_id
    if user.subscription is not None:
        return user.subscription.stripe_customer_id
    return None


def activate_subscription(
    db: Session, user: User, remote: dict[str, Any], *, customer_id: str | None = None
) -> Subscription:
    """Move the user to STANDARD from a provider subscription.

    The local subscription row is created or refreshed from ``remote`` (as
    returned by ``AbstractPaymentProvider.retrieve_subscription``).
    """
    customer_id = customer_id or remote.get("customer_id")

    subscription = user.subscription
    if subscription is None:
        subscription = Subscription(user_id=user.id)
        db.add(subscription)
        user.subscription = subscription

    subscription.stripe_subscription_id = remote["id"]
    subscription.stripe_customer_id = customer_id
    subscription.stripe_price_id = remote.get("price_id") or settings.stripe.price_id_standard
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.plan = Plan.STANDARD
    subscription.current_period_start = from_timestamp(remote.get("current_period_start"))
    subscription.current_period_end = from_timestamp(remote.get("current_period_end"))
    subscription.cancel_at_period_end = bool(remote.get("cancel_at_period_end"))
    subscription.canceled_at = None

    user.plan = Plan.STANDARD
    user.customer_id = customer_id

    notify(
        db,
        user_id=user.id,
        type=NotificationType.PAYMENT_SUCCEEDED,
        title="Subscription activated",
        message="Your STANDARD subscription is now active",
        link="/settings/billing",
    )
    record_audit(
        db,
        action="SUBSCRIBE",
        entity_type="SUBSCRIPTION",
        entity_id=remote["id"],
        user_id=user.id,
        details={"plan": Plan.STANDARD.value},
    )
    db.commit()

    logger.info(
        "billing.subscription_activated",
        extra={"user_id": user.id, "subscription_id": remote["id"]},
    )
    return subscription


def expire_subscription(db: Session, user: User) -> dict[str, Any]:
    """Apply the end-of-period downgrade of a subscription scheduled to cancel.

    Returns:
        The applied changes as ``{field: {"from": ..., "to": ...}}``.

    Raises:
        NotFoundAppError: The user has no subscription.
        ValidationAppError: The subscription is not scheduled for cancellation.
    """
    subscription = user.subscription
    if subscription is None:
        raise NotFoundAppError(code="no_subscription", message="No subscription found")
    if not subscription.cancel_at_period_end:
        raise ValidationAppError(
            code="subscription_not_canceling",
            message="The subscription is not scheduled for cancellation",
        )

    changes = {
        "user_plan": {"from": user.plan.value, "to": Plan.FREEMIUM.value},
        "subscription_status": {
            "from": subscription.status.value,
            "to": SubscriptionStatus.CANCELED.value,
        },
        "cancel_at_period_end": {"from": True, "to": False},
    }

    user.plan = Plan.FREEMIUM
    subscription.status = SubscriptionStatus.CANCELED
    subscription.cancel_at_period_end = False

    notify(
        db,
        user_id=user.id,
        type=NotificationType.SUBSCRIPTION_CHANGED,
        title="Subscription ended",
        message="Your subscription ended; your account is back on the FREEMIUM plan",
        link="/pricing",
    )
    record_audit(
        db,
        action="EXPIRE",
        entity_type="SUBSCRIPTION",
        entity_id=subscription.stripe_subscription_id,
        user_id=user.id,
        details=changes,
    )
    db.commit()

    logger.info("billing.subscription_expired", extra={"user_id": user.id})
    return changes


class BillingService:
    """Billing operations for the current user.

    ``provider`` may be None when billing is not configured; only the
    subscription overview works in that case.
    """

    def __init__(self, provider: AbstractPaymentProvider | None) -> None:
        self._provider = provider

    @property
    def provider(self) -> AbstractPaymentProvider:
        if self._provider is None:
            raise ServiceUnavailableAppError(
                code="payments_not_configured",
                message="Billing is not configured on this server",
            )
        return self._provider

    def subscription_info(self, user: User) -> SubscriptionInfo:
        subscription = user.subscription
        if subscription is None:
            return SubscriptionInfo(
                has_subscription=False,
                plan=Plan.FREEMIUM,
                features=PLAN_FEATURES[Plan.FREEMIUM],
            )

        trial_end = None
        if self._provider is not None:
            try:
                remote = self._provider.retrieve_subscription(
                    subscription.stripe_subscription_id
                )
                trial_end = from_timestamp(remote.get("trial_end"))
            except PaymentProviderAppError as exc:
                logger.warning(
                    "billing.subscription_lookup_failed",
                    extra={"user_id": user.id, "error_code": exc.code},
                )

        period_end = as_utc(subscription.current_period_end)
        return SubscriptionInfo(
            has_subscription=True,
            plan=subscription.plan,
            status=subscription.status,
            current_period_start=as_utc(subscription.current_period_start),
            current_period_end=period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            next_billing_date=None if subscription.cancel_at_period_end else period_end,
            amount=settings.stripe.standard_amount,
            currency=settings.stripe.currency,
            features=PLAN_FEATURES[subscription.plan],
            trial_end=trial_end,
        )

    def create_checkout(self, user: User) -> CheckoutResponse:
        price_id = settings.stripe.price_id_standard
        if not price_id:
            raise ServiceUnavailableAppError(
                code="payments_not_configured",
                message="Billing is not configured on this server",
                details={"hint": "Set STRIPE_PRICE_ID_STANDARD"},
            )

        app_url = settings.app.app_url.rstrip("/")
        session = self.provider.create_checkout_session(
            price_id=price_id,
            success_url=f"{app_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{app_url}/pricing",
            metadata={"user_id": user.id},
            customer_email=user.email,
            allow_promotion_codes=True,
            require_billing_address=True,
        )
        logger.info(
            "billing.checkout_created",
            extra={"user_id": user.id, "session_id": session["id"]},
        )
        return CheckoutResponse(session_id=session["id"], url=session["url"])

    def confirm_checkout(self, db: Session, user: User, session_id: str) -> SubscriptionInfo:
        """Activate the subscription bought through a completed checkout session."""
        session = self.provider.retrieve_checkout_session(session_id)

        if (session.get("metadata") or {}).get("user_id") != user.id:
            raise PermissionAppError(
                code="checkout_session_mismatch",
                message="This checkout session belongs to another account",
            )
        if session.get("payment_status") != "paid" or not session.get("subscription_id"):
            raise ValidationAppError(
                code="checkout_not_paid",
                message="The checkout session is not paid yet",
            )

        remote = self.provider.retrieve_subscription(session["subscription_id"])
        activate_subscription(db, user, remote, customer_id=session.get("customer_id"))
        return self.subscription_info(user)

    def cancel(self, db: Session, user: User) -> CancelResponse:
        """Schedule cancellation at the end of the paid period."""
        subscription = user.subscription
        if subscription is None:
            raise ValidationAppError(code="no_subscription", message="No active subscription")
        if subscription.status == SubscriptionStatus.CANCELED:
            raise ValidationAppError(
                code="subscription_already_canceled",
                message="The subscription is already canceled",
            )

        try:
            self.provider.update_subscription(
                subscription.stripe_subscription_id, cancel_at_period_end=True
            )
        except PaymentResourceMissingError:
            logger.warning(
                "billing.cancel_remote_missing",
                extra={"user_id": user.id, "subscription_id": subscription.stripe_subscription_id},
            )

        subscription.status = SubscriptionStatus.ACTIVE
        subscription.canceled_at = utcnow()
        subscription.cancel_at_period_end = True

        notify(
            db,
            user_id=user.id,
            type=NotificationType.SUBSCRIPTION_CHANGED,
            title="Subscription canceled",
            message="Your subscription will end at the close of the current period",
            link="/settings/billing",
        )
        record_audit(
            db,
            action="CANCEL",
            entity_type="SUBSCRIPTION",
            entity_id=subscription.stripe_subscription_id,
            user_id=user.id,
        )
        db.commit()

        logger.info("billing.subscription_canceled", extra={"user_id": user.id})
        return CancelResponse(
            message="Subscription will be canceled at the end of the current period",
            current_period_end=as_utc(subscription.current_period_end),
        )

    def _restart_with_checkout(self, user: User, reason: str) -> ReactivateResponse:
        logger.info("billing.reactivate_needs_checkout", extra={"user_id": user.id, "reason": reason})
        checkout = self.create_checkout(user)
        return ReactivateResponse(
            reactivated=False,
            message="Your previous subscription ended; complete a new checkout to resubscribe",
            checkout_url=checkout.url,
        )

    def reactivate(self, db: Session, user: User) -> ReactivateResponse:
        """Undo a scheduled cancellation, or start a new checkout when too late."""
        subscription = user.subscription
        if subscription is None:
            raise ValidationAppError(code="no_subscription", message="No subscription found")
        if not subscription.cancel_at_period_end:
            raise ValidationAppError(
                code="subscription_already_active",
                message="The subscription is already active",
            )

        period_end = as_utc(subscription.current_period_end)
        if period_end is None or period_end <= utcnow():
            return self._restart_with_checkout(user, "period_elapsed")

        try:
            remote = self.provider.retrieve_subscription(subscription.stripe_subscription_id)
        except PaymentResourceMissingError:
            return self._restart_with_checkout(user, "remote_missing")

        if remote.get("status") in _ENDED_REMOTE_STATUSES:
            return self._restart_with_checkout(user, "remote_ended")

        if remote.get("cancel_at_period_end"):
            self.provider.update_subscription(
                subscription.stripe_subscription_id, cancel_at_period_end=False
            )

        user.plan = Plan.STANDARD
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.cancel_at_period_end = False
        subscription.canceled_at = None

        notify(
            db,
            user_id=user.id,
            type=NotificationType.SUBSCRIPTION_CHANGED,
            title="Subscription reactivated",
            message="Your STANDARD subscription will renew as usual",
            link="/settings/billing",
        )
        record_audit(
            db,
            action="REACTIVATE",
            entity_type="SUBSCRIPTION",
            entity_id=subscription.stripe_subscription_id,
            user_id=user.id,
        )
        db.commit()

        logger.info("billing.subscription_reactivated", extra={"user_id": user.id})
        return ReactivateResponse(reactivated=True, message="Subscription reactivated")

    def expire(self, db: Session, user: User) -> ExpireResponse:
        if settings.is_production:
            raise PermissionAppError(
                code="forbidden_in_production",
                message="Manual expiration is disabled in production",
            )
        changes = expire_subscription(db, user)
        return ExpireResponse(message="Subscription expired", changes=changes)

    def invoices(self, user: User) -> list[InvoiceOut]:
        customer_id = _customer_id(user)
        if not customer_id:
            return []

        return [
            InvoiceOut(
                id=invoice["id"],
                number=invoice.get("number") or f"INV-{invoice['id'][-8:]}",
                amount=f"{(invoice.get('amount_paid') or 0) / 100:.2f}",
                currency=(invoice.get("currency") or settings.stripe.currency).upper(),
                status=invoice.get("status"),
                date=from_timestamp(invoice.get("created")),
                pdf_url=invoice.get("invoice_pdf"),
                hosted_url=invoice.get("hosted_invoice_url"),
            )
            for invoice in self.provider.list_invoices(customer_id, limit=INVOICE_LIMIT)
        ]

    def _cards(self, customer_id: str) -> list[dict[str, Any]]:
        cards = self.provider.list_card_payment_methods(customer_id)
        return sorted(cards, key=lambda card: card.get("created") or 0, reverse=True)

    def payment_methods(self, user: User) -> list[PaymentMethodOut]:
        """Cards newest first; the newest becomes the default when none is set."""
        customer_id = _customer_id(user)
        if not customer_id:
            return []

        cards = self._cards(customer_id)
        default_id = self.provider.get_default_payment_method(customer_id)
        if default_id is None and cards:
            default_id = cards[0]["id"]
            self.provider.set_default_payment_method(customer_id, default_id)
            logger.info(
                "billing.default_payment_method_assigned",
                extra={"user_id": user.id, "payment_method_id": default_id},
            )

        return [
            PaymentMethodOut(
                id=card["id"],
                brand=card.get("brand"),
                last4=card.get("last4"),
                exp_month=card.get("exp_month"),
                exp_year=card.get("exp_year"),
                is_default=card["id"] == default_id,
            )
            for card in cards
        ]

    def _owned_card(self, user: User, payment_method_id: str) -> str:
        customer_id = _customer_id(user)
        if not customer_id:
            raise NotFoundAppError(code="no_customer", message="No billing account found")
        if payment_method_id not in {card["id"] for card in self._cards(customer_id)}:
            raise NotFoundAppError(
                code="payment_method_not_found", message="Payment method not found"
            )
        return customer_id

    def set_default_payment_method(self, user: User, payment_method_id: str) -> None:
        customer_id = self._owned_card(user, payment_method_id)
        self.provider.set_default_payment_method(customer_id, payment_method_id)

    def delete_payment_method(self, user: User, payment_method_id: str) -> None:
        customer_id = self._owned_card(user, payment_method_id)
        if self.provider.get_default_payment_method(customer_id) == payment_method_id:
            raise ValidationAppError(
                code="default_payment_method",
                message="The default payment method cannot be deleted",
            )
        self.provider.detach_payment_method(payment_method_id)

    def portal_url(self, user: User) -> str:
        customer_id = _customer_id(user)
        if not customer_id:
            raise NotFoundAppError(code="no_customer", message="No billing account found")
        return_url = f"{settings.app.app_url.rstrip('/')}/settings/billing"
        return self.provider.create_portal_session(customer_id, return_url)
