from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from companion.adapters.payments import (
    AbstractPaymentProvider,
    get_optional_payment_provider,
    get_payment_provider,
)
from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.billing import (
    CancelResponse,
    CheckoutConfirmRequest,
    CheckoutResponse,
    ExpireResponse,
    InvoiceOut,
    PaymentMethodOut,
    PortalResponse,
    ReactivateResponse,
    SetDefaultPaymentMethodRequest,
    SubscriptionInfo,
)
from companion.schemas.auth import MessageResponse
from companion.services.billing_service import BillingService

router = APIRouter(
    prefix="/billing",
    tags=["Billing"],
    dependencies=[Depends(rate_limit("api_general"))],
)


def get_billing_service(
    provider: AbstractPaymentProvider = Depends(get_payment_provider),
) -> BillingService:
    return BillingService(provider)


def get_billing_overview_service(
    provider: AbstractPaymentProvider | None = Depends(get_optional_payment_provider),
) -> BillingService:
    return BillingService(provider)


@router.get("/subscription", response_model=SubscriptionInfo)
def get_subscription(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_overview_service),
) -> SubscriptionInfo:
    """Current plan, period and renewal date of the caller's subscription."""
    return service.subscription_info(user)


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> CheckoutResponse:
    """Start a STANDARD subscription checkout; redirect the browser to ``url``."""
    return service.create_checkout(user)


@router.post("/checkout/confirm", response_model=SubscriptionInfo)
def confirm_checkout(
    payload: CheckoutConfirmRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BillingService = Depends(get_billing_service),
) -> SubscriptionInfo:
    """Activate the subscription of a paid checkout session.

    Raises:
        400 when the session is not paid, 403 when it belongs to someone else.
    """
    return service.confirm_checkout(db, user, payload.session_id)


@router.post("/cancel", response_model=CancelResponse)
def cancel_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BillingService = Depends(get_billing_service),
) -> CancelResponse:
    """Cancel at the end of the current period; access continues until then."""
    return service.cancel(db, user)


@router.post("/reactivate", response_model=ReactivateResponse)
def reactivate_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BillingService = Depends(get_billing_service),
) -> ReactivateResponse:
    """Undo a scheduled cancellation.

    When the paid period is over, or the provider already ended the
    subscription, a new checkout URL is returned instead.
    """
    return service.reactivate(db, user)


@router.post("/expire", response_model=ExpireResponse)
def expire_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: BillingService = Depends(get_billing_overview_service),
) -> ExpireResponse:
    """Apply the end-of-period downgrade now. Disabled in production."""
    return service.expire(db, user)


@router.get("/invoices", response_model=list[InvoiceOut])
def list_invoices(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> list[InvoiceOut]:
    return service.invoices(user)


@router.get("/payment-methods", response_model=list[PaymentMethodOut])
def list_payment_methods(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> list[PaymentMethodOut]:
    return service.payment_methods(user)


@router.post("/payment-methods/default", response_model=MessageResponse)
def set_default_payment_method(
    payload: SetDefaultPaymentMethodRequest,
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> MessageResponse:
    service.set_default_payment_method(user, payload.payment_method_id)
    return MessageResponse(message="Default payment method updated")


@router.delete("/payment-methods/{payment_method_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment_method(
    payment_method_id: str,
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> Response:
    """Detach a card. The default card cannot be removed."""
    service.delete_payment_method(user, payment_method_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/portal", response_model=PortalResponse)
def open_portal(
    user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
) -> PortalResponse:
    return PortalResponse(url=service.portal_url(user))
