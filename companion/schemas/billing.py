"""Schemas for subscription lifecycle and billing data."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from companion.db.models import Plan, SubscriptionStatus


class SubscriptionInfo(BaseModel):
    has_subscription: bool
    plan: Plan
    status: SubscriptionStatus | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    next_billing_date: datetime | None = Field(
        default=None,
        description="End of the current period, unless cancellation is scheduled.",
    )
    amount: int | None = None
    currency: str | None = None
    features: list[str] = Field(default_factory=list)
    trial_end: datetime | None = None


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class CheckoutConfirmRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class CancelResponse(BaseModel):
    message: str
    current_period_end: datetime | None = None


class ReactivateResponse(BaseModel):
    reactivated: bool
    message: str
    checkout_url: str | None = None


class ExpireResponse(BaseModel):
    message: str
    changes: dict[str, Any]


class InvoiceOut(BaseModel):
    id: str
    number: str
    amount: str = Field(..., description="Amount paid in major units, two decimals.")
    currency: str
    status: str | None = None
    date: datetime | None = None
    pdf_url: str | None = None
    hosted_url: str | None = None


class PaymentMethodOut(BaseModel):
    id: str
    brand: str | None = None
    last4: str | None = None
    exp_month: int | None = None
    exp_year: int | None = None
    is_default: bool


class SetDefaultPaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class PortalResponse(BaseModel):
    url: str
