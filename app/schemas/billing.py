"""Subscription, payment method and balance schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class PlanName(str, Enum):
    """Subscription plans."""

    INICIAL = "inicial"
    AVANZADO = "avanzado"
    PREMIUM = "premium"


class BillingPeriod(str, Enum):
    """Billing interval."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionCreate(BaseModel):
    """Start a subscription with a trial."""

    plan: PlanName
    period: BillingPeriod = BillingPeriod.MONTHLY


class SubscriptionCreated(BaseModel):
    """Data the web app needs to confirm the first payment."""

    subscription_id: str
    client_secret: str | None = None
    status: str
    trial_end: datetime | None = None


class PaymentMethodInfo(BaseModel):
    """Card on file."""

    id: str | None = None
    type: str | None = None
    brand: str | None = None
    last4: str | None = None
    exp_month: int | None = None
    exp_year: int | None = None


class SubscriptionDetails(BaseModel):
    """Subscription with human-readable dates (dd/mm/YYYY HH:MM)."""

    id: str
    status: str
    plan: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    interval: str | None = None
    cancel_at_period_end: bool = False
    trial_start: str | None = None
    trial_end: str | None = None
    current_period_start: str | None = None
    current_period_end: str | None = None
    canceled_at: str | None = None
    ended_at: str | None = None
    access_until: str | None = None
    payment_method: PaymentMethodInfo | None = None


class SubscriptionDetailsResponse(BaseModel):
    """Wrapper so an organization without subscription gets null."""

    subscription: SubscriptionDetails | None = None


class CancelSubscriptionResponse(BaseModel):
    """Cancellation scheduled at period end."""

    subscription_id: str
    cancel_at_period_end: bool
    access_until: datetime | None = None


class PaymentMethodUpdate(BaseModel):
    """Replace the default payment method."""

    payment_method_id: str = Field(..., min_length=3)


class BalanceMovementResponse(BaseModel):
    """Balance ledger entry."""

    id: int
    type: str
    concept: str
    amount: Decimal
    reference_id: str | None = None
    reference_data: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """Current balance and latest movements."""

    balance: Decimal
    movements: list[BalanceMovementResponse]
