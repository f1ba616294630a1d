"""Organization schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class OrganizationUpdate(BaseModel):
    """Fiscal and contact details an admin can edit."""

    name: str | None = Field(None, min_length=1, max_length=200)
    tax_id: str | None = Field(None, max_length=20)
    address: str | None = None
    postal_code: str | None = Field(None, max_length=10)
    city: str | None = None
    province: str | None = None
    country: str | None = None
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    website: str | None = None
    logo_url: str | None = None
    invoice_prefix: str | None = Field(None, min_length=1, max_length=10)


class OrganizationResponse(BaseModel):
    """Organization as seen by its members."""

    id: int
    name: str
    tax_id: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    logo_url: str | None = None
    invoice_prefix: str
    last_invoice_number: int
    subscription_status: str | None = None
    subscription_plan: str | None = None
    subscription_interval: str | None = None
    subscription_expires: datetime | None = None
    trial_ends_at: datetime | None = None
    cancel_at_period_end: bool = False
    card_brand: str | None = None
    card_last4: str | None = None
    active: bool

    model_config = {"from_attributes": True}
