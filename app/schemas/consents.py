"""Consent form, token and signature schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DeliveryMethod(str, Enum):
    """How the signing link reaches the patient."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"
    QR = "qr"
    MANUAL = "manual"


class ConsentFormCreate(BaseModel):
    """Consent document template."""

    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    description: str | None = None
    category: str = Field("general", max_length=50)
    version: str = Field("1.0", max_length=20)


class ConsentFormUpdate(BaseModel):
    """Partial update of a consent form."""

    title: str | None = Field(None, min_length=1, max_length=300)
    content: str | None = Field(None, min_length=1)
    description: str | None = None
    category: str | None = Field(None, max_length=50)
    version: str | None = Field(None, max_length=20)
    is_active: bool | None = None


class ConsentFormResponse(BaseModel):
    """Consent form response."""

    id: UUID
    organization_id: int
    title: str
    content: str
    description: str | None = None
    category: str
    version: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConsentTokenCreate(BaseModel):
    """Generate a signing link."""

    consent_form_id: UUID
    client_id: int | None = None
    delivery_method: DeliveryMethod = DeliveryMethod.MANUAL
    expiration_days: int | None = Field(None, ge=1, le=90)


class ConsentTokenResponse(BaseModel):
    """Signing link handed out to the patient."""

    id: UUID
    token: str
    url: str
    expires_at: datetime
    sent_via: DeliveryMethod
    delivered: bool = False


class PublicConsentView(BaseModel):
    """What the patient sees before signing."""

    title: str
    content: str
    organization_name: str
    client_name: str | None = None
    category: str
    requires_medical_treatment: bool
    expires_at: datetime


class ConsentSignRequest(BaseModel):
    """Patient's signature and acceptances."""

    full_name: str = Field(..., min_length=1, max_length=200)
    tax_id: str = Field(..., min_length=1, max_length=20)
    signature: str = Field(..., min_length=1, description="Base64 image, optionally a data URL")
    terms_accepted: bool = False
    document_read_understood: bool = False
    marketing_notifications_accepted: bool = False
    medical_treatment_accepted: bool = False
    browser_info: dict | None = None

    @field_validator("full_name", "tax_id", "signature")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Required fields cannot be whitespace."""
        if not v.strip():
            raise ValueError("Field is required")
        return v.strip()


class PatientConsentResponse(BaseModel):
    """Signed consent record."""

    id: UUID
    client_id: int | None = None
    consent_form_id: UUID
    patient_name: str
    patient_tax_id: str
    signed_at: datetime
    ip_address: str | None = None
    is_valid: bool
    terms_accepted: bool
    document_read_understood: bool
    marketing_notifications_accepted: bool
    medical_treatment_accepted: bool
    acceptance_text_version: str

    model_config = {"from_attributes": True}
