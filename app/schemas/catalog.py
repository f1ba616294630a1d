"""Service and consultation room schemas."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class ServiceCreate(BaseModel):
    """Bookable service offered by the organization."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    duration: int = Field(..., gt=0, le=600, description="Duration in minutes")
    price: Decimal = Field(Decimal("0"), ge=0)
    vat_rate: Decimal = Field(Decimal("21"), ge=0, le=100)
    irpf_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    color: str | None = Field(None, max_length=20)


class ServiceUpdate(BaseModel):
    """Partial service update."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    duration: int | None = Field(None, gt=0, le=600)
    price: Decimal | None = Field(None, ge=0)
    vat_rate: Decimal | None = Field(None, ge=0, le=100)
    irpf_rate: Decimal | None = Field(None, ge=0, le=100)
    color: str | None = Field(None, max_length=20)
    active: bool | None = None


class ServiceResponse(BaseModel):
    """Service response."""

    id: int
    organization_id: int
    name: str
    description: str | None = None
    duration: int
    price: Decimal
    vat_rate: Decimal
    irpf_rate: Decimal
    color: str | None = None
    active: bool

    model_config = {"from_attributes": True}


class ConsultationCreate(BaseModel):
    """Consultation room."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)


class ConsultationUpdate(BaseModel):
    """Partial consultation update."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    active: bool | None = None


class ConsultationResponse(BaseModel):
    """Consultation response."""

    id: UUID
    organization_id: int
    name: str
    description: str | None = None
    color: str | None = None
    active: bool

    model_config = {"from_attributes": True}
