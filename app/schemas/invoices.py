"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class InvoiceType(str, Enum):
    """Spanish invoice kinds."""

    NORMAL = "normal"
    RECTIFICATIVA = "rectificativa"
    SIMPLIFICADA = "simplificada"


INVOICE_TYPE_ALIASES = {
    "normal": InvoiceType.NORMAL,
    "rectificativa": InvoiceType.RECTIFICATIVA,
    "rectificative": InvoiceType.RECTIFICATIVA,
    "simplificada": InvoiceType.SIMPLIFICADA,
    "simplified": InvoiceType.SIMPLIFICADA,
    "simple": InvoiceType.SIMPLIFICADA,
}


def normalize_invoice_type(value: str | InvoiceType | None) -> InvoiceType:
    """Map spellings used by clients onto an invoice type, defaulting to normal."""
    if isinstance(value, InvoiceType):
        return value
    return INVOICE_TYPE_ALIASES.get((value or "").strip().lower(), InvoiceType.NORMAL)


class InvoiceStatus(str, Enum):
    """Invoice lifecycle."""

    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELLED = "cancelled"


class InvoiceLineCreate(BaseModel):
    """One billed concept."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_price: Decimal = Field(..., ge=0)
    vat_rate: Decimal = Field(Decimal("21"), ge=0, le=100)
    irpf_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    service_id: int | None = None
    professional_id: UUID | None = None


class InvoiceCreate(BaseModel):
    """Draft invoice."""

    client_id: int | None = None
    invoice_type: InvoiceType = InvoiceType.NORMAL
    issue_date: date | None = None
    notes: str | None = Field(None, max_length=2000)
    lines: list[InvoiceLineCreate] = Field(..., min_length=1)

    @field_validator("invoice_type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        """Accept the aliases the web app sends."""
        return normalize_invoice_type(v)


class InvoiceUpdate(BaseModel):
    """Edit a draft."""

    client_id: int | None = None
    issue_date: date | None = None
    notes: str | None = Field(None, max_length=2000)
    lines: list[InvoiceLineCreate] | None = Field(None, min_length=1)


class InvoiceStatusUpdate(BaseModel):
    """Move an invoice through its lifecycle."""

    status: InvoiceStatus


class InvoiceLineResponse(BaseModel):
    """Stored invoice line."""

    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    irpf_rate: Decimal
    line_amount: Decimal
    service_id: int | None = None
    professional_id: UUID | None = None

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    """Invoice with lines and totals."""

    id: int
    organization_id: int
    client_id: int | None = None
    invoice_number: str | None = None
    invoice_type: InvoiceType
    status: InvoiceStatus
    issue_date: date
    base_amount: Decimal
    vat_amount: Decimal
    irpf_amount: Decimal
    total_amount: Decimal
    notes: str | None = None
    validated_at: datetime | None = None
    created_at: datetime
    lines: list[InvoiceLineResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class InvoiceListResponse(BaseModel):
    """Paginated invoice list."""

    total: int
    page: int
    page_size: int
    items: list[InvoiceResponse]


class InvoiceExportRequest(BaseModel):
    """Invoices to bundle into a zip."""

    invoice_ids: list[int] = Field(..., min_length=1, max_length=500)
