"""Client and tag schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.phone import is_valid_phone_number, normalize_phone_number


class ClientType(str, Enum):
    """Private patient or public/insurer-paid patient."""

    PRIVATE = "private"
    PUBLIC = "public"


class ClientBase(BaseModel):
    """Fields shared by create and update."""

    tax_id: str | None = Field(None, max_length=20)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    address: str | None = None
    postal_code: str | None = Field(None, max_length=10)
    city: str | None = None
    province: str | None = None
    country: str | None = None
    birth_date: date | None = None
    gender: str | None = Field(None, max_length=20)
    notes: str | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Store phones normalized; reject numbers with too few or many digits."""
        if v is None or not v.strip():
            return None
        if not is_valid_phone_number(v):
            raise ValueError("Phone number must have between 9 and 15 digits")
        return normalize_phone_number(v)


class ClientCreate(ClientBase):
    """Schema for creating a client."""

    name: str = Field(..., min_length=1, max_length=200)
    client_type: ClientType = ClientType.PRIVATE


class ClientUpdate(ClientBase):
    """Schema for updating a client."""

    name: str | None = Field(None, min_length=1, max_length=200)
    client_type: ClientType | None = None


class TagResponse(BaseModel):
    """Organization tag."""

    id: int
    name: str
    color: str

    model_config = {"from_attributes": True}


class ClientResponse(BaseModel):
    """Client response."""

    id: int
    organization_id: int
    name: str
    tax_id: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    client_type: ClientType
    notes: str | None = None
    created_at: datetime
    tags: list[TagResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ClientListResponse(BaseModel):
    """Paginated client list."""

    total: int
    page: int
    page_size: int
    items: list[ClientResponse]


class TagCreate(BaseModel):
    """New organization tag."""

    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field("#6366f1", max_length=20)


class ClientImportRowError(BaseModel):
    """A CSV row that could not be imported."""

    row: int
    error: str


class ClientImportResult(BaseModel):
    """Outcome of a CSV import."""

    imported: int
    skipped: int
    duplicates: int
    column_mapping: dict[str, str | None]
    errors: list[ClientImportRowError] = Field(default_factory=list)
