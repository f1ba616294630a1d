"""Expense schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ExpenseStatus(str, Enum):
    """Expense approval lifecycle."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class ExpenseCreate(BaseModel):
    """Schema for recording an expense (amount includes VAT)."""

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    expense_date: date
    user_id: UUID | None = None
    status: ExpenseStatus = ExpenseStatus.PENDING
    payment_method: str | None = Field(None, max_length=30)
    supplier_name: str | None = None
    supplier_tax_id: str | None = Field(None, max_length=20)
    is_deductible: bool = True
    vat_rate: Decimal = Field(Decimal("21"), ge=0, le=100)
    notes: str | None = None


class ExpenseUpdate(BaseModel):
    """Partial expense update."""

    description: str | None = Field(None, min_length=1, max_length=500)
    amount: Decimal | None = Field(None, gt=0)
    expense_date: date | None = None
    user_id: UUID | None = None
    status: ExpenseStatus | None = None
    payment_method: str | None = Field(None, max_length=30)
    supplier_name: str | None = None
    supplier_tax_id: str | None = Field(None, max_length=20)
    is_deductible: bool | None = None
    vat_rate: Decimal | None = Field(None, ge=0, le=100)
    notes: str | None = None


class ExpenseResponse(BaseModel):
    """Expense response."""

    id: int
    organization_id: int
    user_id: UUID | None = None
    description: str
    amount: Decimal
    expense_date: date
    status: ExpenseStatus
    payment_method: str | None = None
    supplier_name: str | None = None
    supplier_tax_id: str | None = None
    is_deductible: bool
    vat_rate: Decimal
    vat_amount: Decimal
    notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExpenseFilters(BaseModel):
    """Expense list filters."""

    user_id: UUID | None = None
    status: ExpenseStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    search: str | None = None


class ExpenseStats(BaseModel):
    """Totals by status, professional and month."""

    total_count: int
    total_amount: Decimal
    pending_amount: Decimal
    approved_amount: Decimal
    paid_amount: Decimal
    by_user: dict[str, Decimal]
    by_month: dict[str, Decimal]
