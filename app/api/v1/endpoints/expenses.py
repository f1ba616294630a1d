"""Expense endpoints."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import CurrentOrganizationId, CurrentUser, DatabaseSession
from app.schemas.expenses import (
    ExpenseCreate,
    ExpenseFilters,
    ExpenseResponse,
    ExpenseStats,
    ExpenseStatus,
    ExpenseUpdate,
)
from app.services.expense_service import ExpenseService

router = APIRouter(prefix="/expenses", tags=["Expenses"])


def expense_filters(
    user_id: UUID | None = Query(None),
    status_filter: ExpenseStatus | None = Query(None, alias="status"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    min_amount: Decimal | None = Query(None, ge=0),
    max_amount: Decimal | None = Query(None, ge=0),
    search: str | None = Query(None, max_length=100),
) -> ExpenseFilters:
    """Query parameters shared by the list and stats routes."""
    return ExpenseFilters(
        user_id=user_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
    )


@router.post(
    "",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record expense",
)
async def create_expense(
    data: ExpenseCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ExpenseResponse:
    """Record an expense; the amount includes VAT."""
    return await ExpenseService(db, organization_id).create_expense(current_user["id"], data)


@router.get("", response_model=list[ExpenseResponse], summary="List expenses")
async def list_expenses(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    filters: ExpenseFilters = Depends(expense_filters),
) -> list[ExpenseResponse]:
    """Expenses matching the filters, newest first."""
    return await ExpenseService(db, organization_id).list_expenses(filters)


@router.get("/stats", response_model=ExpenseStats, summary="Expense statistics")
async def expense_stats(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    filters: ExpenseFilters = Depends(expense_filters),
) -> ExpenseStats:
    """Totals by status, professional and month."""
    return await ExpenseService(db, organization_id).get_stats(filters)


@router.patch("/{expense_id}", response_model=ExpenseResponse, summary="Update expense")
async def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ExpenseResponse:
    """Partial update."""
    return await ExpenseService(db, organization_id).update_expense(expense_id, data)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete expense")
async def delete_expense(
    expense_id: int,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> None:
    """Delete an expense."""
    await ExpenseService(db, organization_id).delete_expense(expense_id)
