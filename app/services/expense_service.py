"""Expense service for business logic."""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.expenses import expenses
from app.schemas.expenses import (
    ExpenseCreate,
    ExpenseFilters,
    ExpenseResponse,
    ExpenseStats,
    ExpenseStatus,
    ExpenseUpdate,
)
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


def included_vat(amount: Decimal, vat_rate: Decimal) -> Decimal:
    """VAT contained in a VAT-inclusive amount."""
    return (amount * vat_rate / (100 + vat_rate)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ExpenseService:
    """Record and summarize an organization's expenses."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def _get_row(self, expense_id: int) -> dict:
        result = await self.db.execute(
            select(expenses).where(
                expenses.c.id == expense_id,
                expenses.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Expense not found")
        return dict(row)

    async def create_expense(self, created_by: UUID, data: ExpenseCreate) -> ExpenseResponse:
        """Record an expense."""
        if data.user_id:
            await UserService().get_organization_member(self.db, self.organization_id, data.user_id)

        values = data.model_dump()
        values["status"] = data.status.value
        result = await self.db.execute(
            expenses.insert()
            .values(
                organization_id=self.organization_id,
                created_by=created_by,
                vat_amount=included_vat(data.amount, data.vat_rate),
                **values,
            )
            .returning(expenses)
        )
        await self.db.commit()
        row = result.mappings().one()

        logger.info("expense_created", organization_id=self.organization_id, expense_id=row["id"])
        return ExpenseResponse.model_validate(dict(row))

    def _conditions(self, filters: ExpenseFilters) -> list:
        conditions = [expenses.c.organization_id == self.organization_id]
        if filters.user_id:
            conditions.append(expenses.c.user_id == filters.user_id)
        if filters.status:
            conditions.append(expenses.c.status == filters.status.value)
        if filters.date_from:
            conditions.append(expenses.c.expense_date >= filters.date_from)
        if filters.date_to:
            conditions.append(expenses.c.expense_date <= filters.date_to)
        if filters.min_amount is not None:
            conditions.append(expenses.c.amount >= filters.min_amount)
        if filters.max_amount is not None:
            conditions.append(expenses.c.amount <= filters.max_amount)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    expenses.c.description.ilike(pattern),
                    expenses.c.supplier_name.ilike(pattern),
                    expenses.c.notes.ilike(pattern),
                )
            )
        return conditions

    async def list_expenses(self, filters: ExpenseFilters) -> list[ExpenseResponse]:
        """Expenses matching the filters, newest first."""
        result = await self.db.execute(
            select(expenses)
            .where(and_(*self._conditions(filters)))
            .order_by(expenses.c.expense_date.desc(), expenses.c.id.desc())
        )
        return [ExpenseResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def update_expense(self, expense_id: int, data: ExpenseUpdate) -> ExpenseResponse:
        """Partial update; VAT is recomputed when amount or rate change."""
        current = await self._get_row(expense_id)
        values = data.model_dump(exclude_unset=True)
        if not values:
            return ExpenseResponse.model_validate(current)

        if values.get("user_id"):
            await UserService().get_organization_member(
                self.db, self.organization_id, values["user_id"]
            )
        if "status" in values and values["status"] is not None:
            values["status"] = values["status"].value
        if "amount" in values or "vat_rate" in values:
            amount = values.get("amount") or current["amount"]
            rate = values.get("vat_rate")
            values["vat_amount"] = included_vat(
                Decimal(amount), Decimal(rate if rate is not None else current["vat_rate"])
            )

        result = await self.db.execute(
            update(expenses)
            .where(
                expenses.c.id == expense_id,
                expenses.c.organization_id == self.organization_id,
            )
            .values(**values)
            .returning(expenses)
        )
        await self.db.commit()
        row = result.mappings().one()

        logger.info("expense_updated", expense_id=expense_id)
        return ExpenseResponse.model_validate(dict(row))

    async def delete_expense(self, expense_id: int) -> None:
        """Delete an expense."""
        await self._get_row(expense_id)
        await self.db.execute(delete(expenses).where(expenses.c.id == expense_id))
        await self.db.commit()
        logger.info("expense_deleted", expense_id=expense_id)

    async def get_stats(self, filters: ExpenseFilters) -> ExpenseStats:
        """Totals by status, professional and ``YYYY-MM`` month."""
        result = await self.db.execute(
            select(
                expenses.c.amount,
                expenses.c.status,
                expenses.c.user_id,
                expenses.c.expense_date,
            ).where(and_(*self._conditions(filters)))
        )
        rows = result.all()

        by_status = {status.value: ZERO for status in ExpenseStatus}
        by_user: dict[str, Decimal] = {}
        by_month: dict[str, Decimal] = {}
        total = ZERO
        for amount, status, user_id, expense_date in rows:
            amount = Decimal(amount)
            total += amount
            by_status[status] = by_status.get(status, ZERO) + amount
            user_key = str(user_id) if user_id else "unassigned"
            by_user[user_key] = by_user.get(user_key, ZERO) + amount
            month = expense_date.strftime("%Y-%m")
            by_month[month] = by_month.get(month, ZERO) + amount

        return ExpenseStats(
            total_count=len(rows),
            total_amount=total,
            pending_amount=by_status[ExpenseStatus.PENDING.value],
            approved_amount=by_status[ExpenseStatus.APPROVED.value],
            paid_amount=by_status[ExpenseStatus.PAID.value],
            by_user=by_user,
            by_month=dict(sorted(by_month.items())),
        )
