"""Invoice drafting, numbering and lifecycle."""

from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.models.invoices import invoice_lines, invoices
from app.models.organizations import organizations
from app.schemas.invoices import (
    InvoiceCreate,
    InvoiceLineCreate,
    InvoiceLineResponse,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatus,
    InvoiceType,
    InvoiceUpdate,
)
from app.services.catalog_service import CatalogService
from app.services.client_service import ClientService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

# Per-type counter column and number prefix suffix
NUMBERING = {
    InvoiceType.NORMAL: ("last_invoice_number", ""),
    InvoiceType.RECTIFICATIVA: ("last_rectificative_invoice_number", "R"),
    InvoiceType.SIMPLIFICADA: ("last_simplified_invoice_number", "S"),
}

MAX_NUMBER_ATTEMPTS = 50

# Manual transitions; draft -> issued goes through issue_invoice
STATUS_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.CANCELLED},
    InvoiceStatus.ISSUED: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: {InvoiceStatus.ISSUED},
    InvoiceStatus.CANCELLED: set(),
}


def money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_amount(line: InvoiceLineCreate) -> Decimal:
    """Quantity times unit price."""
    return money(line.quantity * line.unit_price)


def compute_totals(lines: list[InvoiceLineCreate]) -> dict[str, Decimal]:
    """
    Invoice amounts from its lines.

    Taxes are rounded per line and then summed, so the stored totals always
    satisfy ``total = base + vat - irpf``.
    """
    base = vat = irpf = Decimal("0.00")
    for line in lines:
        amount = line_amount(line)
        base += amount
        vat += money(amount * line.vat_rate / 100)
        irpf += money(amount * line.irpf_rate / 100)
    return {
        "base_amount": base,
        "vat_amount": vat,
        "irpf_amount": irpf,
        "total_amount": base + vat - irpf,
    }


def format_invoice_number(prefix: str, invoice_type: InvoiceType, number: int) -> str:
    """``F0001``, ``FR0001``, ``FS0001``."""
    return f"{prefix}{NUMBERING[invoice_type][1]}{number:04d}"


class InvoiceService:
    """Manage an organization's invoices."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def _validate_lines(self, lines: list[InvoiceLineCreate]) -> None:
        catalog = CatalogService(self.db, self.organization_id)
        users = UserService()
        for line in lines:
            if line.service_id:
                await catalog.get_service(line.service_id)
            if line.professional_id:
                await users.get_organization_member(
                    self.db, self.organization_id, line.professional_id
                )

    async def _insert_lines(self, invoice_id: int, lines: list[InvoiceLineCreate]) -> None:
        await self.db.execute(
            invoice_lines.insert(),
            [
                {
                    "invoice_id": invoice_id,
                    **line.model_dump(),
                    "line_amount": line_amount(line),
                }
                for line in lines
            ],
        )

    async def _lines_for(self, invoice_ids: list[int]) -> dict[int, list[InvoiceLineResponse]]:
        if not invoice_ids:
            return {}
        result = await self.db.execute(
            select(invoice_lines)
            .where(invoice_lines.c.invoice_id.in_(invoice_ids))
            .order_by(invoice_lines.c.id)
        )
        lines: dict[int, list[InvoiceLineResponse]] = {}
        for row in result.mappings().all():
            lines.setdefault(row["invoice_id"], []).append(
                InvoiceLineResponse.model_validate(dict(row))
            )
        return lines

    async def get_invoice_row(self, invoice_id: int, lock: bool = False) -> dict:
        """Invoice row of this organization, or 404."""
        query = select(invoices).where(
            invoices.c.id == invoice_id,
            invoices.c.organization_id == self.organization_id,
        )
        if lock:
            query = query.with_for_update()
        row = (await self.db.execute(query)).mappings().first()
        if not row:
            raise NotFoundException("Invoice not found")
        return dict(row)

    async def get_invoice(self, invoice_id: int) -> InvoiceResponse:
        """Invoice with its lines."""
        row = await self.get_invoice_row(invoice_id)
        lines = await self._lines_for([invoice_id])
        return InvoiceResponse(**row, lines=lines.get(invoice_id, []))

    async def create_invoice(
        self, created_by: UUID, data: InvoiceCreate, today: date
    ) -> InvoiceResponse:
        """Create a draft; amounts are computed here, never taken from the caller."""
        if data.client_id:
            await ClientService(self.db, self.organization_id).get_client_row(data.client_id)
        await self._validate_lines(data.lines)

        try:
            result = await self.db.execute(
                invoices.insert()
                .values(
                    organization_id=self.organization_id,
                    client_id=data.client_id,
                    invoice_type=data.invoice_type.value,
                    status=InvoiceStatus.DRAFT.value,
                    issue_date=data.issue_date or today,
                    notes=data.notes,
                    created_by=created_by,
                    **compute_totals(data.lines),
                )
                .returning(invoices.c.id)
            )
            invoice_id = result.scalar_one()
            await self._insert_lines(invoice_id, data.lines)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("invoice_drafted", organization_id=self.organization_id, invoice_id=invoice_id)
        return await self.get_invoice(invoice_id)

    async def update_invoice(self, invoice_id: int, data: InvoiceUpdate) -> InvoiceResponse:
        """Edit a draft; issued invoices are immutable."""
        values = data.model_dump(exclude_unset=True, exclude={"lines"})
        if values.get("client_id"):
            await ClientService(self.db, self.organization_id).get_client_row(values["client_id"])
        if data.lines is not None:
            await self._validate_lines(data.lines)

        try:
            current = await self.get_invoice_row(invoice_id, lock=True)
            if current["status"] != InvoiceStatus.DRAFT.value:
                raise ConflictException("Only draft invoices can be edited")

            if data.lines is not None:
                await self.db.execute(
                    delete(invoice_lines).where(invoice_lines.c.invoice_id == invoice_id)
                )
                await self._insert_lines(invoice_id, data.lines)
                values.update(compute_totals(data.lines))

            if values:
                await self.db.execute(
                    update(invoices).where(invoices.c.id == invoice_id).values(**values)
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("invoice_updated", invoice_id=invoice_id)
        return await self.get_invoice(invoice_id)

    async def _next_number(self, organization: dict, invoice_type: InvoiceType) -> tuple[str, int]:
        counter_column, _ = NUMBERING[invoice_type]
        number = (organization[counter_column] or 0) + 1

        for _ in range(MAX_NUMBER_ATTEMPTS):
            candidate = format_invoice_number(organization["invoice_prefix"], invoice_type, number)
            taken = await self.db.execute(
                select(invoices.c.id).where(
                    invoices.c.organization_id == self.organization_id,
                    invoices.c.invoice_number == candidate,
                )
            )
            if taken.first() is None:
                return candidate, number
            number += 1

        raise ConflictException("Could not assign a free invoice number")

    async def issue_invoice(self, invoice_id: int) -> InvoiceResponse:
        """
        Assign the next number of the invoice's series and mark it issued.

        The organization row is locked while the counter is read and bumped,
        so concurrent issues in the same organization are serialized.
        """
        try:
            organization = (
                await self.db.execute(
                    select(organizations)
                    .where(organizations.c.id == self.organization_id)
                    .with_for_update()
                )
            ).mappings().one()

            current = await self.get_invoice_row(invoice_id, lock=True)
            if current["status"] != InvoiceStatus.DRAFT.value:
                raise ConflictException("Only draft invoices can be issued")

            invoice_type = InvoiceType(current["invoice_type"])
            invoice_number, number = await self._next_number(dict(organization), invoice_type)

            await self.db.execute(
                update(invoices)
                .where(invoices.c.id == invoice_id)
                .values(
                    invoice_number=invoice_number,
                    status=InvoiceStatus.ISSUED.value,
                    validated_at=datetime.now(UTC),
                )
            )
            await self.db.execute(
                update(organizations)
                .where(organizations.c.id == self.organization_id)
                .values(**{NUMBERING[invoice_type][0]: number})
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "invoice_issued",
            organization_id=self.organization_id,
            invoice_id=invoice_id,
            invoice_number=invoice_number,
        )
        return await self.get_invoice(invoice_id)

    async def update_status(self, invoice_id: int, status: InvoiceStatus) -> InvoiceResponse:
        """Change status; issuing delegates to :meth:`issue_invoice`."""
        current = await self.get_invoice_row(invoice_id)
        current_status = InvoiceStatus(current["status"])
        if status == current_status:
            return await self.get_invoice(invoice_id)
        if current_status == InvoiceStatus.DRAFT and status == InvoiceStatus.ISSUED:
            return await self.issue_invoice(invoice_id)
        if status not in STATUS_TRANSITIONS[current_status]:
            raise ConflictException(
                f"Invoice cannot change from {current_status.value} to {status.value}"
            )

        await self.db.execute(
            update(invoices).where(invoices.c.id == invoice_id).values(status=status.value)
        )
        await self.db.commit()

        logger.info("invoice_status_changed", invoice_id=invoice_id, status=status.value)
        return await self.get_invoice(invoice_id)

    async def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        invoice_type: InvoiceType | None = None,
        client_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> InvoiceListResponse:
        """List invoices with filtering and pagination, newest first."""
        conditions = [invoices.c.organization_id == self.organization_id]
        if status:
            conditions.append(invoices.c.status == status.value)
        if invoice_type:
            conditions.append(invoices.c.invoice_type == invoice_type.value)
        if client_id:
            conditions.append(invoices.c.client_id == client_id)
        if date_from:
            conditions.append(invoices.c.issue_date >= date_from)
        if date_to:
            conditions.append(invoices.c.issue_date <= date_to)

        total = (
            await self.db.execute(
                select(func.count()).select_from(invoices).where(and_(*conditions))
            )
        ).scalar() or 0

        result = await self.db.execute(
            select(invoices)
            .where(and_(*conditions))
            .order_by(invoices.c.issue_date.desc(), invoices.c.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        rows = [dict(row) for row in result.mappings().all()]
        lines = await self._lines_for([row["id"] for row in rows])
        items = [InvoiceResponse(**row, lines=lines.get(row["id"], [])) for row in rows]

        return InvoiceListResponse(total=total, page=page, page_size=page_size, items=items)
