"""Invoice endpoints."""

from datetime import date

from fastapi import APIRouter, Query, Response, status

from app.dependencies import CurrentOrganizationId, CurrentUser, DatabaseSession
from app.schemas.invoices import (
    InvoiceCreate,
    InvoiceExportRequest,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatus,
    InvoiceStatusUpdate,
    InvoiceType,
    InvoiceUpdate,
)
from app.services.invoice_export import InvoiceExporter
from app.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _attachment(content: bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create draft invoice",
)
async def create_invoice(
    data: InvoiceCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> InvoiceResponse:
    """
    Create a draft invoice.

    Line amounts, taxes and totals are computed by the server. The
    invoice gets its number when it is issued.

    Args:
        data: Client, type, date, notes and lines
        current_user: Authenticated staff member
        organization_id: Caller's organization
        db: Database session

    Returns:
        Draft invoice with computed totals
    """
    service = InvoiceService(db, organization_id)
    return await service.create_invoice(current_user["id"], data, date.today())


@router.get("", response_model=InvoiceListResponse, summary="List invoices")
async def list_invoices(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    status_filter: InvoiceStatus | None = Query(None, alias="status"),
    invoice_type: InvoiceType | None = Query(None),
    client_id: int | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
) -> InvoiceListResponse:
    """Invoices with filtering and pagination, newest first."""
    return await InvoiceService(db, organization_id).list_invoices(
        status=status_filter,
        invoice_type=invoice_type,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )


@router.post("/export", summary="Export invoices as zip")
async def export_invoices(
    data: InvoiceExportRequest,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> Response:
    """
    Zip with one PDF per invoice and a ``resumen.txt`` summary.

    Invoices that fail are listed in the summary instead of aborting the
    export.
    """
    filename, content = await InvoiceExporter(db, organization_id).export_zip(
        data.invoice_ids, date.today()
    )
    return _attachment(content, filename, "application/zip")


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get invoice")
async def get_invoice(
    invoice_id: int,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> InvoiceResponse:
    """Invoice with its lines."""
    return await InvoiceService(db, organization_id).get_invoice(invoice_id)


@router.put("/{invoice_id}", response_model=InvoiceResponse, summary="Update draft invoice")
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> InvoiceResponse:
    """Edit a draft; returns 409 once the invoice has been issued."""
    return await InvoiceService(db, organization_id).update_invoice(invoice_id, data)


@router.post("/{invoice_id}/issue", response_model=InvoiceResponse, summary="Issue invoice")
async def issue_invoice(
    invoice_id: int,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> InvoiceResponse:
    """Assign the next number of the invoice's series and mark it issued."""
    return await InvoiceService(db, organization_id).issue_invoice(invoice_id)


@router.patch(
    "/{invoice_id}/status", response_model=InvoiceResponse, summary="Change invoice status"
)
async def update_invoice_status(
    invoice_id: int,
    data: InvoiceStatusUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> InvoiceResponse:
    """Mark an invoice paid or cancelled; issued invoices never return to draft."""
    return await InvoiceService(db, organization_id).update_status(invoice_id, data.status)


@router.get("/{invoice_id}/pdf", summary="Download invoice PDF")
async def download_invoice_pdf(
    invoice_id: int,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> Response:
    """Rendered invoice as ``factura-<number>.pdf``."""
    filename, content = await InvoiceExporter(db, organization_id).render_pdf(invoice_id)
    return _attachment(content, filename, "application/pdf")
