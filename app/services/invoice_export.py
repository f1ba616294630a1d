"""Single invoice PDF download and bulk zip export."""

import asyncio
import io
import zipfile
from dataclasses import dataclass
from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import AppException
from app.schemas.invoices import InvoiceResponse
from app.services.client_service import ClientService
from app.services.invoice_pdf import InvoicePDFGenerator, invoice_filename
from app.services.invoice_service import InvoiceService
from app.services.organization_service import OrganizationService

logger = structlog.get_logger(__name__)

EXPORT_BATCH_SIZE = 5


@dataclass
class InvoiceDocument:
    """Everything needed to render one invoice."""

    invoice: InvoiceResponse
    organization: dict
    client: dict | None

    @property
    def filename(self) -> str:
        """Download name of the PDF."""
        return invoice_filename(self.invoice)

    def render(self) -> bytes:
        """PDF bytes (blocking)."""
        return InvoicePDFGenerator(self.invoice, self.organization, self.client).generate()


class InvoiceExporter:
    """Load invoice data from the database and render PDFs off the event loop."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize exporter with database session and tenant."""
        self.db = db
        self.organization_id = organization_id
        self.invoices = InvoiceService(db, organization_id)
        self.clients = ClientService(db, organization_id)

    async def load(self, invoice_id: int, organization: dict | None = None) -> InvoiceDocument:
        """Invoice with its issuer and client rows."""
        invoice = await self.invoices.get_invoice(invoice_id)
        if organization is None:
            organization = await OrganizationService().get_organization_fresh(
                self.db, self.organization_id
            )
        client = None
        if invoice.client_id:
            client = await self.clients.get_client_row(invoice.client_id)
        return InvoiceDocument(invoice=invoice, organization=organization, client=client)

    async def render_pdf(self, invoice_id: int) -> tuple[str, bytes]:
        """Filename and PDF bytes of one invoice."""
        document = await self.load(invoice_id)
        content = await run_in_threadpool(document.render)
        logger.info("invoice_pdf_rendered", invoice_id=invoice_id, size=len(content))
        return document.filename, content

    async def export_zip(self, invoice_ids: list[int], today: date) -> tuple[str, bytes]:
        """
        Zip with one PDF per invoice under ``facturas_<date>/`` and a summary.

        Rendering runs in batches of five. An invoice that cannot be loaded
        or rendered is listed in ``resumen.txt`` instead of failing the
        whole export.
        """
        folder = f"facturas_{today.isoformat()}"
        organization = await OrganizationService().get_organization_fresh(
            self.db, self.organization_id
        )

        # The session is not shared across tasks, so loading stays sequential
        documents: list[InvoiceDocument] = []
        failures: list[tuple[int, str]] = []
        for invoice_id in dict.fromkeys(invoice_ids):
            try:
                documents.append(await self.load(invoice_id, organization))
            except AppException as e:
                failures.append((invoice_id, e.message))

        buffer = io.BytesIO()
        exported: list[str] = []
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for start in range(0, len(documents), EXPORT_BATCH_SIZE):
                batch = documents[start : start + EXPORT_BATCH_SIZE]
                results = await asyncio.gather(
                    *(run_in_threadpool(document.render) for document in batch),
                    return_exceptions=True,
                )
                for document, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        logger.warning(
                            "invoice_export_render_failed",
                            invoice_id=document.invoice.id,
                            error=str(result),
                        )
                        message = result.message if isinstance(result, AppException) else str(result)
                        failures.append((document.invoice.id, message))
                        continue
                    archive.writestr(f"{folder}/{document.filename}", result)
                    exported.append(document.filename)

            archive.writestr(
                f"{folder}/resumen.txt",
                _summary(today, len(dict.fromkeys(invoice_ids)), exported, failures),
            )

        logger.info(
            "invoices_exported",
            organization_id=self.organization_id,
            exported=len(exported),
            failed=len(failures),
        )
        return f"{folder}.zip", buffer.getvalue()


def _summary(
    today: date, requested: int, exported: list[str], failures: list[tuple[int, str]]
) -> str:
    lines = [
        f"Exportación de facturas - {today.strftime('%d/%m/%Y')}",
        "",
        f"Solicitadas: {requested}",
        f"Exportadas: {len(exported)}",
        f"Con errores: {len(failures)}",
    ]
    if exported:
        lines += ["", "Archivos:"] + [f"  - {name}" for name in exported]
    if failures:
        lines += ["", "Errores:"] + [f"  - Factura {invoice_id}: {error}" for invoice_id, error in failures]
    return "\n".join(lines) + "\n"
