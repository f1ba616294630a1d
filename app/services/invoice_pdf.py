"""
Invoice PDF rendering.

Builds an A4 document with reportlab platypus: issuer and client blocks,
the lines table, tax totals and notes.
"""

import io
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.exceptions import AppException
from app.schemas.invoices import InvoiceResponse, InvoiceType

TITLES = {
    InvoiceType.NORMAL: "FACTURA",
    InvoiceType.RECTIFICATIVA: "FACTURA RECTIFICATIVA",
    InvoiceType.SIMPLIFICADA: "FACTURA SIMPLIFICADA",
}


class InvoiceDataException(AppException):
    """The organization lacks data required on a legal invoice."""

    def __init__(self, message: str):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


def format_amount(value: Decimal) -> str:
    """Spanish money format: 1.234,56 €."""
    text = f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{text} €"


def format_rate(value: Decimal) -> str:
    """21.00 -> 21 %, 7.50 -> 7,5 %."""
    return f"{value.normalize():f}".replace(".", ",") + " %"


def invoice_filename(invoice: InvoiceResponse) -> str:
    """``factura-F0001.pdf``; drafts use their id."""
    if invoice.invoice_number:
        return f"factura-{invoice.invoice_number}.pdf"
    return f"factura-borrador-{invoice.id}.pdf"


def _party_lines(party: dict, fields: tuple[str, ...]) -> list[str]:
    lines = []
    for field in fields:
        value = party.get(field)
        if value:
            lines.append(escape(str(value)))
    return lines


class InvoicePDFGenerator:
    """Render one invoice to PDF bytes."""

    def __init__(self, invoice: InvoiceResponse, organization: dict, client: dict | None = None):
        """Initialize generator with the invoice and its parties."""
        if not organization.get("name") or not organization.get("tax_id"):
            raise InvoiceDataException(
                "The organization name and tax id are required to issue invoices"
            )
        self.invoice = invoice
        self.organization = organization
        self.client = client or {}

        self.brand_color = colors.HexColor("#0f766e")
        self.dark_gray = colors.HexColor("#1e293b")
        self.light_gray = colors.HexColor("#f1f5f9")

    def _styles(self) -> dict[str, ParagraphStyle]:
        styles = getSampleStyleSheet()
        return {
            "title": ParagraphStyle(
                "InvoiceTitle",
                parent=styles["Heading1"],
                fontSize=20,
                textColor=self.brand_color,
                spaceAfter=6,
            ),
            "heading": ParagraphStyle(
                "InvoiceHeading",
                parent=styles["Heading3"],
                textColor=self.dark_gray,
                spaceAfter=4,
            ),
            "body": ParagraphStyle(
                "InvoiceBody",
                parent=styles["Normal"],
                fontSize=9,
                leading=12,
                textColor=self.dark_gray,
            ),
        }

    def _parties_table(self, styles: dict[str, ParagraphStyle]) -> Table:
        issuer = _party_lines(
            self.organization,
            ("name", "tax_id", "address", "postal_code", "city", "province", "email", "phone"),
        )
        recipient = _party_lines(
            self.client,
            ("name", "tax_id", "address", "postal_code", "city", "province", "email", "phone"),
        ) or ["Cliente no especificado"]

        issuer[0] = f"<b>{issuer[0]}</b>"
        recipient[0] = f"<b>{recipient[0]}</b>"
        table = Table(
            [
                [Paragraph("Emisor", styles["heading"]), Paragraph("Cliente", styles["heading"])],
                [
                    Paragraph("<br/>".join(issuer), styles["body"]),
                    Paragraph("<br/>".join(recipient), styles["body"]),
                ],
            ],
            colWidths=[85 * mm, 85 * mm],
        )
        table.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        return table

    def _lines_table(self, styles: dict[str, ParagraphStyle]) -> Table:
        data = [["Concepto", "Cant.", "Precio", "IVA", "IRPF", "Importe"]]
        for line in self.invoice.lines:
            data.append(
                [
                    Paragraph(escape(line.description), styles["body"]),
                    f"{line.quantity.normalize():f}",
                    format_amount(line.unit_price),
                    format_rate(line.vat_rate),
                    format_rate(line.irpf_rate),
                    format_amount(line.line_amount),
                ]
            )

        table = Table(
            data,
            colWidths=[70 * mm, 15 * mm, 25 * mm, 17 * mm, 17 * mm, 26 * mm],
            repeatRows=1,
        )
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), self.brand_color),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 9),
                    ("FONT", (1, 1), (-1, -1), "Helvetica", 9),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, self.light_gray]),
                    ("LINEBELOW", (0, -1), (-1, -1), 0.5, self.dark_gray),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
                ]
            )
        )
        return table

    def _totals_table(self) -> Table:
        rows = [
            ["Base imponible", format_amount(self.invoice.base_amount)],
            ["IVA", format_amount(self.invoice.vat_amount)],
        ]
        if self.invoice.irpf_amount:
            rows.append(["Retención IRPF", f"-{format_amount(self.invoice.irpf_amount)}"])
        rows.append(["TOTAL", format_amount(self.invoice.total_amount)])

        table = Table(rows, colWidths=[40 * mm, 30 * mm], hAlign="RIGHT")
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, -2), "Helvetica", 9),
                    ("FONT", (0, -1), (-1, -1), "Helvetica-Bold", 11),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("LINEABOVE", (0, -1), (-1, -1), 1, self.brand_color),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                ]
            )
        )
        return table

    def generate(self) -> bytes:
        """Render and return the PDF bytes."""
        buffer = io.BytesIO()
        number = self.invoice.invoice_number or "BORRADOR"
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            topMargin=18 * mm,
            bottomMargin=18 * mm,
            title=f"Factura {number}",
            author=self.organization["name"],
        )
        styles = self._styles()

        story = [
            Paragraph(TITLES[self.invoice.invoice_type], styles["title"]),
            Paragraph(
                f"Número: <b>{escape(number)}</b> &nbsp;&nbsp; "
                f"Fecha: <b>{self.invoice.issue_date.strftime('%d/%m/%Y')}</b>",
                styles["body"],
            ),
            Spacer(1, 8 * mm),
            self._parties_table(styles),
            Spacer(1, 8 * mm),
            self._lines_table(styles),
            Spacer(1, 6 * mm),
            self._totals_table(),
        ]

        if self.invoice.notes:
            story.append(Spacer(1, 8 * mm))
            story.append(Paragraph("Observaciones", styles["heading"]))
            story.append(
                Paragraph(escape(self.invoice.notes).replace("\n", "<br/>"), styles["body"])
            )

        doc.build(story)
        return buffer.getvalue()
