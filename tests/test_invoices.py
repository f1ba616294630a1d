"""Tests for invoices, numbering and PDF export."""

import io
import zipfile
from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.schemas.invoices import InvoiceLineCreate, InvoiceType, normalize_invoice_type
from app.services.invoice_pdf import format_amount
from app.services.invoice_service import compute_totals, format_invoice_number


def test_totals_with_vat():
    totals = compute_totals([InvoiceLineCreate(description="Sesión", unit_price=Decimal("100"))])

    assert totals["base_amount"] == Decimal("100.00")
    assert totals["vat_amount"] == Decimal("21.00")
    assert totals["irpf_amount"] == Decimal("0.00")
    assert totals["total_amount"] == Decimal("121.00")


def test_totals_round_per_line_half_up():
    lines = [
        InvoiceLineCreate(description="Bono", quantity=Decimal("3"), unit_price=Decimal("10.05")),
        InvoiceLineCreate(
            description="Informe",
            unit_price=Decimal("50"),
            vat_rate=Decimal("0"),
            irpf_rate=Decimal("15"),
        ),
    ]
    totals = compute_totals(lines)

    # 30.15 * 21% = 6.3315 -> 6.33; 50 * 15% = 7.50
    assert totals["base_amount"] == Decimal("80.15")
    assert totals["vat_amount"] == Decimal("6.33")
    assert totals["irpf_amount"] == Decimal("7.50")
    assert totals["total_amount"] == Decimal("78.98")


def test_invoice_number_format():
    assert format_invoice_number("F", InvoiceType.NORMAL, 1) == "F0001"
    assert format_invoice_number("F", InvoiceType.RECTIFICATIVA, 12) == "FR0012"
    assert format_invoice_number("FC", InvoiceType.SIMPLIFICADA, 12345) == "FCS12345"


def test_invoice_type_aliases():
    assert normalize_invoice_type("simplified") == InvoiceType.SIMPLIFICADA
    assert normalize_invoice_type("Rectificative") == InvoiceType.RECTIFICATIVA
    assert normalize_invoice_type(None) == InvoiceType.NORMAL
    assert normalize_invoice_type("unknown") == InvoiceType.NORMAL


def test_spanish_amount_format():
    assert format_amount(Decimal("1234.5")) == "1.234,50 €"


async def _create_draft(client: AsyncClient, headers: dict, patient: dict, **extra) -> dict:
    response = await client.post(
        "/api/v1/invoices",
        json={
            "client_id": patient["id"],
            "lines": [{"description": "Sesión de fisioterapia", "unit_price": "100"}],
            **extra,
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_draft_computes_totals(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    invoice = await _create_draft(client, auth_headers, patient)

    assert invoice["status"] == "draft"
    assert invoice["invoice_number"] is None
    assert Decimal(invoice["vat_amount"]) == Decimal("21.00")
    assert Decimal(invoice["total_amount"]) == Decimal("121.00")
    assert len(invoice["lines"]) == 1
    assert Decimal(invoice["lines"][0]["line_amount"]) == Decimal("100.00")


@pytest.mark.asyncio
async def test_issue_numbers_each_series_separately(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    first = await _create_draft(client, auth_headers, patient)
    second = await _create_draft(client, auth_headers, patient)
    simplified = await _create_draft(client, auth_headers, patient, invoice_type="simplified")

    numbers = []
    for invoice in (first, second, simplified):
        response = await client.post(
            f"/api/v1/invoices/{invoice['id']}/issue", headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "issued"
        assert response.json()["validated_at"] is not None
        numbers.append(response.json()["invoice_number"])

    assert numbers == ["FC0001", "FC0002", "FCS0001"]


@pytest.mark.asyncio
async def test_issued_invoice_is_immutable(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    invoice = await _create_draft(client, auth_headers, patient)
    await client.post(f"/api/v1/invoices/{invoice['id']}/issue", headers=auth_headers)

    edit = await client.put(
        f"/api/v1/invoices/{invoice['id']}",
        json={"notes": "Cambio"},
        headers=auth_headers,
    )
    reissue = await client.post(f"/api/v1/invoices/{invoice['id']}/issue", headers=auth_headers)
    back_to_draft = await client.patch(
        f"/api/v1/invoices/{invoice['id']}/status",
        json={"status": "draft"},
        headers=auth_headers,
    )

    assert edit.status_code == 409
    assert reissue.status_code == 409
    assert back_to_draft.status_code == 409


@pytest.mark.asyncio
async def test_status_lifecycle(client: AsyncClient, auth_headers: dict, patient: dict) -> None:
    invoice = await _create_draft(client, auth_headers, patient)
    url = f"/api/v1/invoices/{invoice['id']}/status"

    issued = await client.patch(url, json={"status": "issued"}, headers=auth_headers)
    assert issued.json()["invoice_number"] == "FC0001"

    paid = await client.patch(url, json={"status": "paid"}, headers=auth_headers)
    assert paid.json()["status"] == "paid"

    cancelled_from_paid = await client.patch(
        url, json={"status": "cancelled"}, headers=auth_headers
    )
    assert cancelled_from_paid.status_code == 409


@pytest.mark.asyncio
async def test_update_draft_recomputes_totals(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    invoice = await _create_draft(client, auth_headers, patient)

    response = await client.put(
        f"/api/v1/invoices/{invoice['id']}",
        json={
            "lines": [
                {"description": "Sesión", "unit_price": "50", "quantity": "2", "vat_rate": "0"}
            ]
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert Decimal(response.json()["total_amount"]) == Decimal("100.00")


@pytest.mark.asyncio
async def test_list_invoices_by_status(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    issued = await _create_draft(client, auth_headers, patient)
    await _create_draft(client, auth_headers, patient)
    await client.post(f"/api/v1/invoices/{issued['id']}/issue", headers=auth_headers)

    response = await client.get(
        "/api/v1/invoices", params={"status": "draft"}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_download_pdf(client: AsyncClient, auth_headers: dict, patient: dict) -> None:
    invoice = await _create_draft(client, auth_headers, patient)
    await client.post(f"/api/v1/invoices/{invoice['id']}/issue", headers=auth_headers)

    response = await client.get(f"/api/v1/invoices/{invoice['id']}/pdf", headers=auth_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="factura-FC0001.pdf"' in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_export_zip_reports_missing_invoices(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    invoice = await _create_draft(client, auth_headers, patient)

    response = await client.post(
        "/api/v1/invoices/export",
        json={"invoice_ids": [invoice["id"], 9999]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        names = archive.namelist()
        summary_name = next(name for name in names if name.endswith("resumen.txt"))
        summary = archive.read(summary_name).decode("utf-8")

    assert any(name.endswith(f"factura-borrador-{invoice['id']}.pdf") for name in names)
    assert "Exportadas: 1" in summary
    assert "Con errores: 1" in summary
