"""Tests for consent forms, signing links and signatures."""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

from app.core.exceptions import GoneException
from app.services.consent_renderer import replace_placeholders
from app.services.consent_service import consent_url, ensure_token_usable

SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="


def _signature(**overrides) -> dict:
    return {
        "full_name": "Ana García",
        "tax_id": "12345678z",
        "signature": SIGNATURE,
        "terms_accepted": True,
        "document_read_understood": True,
        **overrides,
    }


def test_placeholders_use_organization_data():
    organization = {"name": "Clínica <Norte>", "tax_id": "B1", "city": "Madrid"}
    content = "<p>{{ORGANIZATION_NAME}} ({{cif_organizacion}}) {{UNKNOWN}}</p>"

    rendered = replace_placeholders(content, organization)

    assert rendered == "<p>Clínica &lt;Norte&gt; (B1) {{UNKNOWN}}</p>"


def test_token_usable_until_expiry_inclusive():
    expires_at = datetime(2026, 10, 20, 12, 0, tzinfo=UTC)
    token = {"used_at": None, "expires_at": expires_at.replace(tzinfo=None)}

    ensure_token_usable(token, expires_at)
    with pytest.raises(GoneException):
        ensure_token_usable(token, expires_at + timedelta(seconds=1))


def test_used_token_is_gone():
    token = {"used_at": datetime(2026, 10, 1, tzinfo=UTC), "expires_at": datetime(2030, 1, 1)}
    with pytest.raises(GoneException):
        ensure_token_usable(token, datetime(2026, 10, 2, tzinfo=UTC))


def test_consent_url_points_to_signing_page():
    assert consent_url("abc").endswith("/consentimiento/abc")


async def _create_form(client: AsyncClient, headers: dict, category: str = "general") -> dict:
    response = await client.post(
        "/api/v1/consent-forms",
        json={
            "title": "Consentimiento de tratamiento",
            "content": "<p>{{ORGANIZATION_NAME}} tratará sus datos.</p>",
            "category": category,
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


async def _create_token(client: AsyncClient, headers: dict, form: dict, patient: dict) -> dict:
    response = await client.post(
        "/api/v1/consents/tokens",
        json={"consent_form_id": form["id"], "client_id": patient["id"]},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_public_view_renders_snapshot(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    form = await _create_form(client, auth_headers)
    token = await _create_token(client, auth_headers, form, patient)

    assert token["url"].endswith(f"/consentimiento/{token['token']}")
    assert token["delivered"] is False

    await client.put(
        f"/api/v1/consent-forms/{form['id']}",
        json={"content": "<p>Texto nuevo</p>"},
        headers=auth_headers,
    )
    response = await client.get(f"/api/v1/public/consents/{token['token']}")

    assert response.status_code == 200
    view = response.json()
    assert view["content"] == "<p>Clínica Fisio Centro tratará sus datos.</p>"
    assert view["client_name"] == patient["name"]
    assert view["requires_medical_treatment"] is False


@pytest.mark.asyncio
async def test_link_can_be_signed_once(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    form = await _create_form(client, auth_headers)
    token = await _create_token(client, auth_headers, form, patient)
    url = f"/api/v1/public/consents/{token['token']}/sign"

    signed = await client.post(url, json=_signature(), headers={"user-agent": "pytest"})
    again = await client.post(url, json=_signature())
    view = await client.get(f"/api/v1/public/consents/{token['token']}")

    assert signed.status_code == 201
    consent = signed.json()
    assert consent["patient_tax_id"] == "12345678Z"
    assert consent["is_valid"] is True
    assert consent["acceptance_text_version"] == "v1.0"
    assert again.status_code == 410
    assert view.status_code == 410

    history = await client.get(f"/api/v1/clients/{patient['id']}/consents", headers=auth_headers)
    assert [item["id"] for item in history.json()] == [consent["id"]]


@pytest.mark.asyncio
async def test_required_acceptances(client: AsyncClient, auth_headers: dict, patient: dict) -> None:
    """Treatment forms also need the medical acceptance."""
    form = await _create_form(client, auth_headers, category="tratamiento")
    token = await _create_token(client, auth_headers, form, patient)
    url = f"/api/v1/public/consents/{token['token']}/sign"

    missing_terms = await client.post(url, json=_signature(terms_accepted=False))
    missing_medical = await client.post(url, json=_signature())
    accepted = await client.post(url, json=_signature(medical_treatment_accepted=True))

    assert missing_terms.status_code == 422
    assert missing_medical.status_code == 422
    assert "medical_treatment_accepted" in missing_medical.json()["message"]
    assert accepted.status_code == 201


@pytest.mark.asyncio
async def test_unknown_link(client: AsyncClient) -> None:
    response = await client.get("/api/v1/public/consents/does-not-exist")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_inactive_form_cannot_issue_links(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    form = await _create_form(client, auth_headers)
    deleted = await client.delete(f"/api/v1/consent-forms/{form['id']}", headers=auth_headers)
    listing = await client.get("/api/v1/consent-forms", headers=auth_headers)

    response = await client.post(
        "/api/v1/consents/tokens",
        json={"consent_form_id": form["id"], "client_id": patient["id"]},
        headers=auth_headers,
    )

    assert deleted.json()["is_active"] is False
    assert listing.json() == []
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_whatsapp_delivery_failure_keeps_link(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    """Without a WhatsApp setup the link is still created, just not delivered."""
    form = await _create_form(client, auth_headers)

    response = await client.post(
        "/api/v1/consents/tokens",
        json={
            "consent_form_id": form["id"],
            "client_id": patient["id"],
            "delivery_method": "whatsapp",
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert response.json()["delivered"] is False
    assert response.json()["sent_via"] == "whatsapp"


@pytest.mark.asyncio
async def test_document_and_revocation(
    client: AsyncClient, auth_headers: dict, patient: dict
) -> None:
    form = await _create_form(client, auth_headers)
    token = await _create_token(client, auth_headers, form, patient)
    signed = await client.post(
        f"/api/v1/public/consents/{token['token']}/sign",
        json=_signature(full_name="Ana <b>García</b>"),
    )
    consent_id = signed.json()["id"]

    document = await client.get(f"/api/v1/consents/{consent_id}/document", headers=auth_headers)
    assert document.status_code == 200
    assert document.headers["content-type"].startswith("text/html")
    assert "Ana &lt;b&gt;García&lt;/b&gt;" in document.text
    assert SIGNATURE in document.text

    revoked = await client.post(f"/api/v1/consents/{consent_id}/revoke", headers=auth_headers)
    assert revoked.status_code == 200
    assert revoked.json()["is_valid"] is False

    document = await client.get(f"/api/v1/consents/{consent_id}/document", headers=auth_headers)
    assert "REVOCADO" in document.text
