"""Consent form, signing link and signed consent endpoints."""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import HTMLResponse

from app.dependencies import (
    CurrentOrganizationId,
    CurrentUser,
    DatabaseSession,
    WhatsAppClientFactory,
)
from app.schemas.consents import (
    ConsentFormCreate,
    ConsentFormResponse,
    ConsentFormUpdate,
    ConsentTokenCreate,
    ConsentTokenResponse,
    PatientConsentResponse,
)
from app.services.consent_service import ConsentService
from app.services.whatsapp_service import WhatsAppService

router = APIRouter(tags=["Consents"])


@router.post(
    "/consent-forms",
    response_model=ConsentFormResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create consent form",
)
async def create_form(
    data: ConsentFormCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ConsentFormResponse:
    """
    Create a consent document.

    The content is HTML and may use ``{{ORGANIZATION_NAME}}`` style
    placeholders, filled in when a signing link is generated.
    """
    return await ConsentService(db, organization_id).create_form(current_user["id"], data)


@router.get("/consent-forms", response_model=list[ConsentFormResponse], summary="List forms")
async def list_forms(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    include_inactive: bool = Query(False),
) -> list[ConsentFormResponse]:
    """Consent forms of the organization."""
    return await ConsentService(db, organization_id).list_forms(include_inactive)


@router.get(
    "/consent-forms/{form_id}", response_model=ConsentFormResponse, summary="Get consent form"
)
async def get_form(
    form_id: UUID, organization_id: CurrentOrganizationId, db: DatabaseSession
) -> ConsentFormResponse:
    """Consent form by ID."""
    return await ConsentService(db, organization_id).get_form(form_id)


@router.put(
    "/consent-forms/{form_id}", response_model=ConsentFormResponse, summary="Update consent form"
)
async def update_form(
    form_id: UUID,
    data: ConsentFormUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ConsentFormResponse:
    """Partial update of a consent form."""
    return await ConsentService(db, organization_id).update_form(form_id, data)


@router.delete(
    "/consent-forms/{form_id}",
    response_model=ConsentFormResponse,
    summary="Deactivate consent form",
)
async def deactivate_form(
    form_id: UUID, organization_id: CurrentOrganizationId, db: DatabaseSession
) -> ConsentFormResponse:
    """Stop offering a form; already signed consents are unaffected."""
    return await ConsentService(db, organization_id).deactivate_form(form_id)


@router.post(
    "/consents/tokens",
    response_model=ConsentTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate signing link",
)
async def generate_token(
    data: ConsentTokenCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> ConsentTokenResponse:
    """
    Generate a signing link for a consent form.

    Args:
        data: Form, optional client, delivery method and expiration
        current_user: Authenticated staff member
        organization_id: Caller's organization
        db: Database session
        client_factory: WhatsApp provider client factory

    Returns:
        Token, public URL, expiry and whether WhatsApp delivery succeeded
    """
    return await ConsentService(db, organization_id).generate_token(
        current_user["id"],
        data,
        datetime.now(UTC),
        whatsapp=WhatsAppService(db, organization_id, client_factory),
    )


@router.get(
    "/clients/{client_id}/consents",
    response_model=list[PatientConsentResponse],
    summary="Signed consents of a client",
)
async def list_client_consents(
    client_id: int, organization_id: CurrentOrganizationId, db: DatabaseSession
) -> list[PatientConsentResponse]:
    """Signed consents of a client, newest first."""
    return await ConsentService(db, organization_id).list_client_consents(client_id)


@router.get(
    "/consents/{consent_id}/document",
    response_class=HTMLResponse,
    summary="Signed consent document",
)
async def consent_document(
    consent_id: UUID, organization_id: CurrentOrganizationId, db: DatabaseSession
) -> HTMLResponse:
    """Printable HTML of a signed consent."""
    return HTMLResponse(await ConsentService(db, organization_id).render_document(consent_id))


@router.post(
    "/consents/{consent_id}/revoke",
    response_model=PatientConsentResponse,
    summary="Revoke signed consent",
)
async def revoke_consent(
    consent_id: UUID, organization_id: CurrentOrganizationId, db: DatabaseSession
) -> PatientConsentResponse:
    """Mark a signed consent as no longer valid."""
    return await ConsentService(db, organization_id).revoke_consent(consent_id, datetime.now(UTC))
