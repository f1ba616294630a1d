"""WhatsApp Business endpoints."""

from typing import Any

from fastapi import APIRouter, Body, status

from app.dependencies import (
    AdminUser,
    CurrentOrganizationId,
    DatabaseSession,
    WhatsAppClientFactory,
)
from app.schemas.whatsapp import (
    BusinessProfileUpdate,
    ProfilePictureUpdate,
    SendMessageRequest,
    SendTemplateRequest,
    TemplateCreate,
    WabaConfigureResponse,
    WabaResponse,
    WabaSetupRequest,
)
from app.services.whatsapp_service import WhatsAppService

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])


@router.get("/project", response_model=WabaResponse, summary="WhatsApp project state")
async def get_project(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> WabaResponse:
    """Stored project and setup progress, without the API token."""
    return await WhatsAppService(db, organization_id, client_factory).get_project()


@router.put("/project", response_model=WabaResponse, summary="Save WhatsApp credentials")
async def setup_project(
    data: WabaSetupRequest,
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> WabaResponse:
    """Create or replace the organization's WhatsApp Business credentials (admins only)."""
    return await WhatsAppService(db, admin["organization_id"], client_factory).setup(data)


@router.post(
    "/project/configure",
    response_model=WabaConfigureResponse,
    summary="Register webhook and default templates",
)
async def configure_project(
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
    webhook_url: str | None = Body(None, embed=True),
) -> WabaConfigureResponse:
    """
    Register the webhook and create the reminder and follow-up templates.

    Args:
        admin: Authenticated administrator
        db: Database session
        client_factory: Provider client factory
        webhook_url: Overrides the configured webhook URL

    Returns:
        Webhook URL, created templates and the project status

    Raises:
        ExternalServiceException: If a provider step fails (progress is kept)
        ServiceTimeoutException: If the provider does not answer in time
    """
    service = WhatsAppService(db, admin["organization_id"], client_factory)
    return await service.configure(webhook_url)


@router.get("/templates", summary="List templates")
async def list_templates(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Templates registered in the provider."""
    return await WhatsAppService(db, organization_id, client_factory).list_templates()


@router.post("/templates", status_code=status.HTTP_201_CREATED, summary="Create template")
async def create_template(
    data: TemplateCreate,
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Submit a template for approval; body variables get example values."""
    return await WhatsAppService(db, admin["organization_id"], client_factory).create_template(data)


@router.delete("/templates/{name}", summary="Delete template")
async def delete_template(
    name: str,
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Delete a template by name."""
    return await WhatsAppService(db, admin["organization_id"], client_factory).delete_template(name)


@router.post("/messages", summary="Send message")
async def send_message(
    data: SendMessageRequest,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Free-form text or media message."""
    return await WhatsAppService(db, organization_id, client_factory).send_message(
        to=data.to,
        message_type=data.type.value,
        text=data.text,
        media_url=data.media_url,
        caption=data.caption,
        filename=data.filename,
    )


@router.post("/messages/template", summary="Send template message")
async def send_template(
    data: SendTemplateRequest,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Approved template with positional parameters."""
    return await WhatsAppService(db, organization_id, client_factory).send_template(
        data.to, data.template_name, data.language, data.parameters
    )


@router.patch("/profile", summary="Update business profile")
async def update_profile(
    data: BusinessProfileUpdate,
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Public business profile."""
    return await WhatsAppService(db, admin["organization_id"], client_factory).update_profile(data)


@router.patch("/profile/picture", summary="Update profile picture")
async def update_profile_picture(
    data: ProfilePictureUpdate,
    admin: AdminUser,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> Any:
    """Display picture given by a public URL."""
    service = WhatsAppService(db, admin["organization_id"], client_factory)
    return await service.update_profile_picture(data.url)
