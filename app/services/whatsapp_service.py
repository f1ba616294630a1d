"""WhatsApp Business project setup and messaging on behalf of an organization."""

from collections.abc import Callable
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AppException, BadRequestException, NotFoundException
from app.models.appointments import appointments
from app.models.whatsapp import WHATSAPP_CHANNEL_ID, channel_organizations, waba
from app.schemas.whatsapp import (
    BusinessProfileUpdate,
    TemplateCreate,
    WabaConfigureResponse,
    WabaResponse,
    WabaSetupRequest,
)
from app.services.client_service import ClientService
from app.services.organization_service import OrganizationService
from app.services.whatsapp_client import (
    FOLLOW_UP_TEMPLATE,
    REMINDER_TEMPLATE,
    AisensyClient,
)

logger = structlog.get_logger(__name__)

WABA_PENDING = 0
WABA_ACTIVE = 1

ClientFactory = Callable[[str], AisensyClient]

_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


class WhatsAppService:
    """Persist WABA credentials and drive the provider with them."""

    def __init__(
        self,
        db: AsyncSession,
        organization_id: int,
        client_factory: ClientFactory = AisensyClient,
    ):
        """Initialize service with database session, tenant and client factory."""
        self.db = db
        self.organization_id = organization_id
        self.client_factory = client_factory

    async def _get_waba(self) -> dict | None:
        result = await self.db.execute(
            select(waba, channel_organizations.c.organization_id)
            .join(channel_organizations, channel_organizations.c.id == waba.c.channel_organization_id)
            .where(
                channel_organizations.c.organization_id == self.organization_id,
                channel_organizations.c.channel_id == WHATSAPP_CHANNEL_ID,
            )
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def require_waba(self) -> dict:
        """Stored WABA row or 404 when WhatsApp is not set up."""
        record = await self._get_waba()
        if not record:
            raise NotFoundException("WhatsApp is not configured for this organization")
        return record

    async def client(self) -> AisensyClient:
        """Provider client authenticated with the organization's token."""
        record = await self.require_waba()
        return self.client_factory(record["api_token"])

    @staticmethod
    def _response(record: dict) -> WabaResponse:
        return WabaResponse(**{k: v for k, v in record.items() if k != "api_token"})

    async def get_project(self) -> WabaResponse:
        """Current WABA state without the token."""
        return self._response(await self.require_waba())

    async def setup(self, data: WabaSetupRequest) -> WabaResponse:
        """Create or update the WABA record, creating the channel link if missing."""
        result = await self.db.execute(
            select(channel_organizations.c.id).where(
                channel_organizations.c.organization_id == self.organization_id,
                channel_organizations.c.channel_id == WHATSAPP_CHANNEL_ID,
            )
        )
        channel_link_id = result.scalar()
        if channel_link_id is None:
            inserted = await self.db.execute(
                channel_organizations.insert()
                .values(organization_id=self.organization_id, channel_id=WHATSAPP_CHANNEL_ID)
                .returning(channel_organizations.c.id)
            )
            channel_link_id = inserted.scalar_one()

        values = data.model_dump(exclude_none=True)
        existing = await self.db.execute(
            select(waba.c.id).where(waba.c.channel_organization_id == channel_link_id)
        )
        if existing.first():
            await self.db.execute(
                update(waba)
                .where(waba.c.channel_organization_id == channel_link_id)
                .values(**values)
            )
        else:
            await self.db.execute(
                waba.insert().values(channel_organization_id=channel_link_id, status=WABA_PENDING, **values)
            )
        await self.db.commit()

        logger.info("waba_saved", organization_id=self.organization_id)
        return await self.get_project()

    async def _record_progress(self, waba_id: int, **values) -> None:
        await self.db.execute(update(waba).where(waba.c.id == waba_id).values(**values))
        await self.db.commit()

    async def configure(self, webhook_url: str | None = None) -> WabaConfigureResponse:
        """
        Register the webhook and create the reminder and follow-up templates.

        The provider calls run in order without retry. Each completed step is
        recorded on the WABA row as soon as it succeeds, and templates already
        accepted on an earlier run are not submitted again. The first failure
        is stored in ``last_setup_error`` and re-raised to the caller.
        """
        record = await self.require_waba()
        client = self.client_factory(record["api_token"])
        url = webhook_url or settings.whatsapp_webhook_url
        created = list(record["created_templates"] or [])

        try:
            await client.update_webhook(url)
            await self._record_progress(
                record["id"], webhook_url=url, webhook_configured=True, last_setup_error=None
            )

            for template in (REMINDER_TEMPLATE, FOLLOW_UP_TEMPLATE):
                if template["name"] in created:
                    continue
                await client.create_template(template)
                created.append(template["name"])
                await self._record_progress(record["id"], created_templates=list(created))
            await self._record_progress(
                record["id"], templates_created=True, status=WABA_ACTIVE
            )
        except AppException as e:
            logger.error(
                "waba_configure_failed",
                organization_id=self.organization_id,
                error=e.message,
            )
            await self._record_progress(record["id"], last_setup_error=e.message)
            raise

        logger.info("waba_configured", organization_id=self.organization_id)
        return WabaConfigureResponse(
            webhook_url=url,
            templates=[REMINDER_TEMPLATE["name"], FOLLOW_UP_TEMPLATE["name"]],
            status=WABA_ACTIVE,
        )

    async def list_templates(self) -> Any:
        """Provider templates of the project."""
        record = await self.require_waba()
        return await self.client_factory(record["api_token"]).list_templates(record["project_id"])

    async def create_template(self, data: TemplateCreate) -> Any:
        """Submit a custom template."""
        client = await self.client()
        return await client.create_template(data.model_dump(exclude_none=True))

    async def delete_template(self, name: str) -> Any:
        """Delete a template."""
        client = await self.client()
        return await client.delete_template(name)

    async def send_message(self, **kwargs) -> Any:
        """Free-form message; see :meth:`AisensyClient.send_message`."""
        client = await self.client()
        return await client.send_message(**kwargs)

    async def send_template(
        self, to: str, name: str, language: str = "es", parameters: list[str] | None = None
    ) -> Any:
        """Approved template message."""
        client = await self.client()
        return await client.send_template(to, name, language, parameters)

    async def update_profile(self, data: BusinessProfileUpdate) -> Any:
        """Update the public business profile."""
        profile = data.model_dump(exclude_none=True)
        if not profile:
            raise BadRequestException("Nothing to update")
        client = await self.client()
        return await client.update_profile(profile)

    async def update_profile_picture(self, url: str) -> Any:
        """Update the display picture."""
        client = await self.client()
        return await client.update_profile_picture(url)

    async def send_appointment_reminder(self, appointment_id: UUID) -> tuple[str, str]:
        """Send the reminder template for an appointment; returns (phone, template)."""
        result = await self.db.execute(
            select(appointments).where(
                appointments.c.id == appointment_id,
                appointments.c.organization_id == self.organization_id,
            )
        )
        appointment = result.mappings().first()
        if not appointment:
            raise NotFoundException("Appointment not found")
        if not appointment["client_id"]:
            raise BadRequestException("The appointment has no client")

        client_row = await ClientService(self.db, self.organization_id).get_client_row(
            appointment["client_id"]
        )
        if not client_row["phone"]:
            raise BadRequestException("The client has no phone number")

        organization = await OrganizationService().get_organization_fresh(
            self.db, self.organization_id
        )
        day = appointment["date"]
        parameters = [
            client_row["name"],
            organization["name"],
            f"{day.day} de {_MONTHS[day.month - 1]}",
            appointment["start_time"].strftime("%H:%M"),
        ]

        await self.send_template(client_row["phone"], REMINDER_TEMPLATE["name"], "es", parameters)
        logger.info("appointment_reminder_sent", appointment_id=str(appointment_id))
        return client_row["phone"], REMINDER_TEMPLATE["name"]
