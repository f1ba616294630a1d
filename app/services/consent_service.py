"""Consent forms, signing links and signed consents."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AppException,
    BadRequestException,
    GoneException,
    NotFoundException,
    ValidationException,
)
from app.core.security import generate_consent_token
from app.models.clients import clients
from app.models.consents import consent_forms, consent_tokens, patient_consents
from app.models.organizations import organizations
from app.schemas.consents import (
    ConsentFormCreate,
    ConsentFormResponse,
    ConsentFormUpdate,
    ConsentSignRequest,
    ConsentTokenCreate,
    ConsentTokenResponse,
    DeliveryMethod,
    PatientConsentResponse,
    PublicConsentView,
)
from app.services.client_service import ClientService
from app.services.consent_renderer import (
    organization_snapshot,
    render_signed_document,
    replace_placeholders,
)
from app.services.organization_service import OrganizationService
from app.services.whatsapp_service import WhatsAppService

logger = structlog.get_logger(__name__)

GENERAL_CATEGORY = "general"
ACCEPTANCE_TEXT_VERSION = "v1.0"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the database as UTC."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def ensure_token_usable(token: dict, now: datetime) -> None:
    """
    Raise 410 unless the token can still be signed.

    A token is usable up to and including ``expires_at``.
    """
    if token["used_at"] is not None:
        raise GoneException("This consent link has already been used")
    if as_utc(now) > as_utc(token["expires_at"]):
        raise GoneException("This consent link has expired")


def consent_url(token: str) -> str:
    """Public signing link."""
    return f"{settings.site_url.rstrip('/')}/consentimiento/{token}"


def requires_medical_treatment(category: str | None) -> bool:
    """Treatment consents need the explicit medical acceptance."""
    return (category or GENERAL_CATEGORY) != GENERAL_CATEGORY


class ConsentService:
    """Manage an organization's consent forms and signed consents."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def _get_form_row(self, form_id: UUID) -> dict:
        result = await self.db.execute(
            select(consent_forms).where(
                consent_forms.c.id == form_id,
                consent_forms.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Consent form not found")
        return dict(row)

    async def create_form(self, created_by: UUID, data: ConsentFormCreate) -> ConsentFormResponse:
        """Create a consent form."""
        result = await self.db.execute(
            consent_forms.insert()
            .values(organization_id=self.organization_id, created_by=created_by, **data.model_dump())
            .returning(consent_forms)
        )
        await self.db.commit()
        return ConsentFormResponse.model_validate(dict(result.mappings().one()))

    async def list_forms(self, include_inactive: bool = False) -> list[ConsentFormResponse]:
        """Consent forms, active only unless asked otherwise."""
        query = select(consent_forms).where(consent_forms.c.organization_id == self.organization_id)
        if not include_inactive:
            query = query.where(consent_forms.c.is_active.is_(True))
        result = await self.db.execute(query.order_by(consent_forms.c.title))
        return [ConsentFormResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def get_form(self, form_id: UUID) -> ConsentFormResponse:
        """Consent form by ID."""
        return ConsentFormResponse.model_validate(await self._get_form_row(form_id))

    async def update_form(self, form_id: UUID, data: ConsentFormUpdate) -> ConsentFormResponse:
        """Partial update of a consent form."""
        await self._get_form_row(form_id)
        values = data.model_dump(exclude_unset=True)
        if not values:
            return await self.get_form(form_id)

        result = await self.db.execute(
            update(consent_forms)
            .where(consent_forms.c.id == form_id)
            .values(**values)
            .returning(consent_forms)
        )
        await self.db.commit()
        return ConsentFormResponse.model_validate(dict(result.mappings().one()))

    async def deactivate_form(self, form_id: UUID) -> ConsentFormResponse:
        """Hide a form from new links; signed consents keep their snapshot."""
        return await self.update_form(form_id, ConsentFormUpdate(is_active=False))

    async def generate_token(
        self,
        created_by: UUID,
        data: ConsentTokenCreate,
        now: datetime,
        whatsapp: WhatsAppService | None = None,
    ) -> ConsentTokenResponse:
        """
        Create a signing link for a form, optionally sending it by WhatsApp.

        The form content is rendered with the organization's data now and
        stored with the token, so later edits to the form do not change what
        the patient signs. A failed WhatsApp delivery keeps the token and
        reports ``delivered = False``.
        """
        form = await self._get_form_row(data.consent_form_id)
        if not form["is_active"]:
            raise BadRequestException("The consent form is not active")

        client = None
        if data.client_id:
            client = await ClientService(self.db, self.organization_id).get_client_row(
                data.client_id
            )

        organization = await OrganizationService().get_organization_fresh(
            self.db, self.organization_id
        )
        days = data.expiration_days or settings.consent_expiration_days
        token = generate_consent_token()
        expires_at = as_utc(now) + timedelta(days=days)

        result = await self.db.execute(
            consent_tokens.insert()
            .values(
                token=token,
                organization_id=self.organization_id,
                consent_form_id=form["id"],
                client_id=data.client_id,
                expires_at=expires_at,
                sent_via=data.delivery_method.value,
                recipient_info={
                    "processed_content": replace_placeholders(form["content"], organization),
                    "client_name": client["name"] if client else None,
                    "client_phone": client["phone"] if client else None,
                },
                created_by=created_by,
            )
            .returning(consent_tokens.c.id)
        )
        token_id = result.scalar_one()
        await self.db.commit()

        url = consent_url(token)
        logger.info(
            "consent_token_generated",
            organization_id=self.organization_id,
            form_id=str(form["id"]),
            delivery=data.delivery_method.value,
        )

        delivered = False
        if data.delivery_method == DeliveryMethod.WHATSAPP and client and client["phone"]:
            if whatsapp is None:
                whatsapp = WhatsAppService(self.db, self.organization_id)
            text = (
                f"Hola {client['name']}, {organization['name']} te envía el documento "
                f"\"{form['title']}\" para que lo revises y firmes: {url}\n"
                f"El enlace caduca el {expires_at.strftime('%d/%m/%Y')}."
            )
            try:
                await whatsapp.send_message(to=client["phone"], message_type="text", text=text)
                delivered = True
            except AppException as e:
                logger.warning(
                    "consent_whatsapp_delivery_failed",
                    token_id=str(token_id),
                    error=e.message,
                )

        return ConsentTokenResponse(
            id=token_id,
            token=token,
            url=url,
            expires_at=expires_at,
            sent_via=data.delivery_method,
            delivered=delivered,
        )

    async def list_client_consents(self, client_id: int) -> list[PatientConsentResponse]:
        """Signed consents of a client, newest first."""
        await ClientService(self.db, self.organization_id).get_client_row(client_id)
        result = await self.db.execute(
            select(patient_consents)
            .where(
                patient_consents.c.organization_id == self.organization_id,
                patient_consents.c.client_id == client_id,
            )
            .order_by(patient_consents.c.signed_at.desc())
        )
        return [PatientConsentResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def _get_consent_row(self, consent_id: UUID) -> dict:
        result = await self.db.execute(
            select(patient_consents, consent_forms.c.title)
            .join(consent_forms, consent_forms.c.id == patient_consents.c.consent_form_id)
            .where(
                patient_consents.c.id == consent_id,
                patient_consents.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Consent not found")
        return dict(row)

    async def revoke_consent(self, consent_id: UUID, now: datetime) -> PatientConsentResponse:
        """Mark a signed consent as no longer valid."""
        await self._get_consent_row(consent_id)
        result = await self.db.execute(
            update(patient_consents)
            .where(patient_consents.c.id == consent_id)
            .values(is_valid=False, revoked_at=now)
            .returning(patient_consents)
        )
        await self.db.commit()
        logger.info("consent_revoked", consent_id=str(consent_id))
        return PatientConsentResponse.model_validate(dict(result.mappings().one()))

    async def render_document(self, consent_id: UUID) -> str:
        """HTML of a signed consent."""
        row = await self._get_consent_row(consent_id)
        return render_signed_document(row, row["title"])


class PublicConsentService:
    """Token-authenticated view and signature of a consent."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _get_token(self, token: str, lock: bool = False) -> dict:
        query = select(consent_tokens).where(consent_tokens.c.token == token)
        if lock:
            query = query.with_for_update()
        row = (await self.db.execute(query)).mappings().first()
        if not row:
            raise NotFoundException("Consent link not found")
        return dict(row)

    async def _context(self, token_row: dict) -> tuple[dict, dict, dict | None]:
        form = (
            await self.db.execute(
                select(consent_forms).where(consent_forms.c.id == token_row["consent_form_id"])
            )
        ).mappings().one()
        organization = (
            await self.db.execute(
                select(organizations).where(organizations.c.id == token_row["organization_id"])
            )
        ).mappings().one()
        client = None
        if token_row["client_id"]:
            client = (
                await self.db.execute(select(clients).where(clients.c.id == token_row["client_id"]))
            ).mappings().first()
        return dict(form), dict(organization), dict(client) if client else None

    @staticmethod
    def _content(token_row: dict, form: dict, organization: dict) -> str:
        snapshot = (token_row["recipient_info"] or {}).get("processed_content")
        return snapshot or replace_placeholders(form["content"], organization)

    async def view(self, token: str, now: datetime) -> PublicConsentView:
        """Document to be signed."""
        token_row = await self._get_token(token)
        ensure_token_usable(token_row, now)
        form, organization, client = await self._context(token_row)

        return PublicConsentView(
            title=form["title"],
            content=self._content(token_row, form, organization),
            organization_name=organization["name"],
            client_name=client["name"] if client else None,
            category=form["category"],
            requires_medical_treatment=requires_medical_treatment(form["category"]),
            expires_at=as_utc(token_row["expires_at"]),
        )

    async def sign(
        self,
        token: str,
        data: ConsentSignRequest,
        ip_address: str | None,
        user_agent: str | None,
        now: datetime,
    ) -> PatientConsentResponse:
        """
        Record the patient's signature and consume the token.

        The token row stays locked until the consent is stored, so two
        submissions of the same link cannot both succeed.
        """
        try:
            token_row = await self._get_token(token, lock=True)
            ensure_token_usable(token_row, now)
            form, organization, _ = await self._context(token_row)

            missing = []
            if not data.terms_accepted:
                missing.append("terms_accepted")
            if not data.document_read_understood:
                missing.append("document_read_understood")
            if requires_medical_treatment(form["category"]) and not data.medical_treatment_accepted:
                missing.append("medical_treatment_accepted")
            if missing:
                raise ValidationException(f"Required acceptances missing: {', '.join(missing)}")

            result = await self.db.execute(
                patient_consents.insert()
                .values(
                    organization_id=token_row["organization_id"],
                    client_id=token_row["client_id"],
                    consent_form_id=form["id"],
                    token_id=token_row["id"],
                    patient_name=data.full_name,
                    patient_tax_id=data.tax_id.upper(),
                    signature_base64=data.signature,
                    signed_at=now,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    browser_info=data.browser_info,
                    is_valid=True,
                    terms_accepted=True,
                    terms_accepted_at=now,
                    document_read_understood=True,
                    document_read_understood_at=now,
                    marketing_notifications_accepted=data.marketing_notifications_accepted,
                    marketing_accepted_at=now if data.marketing_notifications_accepted else None,
                    marketing_rejected_at=None if data.marketing_notifications_accepted else now,
                    medical_treatment_accepted=data.medical_treatment_accepted,
                    medical_treatment_accepted_at=now if data.medical_treatment_accepted else None,
                    acceptance_text_version=ACCEPTANCE_TEXT_VERSION,
                    consent_content=self._content(token_row, form, organization),
                    organization_data=organization_snapshot(organization),
                )
                .returning(patient_consents)
            )
            consent = dict(result.mappings().one())

            await self.db.execute(
                update(consent_tokens)
                .where(consent_tokens.c.id == token_row["id"])
                .values(
                    used_at=now,
                    signature_data={
                        "signed_at": now.isoformat(),
                        "ip_address": ip_address,
                        "patient_name": data.full_name,
                    },
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "consent_signed",
            organization_id=token_row["organization_id"],
            consent_id=str(consent["id"]),
        )
        return PatientConsentResponse.model_validate(consent)
