"""Appointment service for business logic."""

import uuid
from datetime import date, time
from uuid import UUID

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.models.appointments import appointments
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentCreateResponse,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    AvailabilityResult,
    RecurrencePreviewRequest,
    RecurrencePreviewResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.catalog_service import CatalogService
from app.services.client_service import ClientService
from app.services.recurrence import (
    describe_recurrence,
    generate_recurring_dates,
    validate_recurrence_config,
)
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


def _conflict_message(result: AvailabilityResult) -> str:
    if not result.professional_available and not result.consultation_available:
        return "The professional and the consultation are already booked at this time"
    if not result.professional_available:
        return "The professional already has a booking at this time"
    return "The consultation is already booked at this time"


class AppointmentService:
    """Service for managing appointments."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id
        self.availability = AvailabilityService(db, organization_id)

    async def _validate_references(
        self,
        professional_id: UUID | None,
        consultation_id: UUID | None,
        client_id: int | None,
        service_id: int | None,
    ) -> None:
        """Every referenced row must belong to the caller's organization."""
        if professional_id:
            await UserService().get_organization_member(
                self.db, self.organization_id, professional_id
            )
        catalog = CatalogService(self.db, self.organization_id)
        if consultation_id:
            await catalog.get_consultation(consultation_id)
        if service_id:
            await catalog.get_service(service_id)
        if client_id:
            await ClientService(self.db, self.organization_id).get_client_row(client_id)

    async def _get_row(self, appointment_id: UUID) -> dict:
        result = await self.db.execute(
            select(appointments).where(
                appointments.c.id == appointment_id,
                appointments.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def create_appointment(
        self, created_by: UUID, data: AppointmentCreate, today: date
    ) -> AppointmentCreateResponse:
        """
        Book an appointment, or a recurring series of them.

        The professional (and room) are locked, then every occurrence is
        checked and inserted inside the same transaction. Occurrences that
        conflict are skipped and reported; a conflict on the first one
        rejects the whole request.
        """
        await self._validate_references(
            data.professional_id, data.consultation_id, data.client_id, data.service_id
        )

        dates = [data.date]
        description = None
        recurrence = None
        if data.recurrence:
            errors = validate_recurrence_config(data.recurrence, today)
            if errors:
                raise ValidationException("; ".join(errors))
            dates = generate_recurring_dates(data.date, data.recurrence)
            description = describe_recurrence(data.recurrence)
            recurrence = data.recurrence.model_dump(mode="json")

        group_id = uuid.uuid4() if len(dates) > 1 else None
        created: list[AppointmentResponse] = []
        skipped: list[date] = []

        try:
            await self.availability.lock_resources(data.professional_id, data.consultation_id)

            for occurrence in dates:
                check = await self.availability.check_availability(
                    occurrence,
                    data.start_time,
                    data.end_time,
                    data.professional_id,
                    data.consultation_id,
                )
                if not check.available:
                    if occurrence == data.date:
                        raise ConflictException(_conflict_message(check))
                    skipped.append(occurrence)
                    continue

                result = await self.db.execute(
                    appointments.insert()
                    .values(
                        organization_id=self.organization_id,
                        date=occurrence,
                        start_time=data.start_time,
                        end_time=data.end_time,
                        professional_id=data.professional_id,
                        consultation_id=data.consultation_id,
                        client_id=data.client_id,
                        service_id=data.service_id,
                        status=data.status.value,
                        notes=data.notes,
                        recurrence=recurrence,
                        recurrence_group_id=group_id,
                        created_by=created_by,
                    )
                    .returning(appointments)
                )
                created.append(AppointmentResponse.model_validate(dict(result.mappings().one())))

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_created",
            organization_id=self.organization_id,
            professional_id=str(data.professional_id),
            created=len(created),
            skipped=len(skipped),
        )

        return AppointmentCreateResponse(
            appointments=created,
            created_count=len(created),
            skipped_dates=skipped,
            recurrence_description=description,
        )

    async def preview_recurrence(
        self, data: RecurrencePreviewRequest, today: date
    ) -> RecurrencePreviewResponse:
        """Dates a series would produce and which already have a conflicting booking."""
        errors = validate_recurrence_config(data.recurrence, today)
        if errors:
            raise ValidationException("; ".join(errors))

        dates = generate_recurring_dates(data.start_date, data.recurrence)
        conflicting: list[date] = []
        if data.professional_id and data.start_time and data.end_time:
            for occurrence in dates:
                check = await self.availability.check_availability(
                    occurrence,
                    data.start_time,
                    data.end_time,
                    data.professional_id,
                    data.consultation_id,
                )
                if not check.available:
                    conflicting.append(occurrence)

        return RecurrencePreviewResponse(
            dates=dates,
            count=len(dates),
            description=describe_recurrence(data.recurrence),
            conflicting_dates=conflicting,
        )

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """Get appointment by ID."""
        return AppointmentResponse.model_validate(await self._get_row(appointment_id))

    async def list_appointments(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        professional_id: UUID | None = None,
        consultation_id: UUID | None = None,
        client_id: int | None = None,
        status: AppointmentStatus | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> AppointmentListResponse:
        """List appointments with filtering and pagination."""
        conditions = [appointments.c.organization_id == self.organization_id]

        if date_from:
            conditions.append(appointments.c.date >= date_from)
        if date_to:
            conditions.append(appointments.c.date <= date_to)
        if professional_id:
            conditions.append(appointments.c.professional_id == professional_id)
        if consultation_id:
            conditions.append(appointments.c.consultation_id == consultation_id)
        if client_id:
            conditions.append(appointments.c.client_id == client_id)
        if status:
            conditions.append(appointments.c.status == status.value)

        total = (
            await self.db.execute(
                select(func.count()).select_from(appointments).where(and_(*conditions))
            )
        ).scalar() or 0

        result = await self.db.execute(
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.date, appointments.c.start_time)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]

        return AppointmentListResponse(total=total, page=page, page_size=page_size, items=items)

    async def update_appointment(
        self, appointment_id: UUID, data: AppointmentUpdate
    ) -> AppointmentResponse:
        """
        Edit an appointment; rescheduling re-runs the conflict check.

        The appointment being moved is excluded from its own check.
        """
        values = data.model_dump(exclude_unset=True)
        if not values:
            return await self.get_appointment(appointment_id)

        current = await self._get_row(appointment_id)
        merged = {**current, **values}

        start: time = merged["start_time"]
        end: time = merged["end_time"]
        if end <= start:
            raise ValidationException("End time must be after start time")

        await self._validate_references(
            values.get("professional_id"),
            values.get("consultation_id"),
            values.get("client_id"),
            values.get("service_id"),
        )

        slot_fields = {"date", "start_time", "end_time", "professional_id", "consultation_id"}
        try:
            if slot_fields & values.keys() and merged["status"] != "cancelled":
                await self.availability.lock_resources(
                    merged["professional_id"], merged["consultation_id"]
                )
                check = await self.availability.check_availability(
                    merged["date"],
                    start,
                    end,
                    merged["professional_id"],
                    merged["consultation_id"],
                    exclude_appointment_id=appointment_id,
                )
                if not check.available:
                    raise ConflictException(_conflict_message(check))

            result = await self.db.execute(
                update(appointments)
                .where(
                    appointments.c.id == appointment_id,
                    appointments.c.organization_id == self.organization_id,
                )
                .values(**values)
                .returning(appointments)
            )
            row = result.mappings().one()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("appointment_updated", appointment_id=str(appointment_id))
        return AppointmentResponse.model_validate(dict(row))

    async def update_appointment_status(
        self, appointment_id: UUID, status: AppointmentStatus
    ) -> AppointmentResponse:
        """
        Change the status of an appointment.

        Reviving a cancelled appointment re-checks availability, since its
        slot may have been taken meanwhile.
        """
        current = await self._get_row(appointment_id)

        try:
            if current["status"] == "cancelled" and status != AppointmentStatus.CANCELLED:
                await self.availability.lock_resources(
                    current["professional_id"], current["consultation_id"]
                )
                check = await self.availability.check_availability(
                    current["date"],
                    current["start_time"],
                    current["end_time"],
                    current["professional_id"],
                    current["consultation_id"],
                    exclude_appointment_id=appointment_id,
                )
                if not check.available:
                    raise ConflictException(_conflict_message(check))

            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(status=status.value)
                .returning(appointments)
            )
            row = result.mappings().one()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            status=status.value,
        )
        return AppointmentResponse.model_validate(dict(row))

    async def cancel_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """Cancel an appointment; the row is kept for history."""
        return await self.update_appointment_status(appointment_id, AppointmentStatus.CANCELLED)
