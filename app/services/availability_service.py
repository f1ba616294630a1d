"""Booking conflict detection and bookable slot computation."""

from datetime import date, time
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.models.appointments import appointments
from app.models.catalog import consultations
from app.models.group_activities import group_activities
from app.models.users import users
from app.schemas.appointments import (
    AvailabilityResult,
    AvailableSlotsResponse,
    ConflictItem,
    ConflictKind,
    TimeSlot,
)
from app.schemas.catalog import ConsultationResponse
from app.services.catalog_service import CatalogService
from app.services.schedule_service import ScheduleService

logger = structlog.get_logger(__name__)

# Appointment states that occupy the professional when computing free slots
BLOCKING_APPOINTMENT_STATUSES = ("confirmed", "pending")


def to_seconds(value: time) -> int:
    """Seconds since midnight."""
    return value.hour * 3600 + value.minute * 60 + value.second


def from_seconds(value: int) -> time:
    """Inverse of :func:`to_seconds`."""
    return time(value // 3600, (value % 3600) // 60, value % 60)


def overlaps(start: int, end: int, other_start: int, other_end: int) -> bool:
    """Half-open interval overlap: touching ranges do not overlap."""
    return start < other_end and end > other_start


class AvailabilityService:
    """Answer whether professionals and rooms are free."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def lock_resources(
        self, professional_id: UUID | None, consultation_id: UUID | None = None
    ) -> None:
        """
        Take row locks on the professional and the room being booked.

        Held until the surrounding transaction ends, so two bookings for the
        same professional or room run their check-then-insert one at a time.
        """
        if professional_id:
            await self.db.execute(
                select(users.c.id).where(users.c.id == professional_id).with_for_update()
            )
        if consultation_id:
            await self.db.execute(
                select(consultations.c.id)
                .where(consultations.c.id == consultation_id)
                .with_for_update()
            )

    async def check_availability(
        self,
        day: date,
        start_time: time,
        end_time: time,
        professional_id: UUID,
        consultation_id: UUID | None = None,
        exclude_appointment_id: UUID | None = None,
        exclude_group_activity_id: UUID | None = None,
    ) -> AvailabilityResult:
        """
        Find bookings overlapping ``[start_time, end_time)`` on ``day``.

        Non-cancelled appointments and active group activities of the same
        professional, or in the same consultation room, conflict. Query
        errors propagate; a failed check never reports a free slot.
        """
        resource_match = [appointments.c.professional_id == professional_id]
        if consultation_id:
            resource_match.append(appointments.c.consultation_id == consultation_id)

        stmt = select(appointments).where(
            and_(
                appointments.c.organization_id == self.organization_id,
                appointments.c.date == day,
                appointments.c.status != "cancelled",
                appointments.c.start_time < end_time,
                appointments.c.end_time > start_time,
                or_(*resource_match),
            )
        )
        if exclude_appointment_id:
            stmt = stmt.where(appointments.c.id != exclude_appointment_id)
        appointment_rows = (await self.db.execute(stmt)).mappings().all()

        activity_match = [group_activities.c.professional_id == professional_id]
        if consultation_id:
            activity_match.append(group_activities.c.consultation_id == consultation_id)

        stmt = select(group_activities).where(
            and_(
                group_activities.c.organization_id == self.organization_id,
                group_activities.c.date == day,
                group_activities.c.status == "active",
                group_activities.c.start_time < end_time,
                group_activities.c.end_time > start_time,
                or_(*activity_match),
            )
        )
        if exclude_group_activity_id:
            stmt = stmt.where(group_activities.c.id != exclude_group_activity_id)
        activity_rows = (await self.db.execute(stmt)).mappings().all()

        conflicts: list[ConflictItem] = []
        for kind, rows in (
            (ConflictKind.APPOINTMENT, appointment_rows),
            (ConflictKind.GROUP_ACTIVITY, activity_rows),
        ):
            for row in rows:
                label = row["name"] if kind == ConflictKind.GROUP_ACTIVITY else "Cita"
                resources = []
                if row["professional_id"] == professional_id:
                    resources.append("professional")
                if consultation_id and row["consultation_id"] == consultation_id:
                    resources.append("consultation")
                for resource in resources:
                    conflicts.append(
                        ConflictItem(
                            kind=kind,
                            id=row["id"],
                            label=label,
                            start_time=row["start_time"],
                            end_time=row["end_time"],
                            status=row["status"],
                            resource=resource,
                        )
                    )

        result = AvailabilityResult(
            professional_available=not any(c.resource == "professional" for c in conflicts),
            consultation_available=not any(c.resource == "consultation" for c in conflicts),
            conflicts=conflicts,
        )
        if conflicts:
            logger.info(
                "booking_conflicts_found",
                date=str(day),
                professional_id=str(professional_id),
                consultation_id=str(consultation_id) if consultation_id else None,
                count=len(conflicts),
            )
        return result

    async def free_consultations(
        self, day: date, start_time: time, end_time: time
    ) -> list[ConsultationResponse]:
        """Active rooms with no overlapping booking in the window."""
        busy_by_appointment = select(appointments.c.consultation_id).where(
            appointments.c.organization_id == self.organization_id,
            appointments.c.consultation_id.is_not(None),
            appointments.c.date == day,
            appointments.c.status != "cancelled",
            appointments.c.start_time < end_time,
            appointments.c.end_time > start_time,
        )
        busy_by_activity = select(group_activities.c.consultation_id).where(
            group_activities.c.organization_id == self.organization_id,
            group_activities.c.consultation_id.is_not(None),
            group_activities.c.date == day,
            group_activities.c.status == "active",
            group_activities.c.start_time < end_time,
            group_activities.c.end_time > start_time,
        )

        result = await self.db.execute(
            select(consultations)
            .where(
                consultations.c.organization_id == self.organization_id,
                consultations.c.active.is_(True),
                consultations.c.id.not_in(busy_by_appointment),
                consultations.c.id.not_in(busy_by_activity),
            )
            .order_by(consultations.c.name)
        )
        return [
            ConsultationResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]

    async def _busy_intervals(self, professional_id: UUID, day: date) -> list[tuple[int, int]]:
        appointment_rows = await self.db.execute(
            select(appointments.c.start_time, appointments.c.end_time).where(
                appointments.c.organization_id == self.organization_id,
                appointments.c.professional_id == professional_id,
                appointments.c.date == day,
                appointments.c.status.in_(BLOCKING_APPOINTMENT_STATUSES),
            )
        )
        activity_rows = await self.db.execute(
            select(group_activities.c.start_time, group_activities.c.end_time).where(
                group_activities.c.organization_id == self.organization_id,
                group_activities.c.professional_id == professional_id,
                group_activities.c.date == day,
                group_activities.c.status == "active",
            )
        )
        return [
            (to_seconds(row.start_time), to_seconds(row.end_time))
            for row in [*appointment_rows.all(), *activity_rows.all()]
        ]

    async def available_slots(
        self, professional_id: UUID, service_id: int, day: date
    ) -> AvailableSlotsResponse:
        """
        Bookable slots of ``service_id`` length for a professional on ``day``.

        Each active schedule of the weekday is walked from its start. A slot
        hitting a break resumes at the break's end, one hitting a booking
        resumes at the booking's end. Approved vacations yield no slots.
        """
        service = await CatalogService(self.db, self.organization_id).get_service(service_id)
        duration = int(service["duration"])
        if duration <= 0:
            raise AppException("Service has an invalid duration", status_code=500)

        response = AvailableSlotsResponse(
            date=day,
            professional_id=professional_id,
            service_id=service_id,
            duration=duration,
            slots=[],
        )

        schedule_service = ScheduleService(self.db, self.organization_id)
        if await schedule_service.is_on_vacation(professional_id, day):
            return response

        schedules = await schedule_service.get_day_schedules(professional_id, day)
        if not schedules:
            return response

        busy = await self._busy_intervals(professional_id, day)
        step = duration * 60

        for schedule in schedules:
            breaks = [
                (to_seconds(b["start_time"]), to_seconds(b["end_time"]))
                for b in schedule["breaks"]
            ]
            cursor = to_seconds(schedule["start_time"])
            schedule_end = to_seconds(schedule["end_time"])

            while cursor + step <= schedule_end:
                slot_end = cursor + step

                hit_break = [end for start, end in breaks if overlaps(cursor, slot_end, start, end)]
                if hit_break:
                    cursor = max(hit_break)
                    continue

                hit_busy = [end for start, end in busy if overlaps(cursor, slot_end, start, end)]
                if hit_busy:
                    cursor = max(hit_busy)
                    continue

                response.slots.append(
                    TimeSlot(start_time=from_seconds(cursor), end_time=from_seconds(slot_end))
                )
                cursor = slot_end

        return response
