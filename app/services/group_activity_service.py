"""Group activities and participant enrollment."""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.models.clients import clients
from app.models.group_activities import group_activities, group_activity_participants
from app.schemas.group_activities import (
    GroupActivityCreate,
    GroupActivityDetail,
    GroupActivityResponse,
    GroupActivityStats,
    GroupActivityStatus,
    GroupActivityUpdate,
    ParticipantResponse,
    ParticipantStatus,
    PublicGroupBookingRequest,
)
from app.services.availability_service import AvailabilityService
from app.services.catalog_service import CatalogService
from app.services.client_service import ClientService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


class GroupActivityService:
    """Schedule group sessions and enroll clients into them."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id
        self.availability = AvailabilityService(db, organization_id)

    async def _get_row(self, activity_id: UUID, lock: bool = False) -> dict:
        stmt = select(group_activities).where(
            group_activities.c.id == activity_id,
            group_activities.c.organization_id == self.organization_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).mappings().first()
        if not row:
            raise NotFoundException("Group activity not found")
        return dict(row)

    async def _ensure_free(
        self,
        day: date,
        start,
        end,
        professional_id: UUID,
        consultation_id: UUID | None,
        exclude_id: UUID | None = None,
    ) -> None:
        await self.availability.lock_resources(professional_id, consultation_id)
        check = await self.availability.check_availability(
            day,
            start,
            end,
            professional_id,
            consultation_id,
            exclude_group_activity_id=exclude_id,
        )
        if not check.available:
            raise ConflictException("The professional or consultation is already booked at this time")

    async def create_activity(self, created_by: UUID, data: GroupActivityCreate) -> GroupActivityResponse:
        """Schedule a group session after checking the professional and room are free."""
        await UserService().get_organization_member(
            self.db, self.organization_id, data.professional_id
        )
        catalog = CatalogService(self.db, self.organization_id)
        if data.consultation_id:
            await catalog.get_consultation(data.consultation_id)
        if data.service_id:
            await catalog.get_service(data.service_id)

        try:
            await self._ensure_free(
                data.date, data.start_time, data.end_time, data.professional_id, data.consultation_id
            )
            result = await self.db.execute(
                group_activities.insert()
                .values(
                    organization_id=self.organization_id,
                    created_by=created_by,
                    **data.model_dump(),
                )
                .returning(group_activities)
            )
            row = result.mappings().one()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("group_activity_created", activity_id=str(row["id"]))
        return GroupActivityResponse.model_validate(dict(row))

    async def list_activities(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        professional_id: UUID | None = None,
        status: GroupActivityStatus | None = None,
    ) -> list[GroupActivityResponse]:
        """Activities in a date range ordered chronologically."""
        conditions = [group_activities.c.organization_id == self.organization_id]
        if date_from:
            conditions.append(group_activities.c.date >= date_from)
        if date_to:
            conditions.append(group_activities.c.date <= date_to)
        if professional_id:
            conditions.append(group_activities.c.professional_id == professional_id)
        if status:
            conditions.append(group_activities.c.status == status.value)

        result = await self.db.execute(
            select(group_activities)
            .where(and_(*conditions))
            .order_by(group_activities.c.date, group_activities.c.start_time)
        )
        return [
            GroupActivityResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]

    async def list_upcoming_with_spots(self, today: date) -> list[GroupActivityResponse]:
        """Active future activities that still accept participants."""
        result = await self.db.execute(
            select(group_activities)
            .where(
                group_activities.c.organization_id == self.organization_id,
                group_activities.c.status == GroupActivityStatus.ACTIVE.value,
                group_activities.c.date >= today,
                group_activities.c.current_participants < group_activities.c.max_participants,
            )
            .order_by(group_activities.c.date, group_activities.c.start_time)
        )
        return [
            GroupActivityResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]

    async def list_participants(self, activity_id: UUID) -> list[ParticipantResponse]:
        """Participants with client name and phone."""
        result = await self.db.execute(
            select(
                group_activity_participants,
                clients.c.name.label("client_name"),
                clients.c.phone.label("client_phone"),
            )
            .join(clients, clients.c.id == group_activity_participants.c.client_id)
            .where(group_activity_participants.c.group_activity_id == activity_id)
            .order_by(group_activity_participants.c.registration_date)
        )
        return [ParticipantResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def get_activity(self, activity_id: UUID) -> GroupActivityDetail:
        """Activity with its participants."""
        row = await self._get_row(activity_id)
        participants = await self.list_participants(activity_id)
        return GroupActivityDetail(**row, participants=participants)

    async def update_activity(
        self, activity_id: UUID, data: GroupActivityUpdate
    ) -> GroupActivityResponse:
        """Edit an activity; moving it re-runs the conflict check."""
        values = data.model_dump(exclude_unset=True)
        if "status" in values:
            values["status"] = data.status.value
        if not values:
            return GroupActivityResponse.model_validate(await self._get_row(activity_id))

        try:
            current = await self._get_row(activity_id, lock=True)
            merged = {**current, **values}

            if merged["end_time"] <= merged["start_time"]:
                raise ValidationException("End time must be after start time")
            if merged["max_participants"] < current["current_participants"]:
                raise ConflictException("Capacity cannot be lower than the enrolled participants")
            if values.get("professional_id"):
                await UserService().get_organization_member(
                    self.db, self.organization_id, values["professional_id"]
                )
            if values.get("consultation_id"):
                await CatalogService(self.db, self.organization_id).get_consultation(
                    values["consultation_id"]
                )

            slot_fields = {"date", "start_time", "end_time", "professional_id", "consultation_id"}
            if slot_fields & values.keys() and merged["status"] == GroupActivityStatus.ACTIVE.value:
                await self._ensure_free(
                    merged["date"],
                    merged["start_time"],
                    merged["end_time"],
                    merged["professional_id"],
                    merged["consultation_id"],
                    exclude_id=activity_id,
                )

            result = await self.db.execute(
                update(group_activities)
                .where(group_activities.c.id == activity_id)
                .values(**values)
                .returning(group_activities)
            )
            row = result.mappings().one()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return GroupActivityResponse.model_validate(dict(row))

    async def cancel_activity(self, activity_id: UUID) -> GroupActivityResponse:
        """Cancel an activity; it stops blocking the professional and room."""
        await self._get_row(activity_id)
        result = await self.db.execute(
            update(group_activities)
            .where(group_activities.c.id == activity_id)
            .values(status=GroupActivityStatus.CANCELLED.value)
            .returning(group_activities)
        )
        row = result.mappings().one()
        await self.db.commit()
        logger.info("group_activity_cancelled", activity_id=str(activity_id))
        return GroupActivityResponse.model_validate(dict(row))

    async def _enroll_locked(self, activity_id: UUID, client_id: int, notes: str | None) -> dict:
        """
        Capacity check, duplicate check, insert and counter increment.

        Must run inside a transaction; the activity row is locked first so
        concurrent enrollments are serialized on it.
        """
        activity = await self._get_row(activity_id, lock=True)

        if activity["status"] != GroupActivityStatus.ACTIVE.value:
            raise NotFoundException("Group activity not found or not active")

        if activity["current_participants"] >= activity["max_participants"]:
            raise ConflictException("The activity is full")

        existing = await self.db.execute(
            select(group_activity_participants.c.id).where(
                group_activity_participants.c.group_activity_id == activity_id,
                group_activity_participants.c.client_id == client_id,
                group_activity_participants.c.status != ParticipantStatus.CANCELLED.value,
            )
        )
        if existing.first():
            raise ConflictException("The client is already enrolled in this activity")

        result = await self.db.execute(
            group_activity_participants.insert()
            .values(
                group_activity_id=activity_id,
                client_id=client_id,
                status=ParticipantStatus.REGISTERED.value,
                notes=notes,
            )
            .returning(group_activity_participants)
        )
        participant = dict(result.mappings().one())

        await self.db.execute(
            update(group_activities)
            .where(group_activities.c.id == activity_id)
            .values(current_participants=group_activities.c.current_participants + 1)
        )
        return participant

    async def enroll_client(
        self, activity_id: UUID, client_id: int, notes: str | None = None
    ) -> ParticipantResponse:
        """Enroll an existing client of the organization."""
        client = await ClientService(self.db, self.organization_id).get_client_row(client_id)

        try:
            participant = await self._enroll_locked(activity_id, client_id, notes)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("participant_enrolled", activity_id=str(activity_id), client_id=client_id)
        return ParticipantResponse(
            **participant, client_name=client["name"], client_phone=client["phone"]
        )

    async def public_booking(
        self, activity_id: UUID, data: PublicGroupBookingRequest
    ) -> ParticipantResponse:
        """Find or create the client by phone, then enroll them, in one transaction."""
        try:
            client = await ClientService(self.db, self.organization_id).find_or_create_by_phone(
                data.name, data.phone, data.email
            )
            participant = await self._enroll_locked(activity_id, client["id"], data.notes)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "public_group_booking_created",
            activity_id=str(activity_id),
            client_id=client["id"],
        )
        return ParticipantResponse(
            **participant, client_name=client["name"], client_phone=client["phone"]
        )

    async def update_participant_status(
        self, activity_id: UUID, participant_id: UUID, status: ParticipantStatus
    ) -> ParticipantResponse:
        """
        Change a participant's status.

        Cancelling frees a spot; re-activating a cancelled participant takes
        one again and is subject to capacity.
        """
        try:
            activity = await self._get_row(activity_id, lock=True)
            result = await self.db.execute(
                select(group_activity_participants).where(
                    group_activity_participants.c.id == participant_id,
                    group_activity_participants.c.group_activity_id == activity_id,
                )
            )
            participant = result.mappings().first()
            if not participant:
                raise NotFoundException("Participant not found")

            was_cancelled = participant["status"] == ParticipantStatus.CANCELLED.value
            now_cancelled = status == ParticipantStatus.CANCELLED

            delta = 0
            if now_cancelled and not was_cancelled:
                delta = -1
            elif was_cancelled and not now_cancelled:
                if activity["current_participants"] >= activity["max_participants"]:
                    raise ConflictException("The activity is full")
                delta = 1

            updated = await self.db.execute(
                update(group_activity_participants)
                .where(group_activity_participants.c.id == participant_id)
                .values(status=status.value)
                .returning(group_activity_participants)
            )
            row = dict(updated.mappings().one())

            if delta:
                new_count = max(activity["current_participants"] + delta, 0)
                await self.db.execute(
                    update(group_activities)
                    .where(group_activities.c.id == activity_id)
                    .values(current_participants=new_count)
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        client = await ClientService(self.db, self.organization_id).get_client_row(row["client_id"])
        return ParticipantResponse(**row, client_name=client["name"], client_phone=client["phone"])

    async def get_stats(self, activity_id: UUID) -> GroupActivityStats:
        """Attendance figures of an activity."""
        activity = await self._get_row(activity_id)
        status_col = group_activity_participants.c.status
        result = await self.db.execute(
            select(
                func.count(case((status_col != "cancelled", 1))).label("registered"),
                func.count(case((status_col == "attended", 1))).label("attended"),
                func.count(case((status_col == "cancelled", 1))).label("cancelled"),
                func.count(case((status_col == "no_show", 1))).label("no_show"),
            ).where(group_activity_participants.c.group_activity_id == activity_id)
        )
        counts = result.mappings().one()
        available = max(activity["max_participants"] - activity["current_participants"], 0)

        return GroupActivityStats(
            total_registered=counts["registered"],
            total_attended=counts["attended"],
            total_cancelled=counts["cancelled"],
            total_no_show=counts["no_show"],
            available_spots=available,
            is_full=available == 0,
        )
