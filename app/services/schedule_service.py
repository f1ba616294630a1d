"""Work schedules and vacation requests of professionals."""

from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.models.schedules import vacation_requests, work_schedule_breaks, work_schedules
from app.schemas.schedules import (
    ScheduleBreakResponse,
    VacationRequestCreate,
    VacationRequestResponse,
    VacationStatus,
    WorkScheduleCreate,
    WorkScheduleResponse,
)
from app.services.user_service import UserService


def weekday_index(day: date) -> int:
    """Day of week with Sunday as 0, the convention schedules are stored in."""
    return (day.weekday() + 1) % 7


class ScheduleService:
    """Manage when professionals work."""

    def __init__(self, db: AsyncSession, organization_id: int):
        """Initialize service with database session and tenant."""
        self.db = db
        self.organization_id = organization_id

    async def create_schedule(self, data: WorkScheduleCreate) -> WorkScheduleResponse:
        """Add working hours (and breaks) for one weekday."""
        await UserService().get_organization_member(self.db, self.organization_id, data.user_id)

        result = await self.db.execute(
            work_schedules.insert()
            .values(
                organization_id=self.organization_id,
                user_id=data.user_id,
                day_of_week=data.day_of_week,
                start_time=data.start_time,
                end_time=data.end_time,
            )
            .returning(work_schedules)
        )
        schedule = dict(result.mappings().one())

        breaks = []
        for item in data.breaks:
            row = await self.db.execute(
                work_schedule_breaks.insert()
                .values(
                    work_schedule_id=schedule["id"],
                    start_time=item.start_time,
                    end_time=item.end_time,
                )
                .returning(work_schedule_breaks)
            )
            breaks.append(ScheduleBreakResponse.model_validate(dict(row.mappings().one())))

        await self.db.commit()
        return WorkScheduleResponse(**schedule, breaks=breaks)

    async def list_schedules(self, user_id: UUID) -> list[WorkScheduleResponse]:
        """Active schedules of a professional with their breaks."""
        result = await self.db.execute(
            select(work_schedules)
            .where(
                work_schedules.c.organization_id == self.organization_id,
                work_schedules.c.user_id == user_id,
                work_schedules.c.is_active.is_(True),
            )
            .order_by(work_schedules.c.day_of_week, work_schedules.c.start_time)
        )
        schedules = [dict(row) for row in result.mappings().all()]
        if not schedules:
            return []

        breaks_result = await self.db.execute(
            select(work_schedule_breaks)
            .where(
                work_schedule_breaks.c.work_schedule_id.in_([s["id"] for s in schedules]),
                work_schedule_breaks.c.is_active.is_(True),
            )
            .order_by(work_schedule_breaks.c.start_time)
        )
        breaks_by_schedule: dict[UUID, list[ScheduleBreakResponse]] = {}
        for row in breaks_result.mappings().all():
            breaks_by_schedule.setdefault(row["work_schedule_id"], []).append(
                ScheduleBreakResponse.model_validate(dict(row))
            )

        return [
            WorkScheduleResponse(**s, breaks=breaks_by_schedule.get(s["id"], []))
            for s in schedules
        ]

    async def delete_schedule(self, schedule_id: UUID) -> None:
        """Remove a schedule and its breaks."""
        result = await self.db.execute(
            delete(work_schedules).where(
                work_schedules.c.id == schedule_id,
                work_schedules.c.organization_id == self.organization_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundException("Work schedule not found")
        await self.db.execute(
            delete(work_schedule_breaks).where(
                work_schedule_breaks.c.work_schedule_id == schedule_id
            )
        )
        await self.db.commit()

    async def get_day_schedules(self, user_id: UUID, day: date) -> list[dict]:
        """Active schedules for the weekday of ``day``, each with an active ``breaks`` list."""
        result = await self.db.execute(
            select(work_schedules)
            .where(
                work_schedules.c.organization_id == self.organization_id,
                work_schedules.c.user_id == user_id,
                work_schedules.c.day_of_week == weekday_index(day),
                work_schedules.c.is_active.is_(True),
            )
            .order_by(work_schedules.c.start_time)
        )
        schedules = [dict(row) for row in result.mappings().all()]

        for schedule in schedules:
            breaks = await self.db.execute(
                select(work_schedule_breaks.c.start_time, work_schedule_breaks.c.end_time)
                .where(
                    work_schedule_breaks.c.work_schedule_id == schedule["id"],
                    work_schedule_breaks.c.is_active.is_(True),
                )
                .order_by(work_schedule_breaks.c.start_time)
            )
            schedule["breaks"] = [dict(row) for row in breaks.mappings().all()]

        return schedules

    async def is_on_vacation(self, user_id: UUID, day: date) -> bool:
        """True when an approved vacation covers ``day``."""
        result = await self.db.execute(
            select(vacation_requests.c.id)
            .where(
                and_(
                    vacation_requests.c.organization_id == self.organization_id,
                    vacation_requests.c.user_id == user_id,
                    vacation_requests.c.status == VacationStatus.APPROVED.value,
                    vacation_requests.c.start_date <= day,
                    vacation_requests.c.end_date >= day,
                )
            )
            .limit(1)
        )
        return result.first() is not None

    async def request_vacation(
        self, requested_by: UUID, data: VacationRequestCreate
    ) -> VacationRequestResponse:
        """File a vacation request for a professional."""
        user_id = data.user_id or requested_by
        await UserService().get_organization_member(self.db, self.organization_id, user_id)

        result = await self.db.execute(
            vacation_requests.insert()
            .values(
                organization_id=self.organization_id,
                user_id=user_id,
                start_date=data.start_date,
                end_date=data.end_date,
                reason=data.reason,
            )
            .returning(vacation_requests)
        )
        await self.db.commit()
        return VacationRequestResponse.model_validate(dict(result.mappings().one()))

    async def list_vacations(
        self, user_id: UUID | None = None, status: VacationStatus | None = None
    ) -> list[VacationRequestResponse]:
        """Vacation requests, newest first."""
        stmt = select(vacation_requests).where(
            vacation_requests.c.organization_id == self.organization_id
        )
        if user_id:
            stmt = stmt.where(vacation_requests.c.user_id == user_id)
        if status:
            stmt = stmt.where(vacation_requests.c.status == status.value)
        result = await self.db.execute(stmt.order_by(vacation_requests.c.start_date.desc()))
        return [
            VacationRequestResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]

    async def review_vacation(
        self, vacation_id: UUID, reviewer_id: UUID, status: VacationStatus
    ) -> VacationRequestResponse:
        """Approve or reject a pending request."""
        if status == VacationStatus.PENDING:
            raise ConflictException("A reviewed request cannot go back to pending")

        result = await self.db.execute(
            update(vacation_requests)
            .where(
                vacation_requests.c.id == vacation_id,
                vacation_requests.c.organization_id == self.organization_id,
                vacation_requests.c.status == VacationStatus.PENDING.value,
            )
            .values(status=status.value, reviewed_by=reviewer_id, reviewed_at=datetime.now(UTC))
            .returning(vacation_requests)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Pending vacation request not found")
        await self.db.commit()
        return VacationRequestResponse.model_validate(dict(row))
