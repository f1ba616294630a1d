"""Work schedule, vacation and slot endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.exceptions import ForbiddenException
from app.dependencies import AdminUser, CurrentOrganizationId, CurrentUser, DatabaseSession
from app.schemas.appointments import AvailableSlotsResponse
from app.schemas.schedules import (
    VacationRequestCreate,
    VacationRequestResponse,
    VacationReview,
    VacationStatus,
    WorkScheduleCreate,
    WorkScheduleResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.schedule_service import ScheduleService

router = APIRouter(tags=["Schedules"])


@router.post(
    "/schedules",
    response_model=WorkScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create work schedule",
)
async def create_schedule(
    data: WorkScheduleCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> WorkScheduleResponse:
    """
    Add working hours for one weekday.

    Professionals manage their own schedule; admins manage everyone's.
    """
    if current_user["role"] != "admin" and data.user_id != current_user["id"]:
        raise ForbiddenException("You can only edit your own schedule")
    return await ScheduleService(db, organization_id).create_schedule(data)


@router.get(
    "/schedules", response_model=list[WorkScheduleResponse], summary="List work schedules"
)
async def list_schedules(
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    user_id: UUID | None = Query(None, description="Defaults to the current user"),
) -> list[WorkScheduleResponse]:
    """Weekly schedule of a professional."""
    return await ScheduleService(db, organization_id).list_schedules(user_id or current_user["id"])


@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete work schedule",
)
async def delete_schedule(
    schedule_id: UUID,
    admin: AdminUser,
    db: DatabaseSession,
) -> None:
    """Remove a schedule and its breaks (admins only)."""
    await ScheduleService(db, admin["organization_id"]).delete_schedule(schedule_id)


@router.post(
    "/vacations",
    response_model=VacationRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request vacation",
)
async def request_vacation(
    data: VacationRequestCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> VacationRequestResponse:
    """File a vacation request; it blocks availability once approved."""
    return await ScheduleService(db, organization_id).request_vacation(current_user["id"], data)


@router.get(
    "/vacations", response_model=list[VacationRequestResponse], summary="List vacation requests"
)
async def list_vacations(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    user_id: UUID | None = Query(None),
    status_filter: VacationStatus | None = Query(None, alias="status"),
) -> list[VacationRequestResponse]:
    """Vacation requests of the organization."""
    return await ScheduleService(db, organization_id).list_vacations(user_id, status_filter)


@router.post(
    "/vacations/{vacation_id}/review",
    response_model=VacationRequestResponse,
    summary="Approve or reject vacation",
)
async def review_vacation(
    vacation_id: UUID,
    data: VacationReview,
    admin: AdminUser,
    db: DatabaseSession,
) -> VacationRequestResponse:
    """Decide on a pending vacation request (admins only)."""
    return await ScheduleService(db, admin["organization_id"]).review_vacation(
        vacation_id, admin["id"], data.status
    )


@router.get(
    "/availability/slots",
    response_model=AvailableSlotsResponse,
    tags=["Appointments"],
    summary="Available slots",
)
async def available_slots(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    professional_id: UUID = Query(...),
    service_id: int = Query(...),
    day: date = Query(..., alias="date"),
) -> AvailableSlotsResponse:
    """Bookable slots of a service's length for a professional on a date."""
    return await AvailabilityService(db, organization_id).available_slots(
        professional_id, service_id, day
    )
