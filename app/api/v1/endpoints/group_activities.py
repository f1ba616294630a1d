"""Group activity endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentOrganizationId, CurrentUser, DatabaseSession
from app.schemas.group_activities import (
    EnrollmentRequest,
    GroupActivityCreate,
    GroupActivityDetail,
    GroupActivityResponse,
    GroupActivityStats,
    GroupActivityStatus,
    GroupActivityUpdate,
    ParticipantResponse,
    ParticipantStatusUpdate,
)
from app.services.group_activity_service import GroupActivityService

router = APIRouter(prefix="/group-activities", tags=["Group activities"])


@router.post(
    "",
    response_model=GroupActivityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create group activity",
)
async def create_activity(
    data: GroupActivityCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> GroupActivityResponse:
    """
    Schedule a class with limited places.

    The professional and room must be free, like for an appointment.
    """
    return await GroupActivityService(db, organization_id).create_activity(
        current_user["id"], data
    )


@router.get("", response_model=list[GroupActivityResponse], summary="List group activities")
async def list_activities(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    professional_id: UUID | None = Query(None),
    status_filter: GroupActivityStatus | None = Query(None, alias="status"),
) -> list[GroupActivityResponse]:
    """Activities in a date range ordered chronologically."""
    return await GroupActivityService(db, organization_id).list_activities(
        date_from, date_to, professional_id, status_filter
    )


@router.get("/{activity_id}", response_model=GroupActivityDetail, summary="Get group activity")
async def get_activity(
    activity_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> GroupActivityDetail:
    """Activity with its participants."""
    return await GroupActivityService(db, organization_id).get_activity(activity_id)


@router.put(
    "/{activity_id}", response_model=GroupActivityResponse, summary="Update group activity"
)
async def update_activity(
    activity_id: UUID,
    data: GroupActivityUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> GroupActivityResponse:
    """Edit an activity; capacity cannot drop below the enrolled count."""
    return await GroupActivityService(db, organization_id).update_activity(activity_id, data)


@router.post(
    "/{activity_id}/cancel",
    response_model=GroupActivityResponse,
    summary="Cancel group activity",
)
async def cancel_activity(
    activity_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> GroupActivityResponse:
    """Cancel an activity."""
    return await GroupActivityService(db, organization_id).cancel_activity(activity_id)


@router.post(
    "/{activity_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll client",
)
async def enroll_client(
    activity_id: UUID,
    data: EnrollmentRequest,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ParticipantResponse:
    """
    Enroll a client in an activity.

    Args:
        activity_id: Activity ID
        data: Client and notes
        organization_id: Caller's organization
        db: Database session

    Returns:
        Created participant

    Raises:
        ConflictException: If the activity is full or the client is already enrolled
    """
    return await GroupActivityService(db, organization_id).enroll_client(
        activity_id, data.client_id, data.notes
    )


@router.get(
    "/{activity_id}/participants",
    response_model=list[ParticipantResponse],
    summary="List participants",
)
async def list_participants(
    activity_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> list[ParticipantResponse]:
    """Participants of an activity."""
    service = GroupActivityService(db, organization_id)
    await service.get_activity(activity_id)
    return await service.list_participants(activity_id)


@router.patch(
    "/{activity_id}/participants/{participant_id}",
    response_model=ParticipantResponse,
    summary="Update participant status",
)
async def update_participant_status(
    activity_id: UUID,
    participant_id: UUID,
    data: ParticipantStatusUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> ParticipantResponse:
    """Mark attendance, no-show or cancellation; the place count follows."""
    return await GroupActivityService(db, organization_id).update_participant_status(
        activity_id, participant_id, data.status
    )


@router.get(
    "/{activity_id}/stats", response_model=GroupActivityStats, summary="Activity statistics"
)
async def get_stats(
    activity_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> GroupActivityStats:
    """Attendance figures."""
    return await GroupActivityService(db, organization_id).get_stats(activity_id)
