"""Appointment and availability endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import (
    CurrentOrganizationId,
    CurrentUser,
    DatabaseSession,
    WhatsAppClientFactory,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentCreateResponse,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    AvailabilityCheck,
    AvailabilityResult,
    FreeConsultationsQuery,
    RecurrencePreviewRequest,
    RecurrencePreviewResponse,
    ReminderResponse,
)
from app.schemas.catalog import ConsultationResponse
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService
from app.services.whatsapp_service import WhatsAppService

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AppointmentCreateResponse:
    """
    Book an appointment, or a recurring series when ``recurrence`` is set.

    Args:
        data: Appointment creation data
        current_user: Authenticated staff member
        organization_id: Caller's organization
        db: Database session

    Returns:
        Created appointments, skipped dates and the recurrence description

    Raises:
        ConflictException: If the professional or room is busy on the first date
    """
    service = AppointmentService(db, organization_id)
    return await service.create_appointment(current_user["id"], data, date.today())


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    professional_id: UUID | None = Query(None),
    consultation_id: UUID | None = Query(None),
    client_id: int | None = Query(None),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=500),
) -> AppointmentListResponse:
    """
    List appointments of the organization with filtering.

    Args:
        organization_id: Caller's organization
        db: Database session
        date_from: First day included
        date_to: Last day included
        professional_id: Filter by professional
        consultation_id: Filter by room
        client_id: Filter by client
        status_filter: Filter by status
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    service = AppointmentService(db, organization_id)
    return await service.list_appointments(
        date_from=date_from,
        date_to=date_to,
        professional_id=professional_id,
        consultation_id=consultation_id,
        client_id=client_id,
        status=status_filter,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/availability",
    response_model=AvailabilityResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check professional and room availability",
)
async def check_availability(
    data: AvailabilityCheck,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AvailabilityResult:
    """
    Conflicts of a slot with appointments and group activities.

    Cancelled appointments and inactive activities never conflict; the
    excluded IDs let an edit ignore the booking being moved.
    """
    return await AvailabilityService(db, organization_id).check_availability(
        data.date,
        data.start_time,
        data.end_time,
        data.professional_id,
        data.consultation_id,
        exclude_appointment_id=data.exclude_appointment_id,
        exclude_group_activity_id=data.exclude_group_activity_id,
    )


@router.post(
    "/free-consultations",
    response_model=list[ConsultationResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Rooms free in a time window",
)
async def free_consultations(
    data: FreeConsultationsQuery,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> list[ConsultationResponse]:
    """Active rooms without overlapping bookings."""
    return await AvailabilityService(db, organization_id).free_consultations(
        data.date, data.start_time, data.end_time
    )


@router.post(
    "/recurrence/preview",
    response_model=RecurrencePreviewResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Preview recurring dates",
)
async def preview_recurrence(
    data: RecurrencePreviewRequest,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> RecurrencePreviewResponse:
    """Dates a series would produce and which of them are already taken."""
    return await AppointmentService(db, organization_id).preview_recurrence(data, date.today())


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await AppointmentService(db, organization_id).get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Update an appointment.

    Moving it to another slot, professional or room re-runs the conflict
    check, ignoring the appointment itself.
    """
    return await AppointmentService(db, organization_id).update_appointment(appointment_id, data)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Change the status of an appointment."""
    service = AppointmentService(db, organization_id)
    return await service.update_appointment_status(appointment_id, data.status)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Cancel an appointment; its slot becomes free again."""
    return await AppointmentService(db, organization_id).cancel_appointment(appointment_id)


@router.post(
    "/{appointment_id}/reminder",
    response_model=ReminderResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Send WhatsApp reminder",
)
async def send_reminder(
    appointment_id: UUID,
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    client_factory: WhatsAppClientFactory,
) -> ReminderResponse:
    """Send the reminder template to the appointment's client."""
    service = WhatsAppService(db, organization_id, client_factory)
    phone, template = await service.send_appointment_reminder(appointment_id)
    return ReminderResponse(sent=True, to=phone, template=template)
