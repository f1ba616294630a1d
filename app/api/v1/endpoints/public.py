"""Unauthenticated booking and consent signing endpoints."""

from datetime import UTC, date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from app.dependencies import CacheManagerDep, DatabaseSession, PublicRateLimit, get_client_ip
from app.schemas.appointments import AvailableSlotsResponse
from app.schemas.catalog import ServiceResponse
from app.schemas.consents import ConsentSignRequest, PatientConsentResponse, PublicConsentView
from app.schemas.group_activities import (
    GroupActivityResponse,
    ParticipantResponse,
    PublicGroupBookingRequest,
)
from app.schemas.users import PublicProfessional
from app.services.availability_service import AvailabilityService
from app.services.catalog_service import CatalogService
from app.services.consent_service import PublicConsentService
from app.services.group_activity_service import GroupActivityService
from app.services.organization_service import OrganizationService
from app.services.user_service import UserService

router = APIRouter(prefix="/public", tags=["Public"], dependencies=[PublicRateLimit])


async def _ensure_organization(db, cache_manager, organization_id: int) -> None:
    await OrganizationService(cache_manager).get_organization(db, organization_id)


@router.get("/consents/{token}", response_model=PublicConsentView, summary="View consent")
async def view_consent(token: str, db: DatabaseSession) -> PublicConsentView:
    """Document behind a signing link; 410 once used or expired."""
    return await PublicConsentService(db).view(token, datetime.now(UTC))


@router.post(
    "/consents/{token}/sign",
    response_model=PatientConsentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign consent",
)
async def sign_consent(
    token: str,
    data: ConsentSignRequest,
    request: Request,
    db: DatabaseSession,
) -> PatientConsentResponse:
    """
    Sign a consent document.

    Args:
        token: Signing link token
        data: Patient identity, signature image and acceptances
        request: Incoming request, for the signer's IP and user agent
        db: Database session

    Returns:
        Stored consent

    Raises:
        GoneException: Link already used or expired
        ValidationException: Required acceptances missing
    """
    return await PublicConsentService(db).sign(
        token,
        data,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        now=datetime.now(UTC),
    )


@router.get(
    "/{organization_id}/professionals",
    response_model=list[PublicProfessional],
    summary="Bookable professionals",
)
async def public_professionals(
    organization_id: int, db: DatabaseSession, cache_manager: CacheManagerDep
) -> list[PublicProfessional]:
    """Active professionals of a clinic."""
    await _ensure_organization(db, cache_manager, organization_id)
    professionals = await UserService(cache_manager).list_public_professionals(db, organization_id)
    return [PublicProfessional.model_validate(item) for item in professionals]


@router.get(
    "/{organization_id}/services",
    response_model=list[ServiceResponse],
    summary="Bookable services",
)
async def public_services(
    organization_id: int, db: DatabaseSession, cache_manager: CacheManagerDep
) -> list[ServiceResponse]:
    """Active services of a clinic."""
    await _ensure_organization(db, cache_manager, organization_id)
    return await CatalogService(db, organization_id, cache_manager).list_public_services()


@router.get(
    "/{organization_id}/available-slots",
    response_model=AvailableSlotsResponse,
    summary="Available slots",
)
async def public_available_slots(
    organization_id: int,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    professional_id: UUID = Query(...),
    service_id: int = Query(...),
    day: date = Query(..., alias="date"),
) -> AvailableSlotsResponse:
    """Free slots shown on the public booking page."""
    await _ensure_organization(db, cache_manager, organization_id)
    return await AvailabilityService(db, organization_id).available_slots(
        professional_id, service_id, day
    )


@router.get(
    "/{organization_id}/group-activities",
    response_model=list[GroupActivityResponse],
    summary="Upcoming group activities",
)
async def public_group_activities(
    organization_id: int, db: DatabaseSession, cache_manager: CacheManagerDep
) -> list[GroupActivityResponse]:
    """Upcoming active activities that still have free spots."""
    await _ensure_organization(db, cache_manager, organization_id)
    return await GroupActivityService(db, organization_id).list_upcoming_with_spots(date.today())


@router.post(
    "/{organization_id}/group-activities/{activity_id}/book",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a group activity",
)
async def public_book_group_activity(
    organization_id: int,
    activity_id: UUID,
    data: PublicGroupBookingRequest,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> ParticipantResponse:
    """
    Enroll in a group activity from the booking page.

    The client is matched by phone number or created. Returns 409 when
    the activity is full or the client is already enrolled.
    """
    await _ensure_organization(db, cache_manager, organization_id)
    return await GroupActivityService(db, organization_id).public_booking(activity_id, data)
