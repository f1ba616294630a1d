"""Organization endpoints."""

from fastapi import APIRouter, status

from app.dependencies import AdminUser, CacheManagerDep, CurrentOrganizationId, DatabaseSession
from app.schemas.organizations import OrganizationResponse, OrganizationUpdate
from app.services.organization_service import OrganizationService

router = APIRouter(prefix="/organizations", tags=["Organizations"])


@router.get(
    "/me",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Current organization",
)
async def get_my_organization(
    organization_id: CurrentOrganizationId,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
) -> OrganizationResponse:
    """
    Organization of the authenticated staff member.

    Served from cache for ten minutes after the first read.
    """
    organization = await OrganizationService(cache_manager).get_organization(db, organization_id)
    return OrganizationResponse.model_validate(organization)


@router.put(
    "/me",
    response_model=OrganizationResponse,
    status_code=status.HTTP_200_OK,
    summary="Update organization details",
)
async def update_my_organization(
    data: OrganizationUpdate,
    admin: AdminUser,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
) -> OrganizationResponse:
    """
    Update fiscal and contact details (admins only).

    Args:
        data: Fields to change
        admin: Authenticated administrator
        cache_manager: Cache manager, invalidated after the write
        db: Database session

    Returns:
        Updated organization
    """
    organization = await OrganizationService(cache_manager).update_organization(
        db, admin["organization_id"], data
    )
    return OrganizationResponse.model_validate(organization)
