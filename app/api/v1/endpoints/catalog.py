"""Service catalogue and consultation room endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AdminUser, CacheManagerDep, CurrentOrganizationId, DatabaseSession
from app.schemas.catalog import (
    ConsultationCreate,
    ConsultationResponse,
    ConsultationUpdate,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from app.services.catalog_service import CatalogService

router = APIRouter(tags=["Catalog"])


@router.get("/services", response_model=list[ServiceResponse], summary="List services")
async def list_services(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    include_inactive: bool = Query(False),
) -> list[ServiceResponse]:
    """Services offered by the organization."""
    return await CatalogService(db, organization_id).list_services(include_inactive)


@router.post(
    "/services",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create service",
)
async def create_service(
    data: ServiceCreate,
    admin: AdminUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> ServiceResponse:
    """Add a service to the catalogue (admins only)."""
    return await CatalogService(db, admin["organization_id"], cache_manager).create_service(data)


@router.put("/services/{service_id}", response_model=ServiceResponse, summary="Update service")
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    admin: AdminUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> ServiceResponse:
    """Update a service; set ``active`` to false to retire it."""
    service = CatalogService(db, admin["organization_id"], cache_manager)
    return await service.update_service(service_id, data)


@router.get(
    "/consultations", response_model=list[ConsultationResponse], summary="List consultations"
)
async def list_consultations(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    include_inactive: bool = Query(False),
) -> list[ConsultationResponse]:
    """Rooms of the organization."""
    return await CatalogService(db, organization_id).list_consultations(include_inactive)


@router.post(
    "/consultations",
    response_model=ConsultationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create consultation",
)
async def create_consultation(
    data: ConsultationCreate,
    admin: AdminUser,
    db: DatabaseSession,
) -> ConsultationResponse:
    """Add a room (admins only)."""
    return await CatalogService(db, admin["organization_id"]).create_consultation(data)


@router.put(
    "/consultations/{consultation_id}",
    response_model=ConsultationResponse,
    summary="Update consultation",
)
async def update_consultation(
    consultation_id: UUID,
    data: ConsultationUpdate,
    admin: AdminUser,
    db: DatabaseSession,
) -> ConsultationResponse:
    """Update a room."""
    return await CatalogService(db, admin["organization_id"]).update_consultation(
        consultation_id, data
    )
