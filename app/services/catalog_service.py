"""Services (treatments) and consultation rooms."""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.catalog import consultations, services
from app.schemas.catalog import (
    ConsultationCreate,
    ConsultationResponse,
    ConsultationUpdate,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)


class CatalogService:
    """CRUD for an organization's services and consultations."""

    # 5 minutes for the public service list
    PUBLIC_LIST_CACHE_TTL = 300

    def __init__(
        self, db: AsyncSession, organization_id: int, cache_manager: CacheManager | None = None
    ):
        """Initialize service with database session, tenant and optional cache."""
        self.db = db
        self.organization_id = organization_id
        self.cache = cache_manager

    @staticmethod
    def public_services_key(organization_id: int) -> str:
        """Cache key of the service list shown on the booking page."""
        return f"public:{organization_id}:services"

    def _invalidate_public(self) -> None:
        if self.cache:
            self.cache.delete(self.public_services_key(self.organization_id))

    async def create_service(self, data: ServiceCreate) -> ServiceResponse:
        """Add a service."""
        result = await self.db.execute(
            services.insert()
            .values(organization_id=self.organization_id, **data.model_dump())
            .returning(services)
        )
        await self.db.commit()
        self._invalidate_public()
        return ServiceResponse.model_validate(dict(result.mappings().one()))

    async def list_services(self, include_inactive: bool = False) -> list[ServiceResponse]:
        """Services ordered by name."""
        stmt = select(services).where(services.c.organization_id == self.organization_id)
        if not include_inactive:
            stmt = stmt.where(services.c.active.is_(True))
        result = await self.db.execute(stmt.order_by(services.c.name))
        return [ServiceResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def list_public_services(self) -> list[ServiceResponse]:
        """Active services for the booking page, cached."""
        key = self.public_services_key(self.organization_id)
        if self.cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                return [ServiceResponse.model_validate(item) for item in cached]

        items = await self.list_services()
        if self.cache:
            self.cache.set_json(
                key, [item.model_dump(mode="json") for item in items], ttl=self.PUBLIC_LIST_CACHE_TTL
            )
        return items

    async def get_service(self, service_id: int) -> dict:
        """Service row of this organization, or 404."""
        result = await self.db.execute(
            select(services).where(
                services.c.id == service_id,
                services.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Service not found")
        return dict(row)

    async def update_service(self, service_id: int, data: ServiceUpdate) -> ServiceResponse:
        """Partial update."""
        values = data.model_dump(exclude_unset=True)
        if not values:
            return ServiceResponse.model_validate(await self.get_service(service_id))

        result = await self.db.execute(
            update(services)
            .where(
                services.c.id == service_id,
                services.c.organization_id == self.organization_id,
            )
            .values(**values)
            .returning(services)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Service not found")
        await self.db.commit()
        self._invalidate_public()
        return ServiceResponse.model_validate(dict(row))

    async def create_consultation(self, data: ConsultationCreate) -> ConsultationResponse:
        """Add a consultation room."""
        result = await self.db.execute(
            consultations.insert()
            .values(organization_id=self.organization_id, **data.model_dump())
            .returning(consultations)
        )
        await self.db.commit()
        return ConsultationResponse.model_validate(dict(result.mappings().one()))

    async def list_consultations(
        self, include_inactive: bool = False
    ) -> list[ConsultationResponse]:
        """Consultation rooms ordered by name."""
        stmt = select(consultations).where(
            consultations.c.organization_id == self.organization_id
        )
        if not include_inactive:
            stmt = stmt.where(consultations.c.active.is_(True))
        result = await self.db.execute(stmt.order_by(consultations.c.name))
        return [
            ConsultationResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]

    async def get_consultation(self, consultation_id: UUID) -> dict:
        """Consultation row of this organization, or 404."""
        result = await self.db.execute(
            select(consultations).where(
                consultations.c.id == consultation_id,
                consultations.c.organization_id == self.organization_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Consultation not found")
        return dict(row)

    async def update_consultation(
        self, consultation_id: UUID, data: ConsultationUpdate
    ) -> ConsultationResponse:
        """Partial update."""
        values = data.model_dump(exclude_unset=True)
        if not values:
            return ConsultationResponse.model_validate(
                await self.get_consultation(consultation_id)
            )

        result = await self.db.execute(
            update(consultations)
            .where(
                consultations.c.id == consultation_id,
                consultations.c.organization_id == self.organization_id,
            )
            .values(**values)
            .returning(consultations)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Consultation not found")
        await self.db.commit()
        return ConsultationResponse.model_validate(dict(row))
