"""Organization (tenant) service."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.organizations import organizations
from app.schemas.organizations import OrganizationUpdate


class OrganizationService:
    """Read and update the caller's organization."""

    # 10 minutes
    ORGANIZATION_CACHE_TTL = 600

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def cache_key(organization_id: int) -> str:
        """Cache key for an organization row."""
        return f"org:{organization_id}"

    def invalidate(self, organization_id: int) -> None:
        """Drop the cached row after a write."""
        if self.cache:
            self.cache.delete(self.cache_key(organization_id))

    async def get_organization(self, db: AsyncSession, organization_id: int) -> dict:
        """Organization row, cached."""
        if self.cache:
            cached = self.cache.get_json(self.cache_key(organization_id))
            if cached:
                return cached

        result = await db.execute(
            select(organizations).where(organizations.c.id == organization_id)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Organization not found")

        organization = dict(row)
        if self.cache:
            self.cache.set_json(
                self.cache_key(organization_id), organization, ttl=self.ORGANIZATION_CACHE_TTL
            )
        return organization

    async def get_organization_fresh(self, db: AsyncSession, organization_id: int) -> dict:
        """Organization row read from the database, bypassing the cache."""
        result = await db.execute(
            select(organizations).where(organizations.c.id == organization_id)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Organization not found")
        return dict(row)

    async def update_organization(
        self, db: AsyncSession, organization_id: int, data: OrganizationUpdate
    ) -> dict:
        """Update fiscal/contact details."""
        values = data.model_dump(exclude_unset=True)
        if not values:
            return await self.get_organization_fresh(db, organization_id)

        result = await db.execute(
            update(organizations)
            .where(organizations.c.id == organization_id)
            .values(**values)
            .returning(organizations)
        )
        await db.commit()
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Organization not found")

        self.invalidate(organization_id)
        return dict(row)

    async def update_fields(self, db: AsyncSession, organization_id: int, **values) -> None:
        """Write provider-mirrored fields (subscription, card) and commit."""
        await db.execute(
            update(organizations).where(organizations.c.id == organization_id).values(**values)
        )
        await db.commit()
        self.invalidate(organization_id)
