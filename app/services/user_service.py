"""User service for business logic."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.core.firebase import create_firebase_user, delete_firebase_user
from app.core.redis_client import CacheManager
from app.models.users import users
from app.schemas.users import UserCreate, UserUpdate

logger = structlog.get_logger(__name__)


class UserService:
    """Service for staff member operations."""

    # Cache TTL in seconds (30 minutes for user profiles)
    USER_CACHE_TTL = 1800
    PUBLIC_LIST_CACHE_TTL = 300

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _get_user_cache_key(user_id: UUID) -> str:
        """Generate cache key for user."""
        return f"user:{user_id}"

    @staticmethod
    def _from_cache(data: dict) -> dict:
        # JSON round trip turns UUIDs into strings
        data["id"] = UUID(str(data["id"]))
        return data

    def _invalidate(self, user_id: UUID) -> None:
        if self.cache:
            self.cache.delete(self._get_user_cache_key(user_id))

    @staticmethod
    def public_professionals_key(organization_id: int) -> str:
        """Cache key of the professional list shown on the booking page."""
        return f"public:{organization_id}:professionals"

    async def get_user_by_id(self, db: AsyncSession, user_id: UUID) -> dict | None:
        """Get user by internal ID with caching."""
        if self.cache:
            cached_user = self.cache.get_json(self._get_user_cache_key(user_id))
            if cached_user:
                return self._from_cache(cached_user)

        result = await db.execute(select(users).where(users.c.id == user_id))
        user = result.mappings().first()

        if not user:
            return None

        user_dict = dict(user)

        if self.cache:
            self.cache.set_json(
                self._get_user_cache_key(user_id), user_dict, ttl=self.USER_CACHE_TTL
            )

        return user_dict

    async def get_user_by_firebase_uid(self, db: AsyncSession, firebase_uid: str) -> dict | None:
        """Get user by Firebase UID."""
        result = await db.execute(select(users).where(users.c.firebase_uid == firebase_uid))
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_organization_member(
        self, db: AsyncSession, organization_id: int, user_id: UUID
    ) -> dict:
        """Active member of the organization, or 404."""
        result = await db.execute(
            select(users).where(
                users.c.id == user_id,
                users.c.organization_id == organization_id,
                users.c.is_active.is_(True),
            )
        )
        user = result.mappings().first()
        if not user:
            raise NotFoundException("Professional not found in this organization")
        return dict(user)

    async def list_organization_users(self, db: AsyncSession, organization_id: int) -> list[dict]:
        """Members of an organization ordered by name."""
        result = await db.execute(
            select(users)
            .where(users.c.organization_id == organization_id)
            .order_by(users.c.name, users.c.email)
        )
        return [dict(row) for row in result.mappings().all()]

    async def create_staff_user(
        self, db: AsyncSession, organization_id: int, data: UserCreate
    ) -> dict:
        """
        Create a staff account in Firebase Auth and in the database.

        The Firebase account is created first. If the database insert fails
        the Firebase account is deleted again and the error propagates.
        """
        existing = await db.execute(select(users.c.id).where(users.c.email == data.email))
        if existing.first():
            raise ConflictException("A user with this email already exists")

        firebase_uid = await create_firebase_user(data.email, data.password, data.name)

        try:
            result = await db.execute(
                users.insert()
                .values(
                    firebase_uid=firebase_uid,
                    email=data.email,
                    name=data.name,
                    phone=data.phone,
                    organization_id=organization_id,
                    role=data.role.value,
                    color=data.color,
                )
                .returning(users)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error("staff_user_insert_failed", email=data.email, firebase_uid=firebase_uid)
            await delete_firebase_user(firebase_uid)
            raise

        user = dict(result.mappings().one())
        if self.cache:
            self.cache.delete(self.public_professionals_key(organization_id))
        logger.info("staff_user_created", user_id=str(user["id"]), organization_id=organization_id)
        return user

    async def list_public_professionals(self, db: AsyncSession, organization_id: int) -> list[dict]:
        """Active professionals offered on the public booking page, cached."""
        key = self.public_professionals_key(organization_id)
        if self.cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                return cached

        result = await db.execute(
            select(users.c.id, users.c.name, users.c.color)
            .where(users.c.organization_id == organization_id, users.c.is_active.is_(True))
            .order_by(users.c.name)
        )
        professionals = [
            {"id": str(row["id"]), "name": row["name"], "color": row["color"]}
            for row in result.mappings().all()
        ]
        if self.cache:
            self.cache.set_json(key, professionals, ttl=self.PUBLIC_LIST_CACHE_TTL)
        return professionals

    async def update_user(self, db: AsyncSession, user_id: UUID, user_data: UserUpdate) -> dict:
        """Update a user profile."""
        update_data = user_data.model_dump(exclude_unset=True)
        if not update_data:
            user = await self.get_user_by_id(db, user_id)
            if not user:
                raise NotFoundException("User not found")
            return user

        result = await db.execute(
            update(users).where(users.c.id == user_id).values(**update_data).returning(users)
        )
        await db.commit()
        user = result.mappings().first()

        if not user:
            raise NotFoundException("User not found")

        self._invalidate(user_id)
        if self.cache and user["organization_id"] is not None:
            self.cache.delete(self.public_professionals_key(user["organization_id"]))
        return dict(user)

    async def update_last_login(self, db: AsyncSession, user_id: UUID) -> None:
        """Update user's last login timestamp."""
        await db.execute(
            update(users).where(users.c.id == user_id).values(last_login_at=datetime.now(UTC))
        )
        await db.commit()
        self._invalidate(user_id)
