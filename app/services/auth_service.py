"""Staff login through Firebase and the API's own JWT pair."""

import hashlib
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenException, UnauthorizedException
from app.core.firebase import verify_firebase_token
from app.core.redis_client import CacheManager
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
)
from app.schemas.auth import Token
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


def _revocation_key(refresh_token: str) -> str:
    digest = hashlib.sha256(refresh_token.encode()).hexdigest()
    return f"revoked_refresh:{digest}"


class AuthService:
    """Exchanges Firebase identities for API tokens and manages refresh tokens."""

    def __init__(self, cache_manager: CacheManager):
        self.cache = cache_manager

    async def verify_firebase_id_token(self, id_token: str) -> dict:
        try:
            return await verify_firebase_token(id_token)
        except ValueError as e:
            raise UnauthorizedException(str(e))

    async def handle_firebase_login(
        self, firebase_token_data: dict, db: AsyncSession
    ) -> tuple[dict, Token]:
        """
        Log in a staff member who already has an account.

        Accounts are created by organization admins, so an identity with no
        matching user gets 401 and is never registered here.
        """
        firebase_uid = firebase_token_data["uid"]
        user_service = UserService(self.cache)

        user = await user_service.get_user_by_firebase_uid(db, firebase_uid)
        if not user:
            logger.warning("login_unknown_identity", firebase_uid=firebase_uid)
            raise UnauthorizedException("No account is registered for this identity")
        if not user["is_active"]:
            logger.warning("login_deactivated_account", user_id=str(user["id"]))
            raise ForbiddenException("User account is deactivated")

        await user_service.update_last_login(db, user["id"])
        logger.info(
            "user_logged_in",
            user_id=str(user["id"]),
            organization_id=user["organization_id"],
        )
        return user, self.create_tokens(str(user["id"]))

    def create_tokens(self, user_id: str) -> Token:
        claims = {"sub": user_id}
        return Token(
            access_token=create_access_token(
                data=claims,
                expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
            ),
            refresh_token=create_refresh_token(
                data=claims,
                expires_delta=timedelta(days=settings.refresh_token_expire_days),
            ),
        )

    def refresh_access_token(self, refresh_token: str) -> Token:
        """
        Trade a refresh token for a new pair.

        The presented token is revoked, so each refresh token works once.
        """
        payload = decode_refresh_token(refresh_token)
        user_id = payload.get("sub") if payload else None
        if user_id is None:
            raise UnauthorizedException("Invalid refresh token")
        if self.cache.exists(_revocation_key(refresh_token)):
            raise UnauthorizedException("Token has been revoked")

        self.revoke_token(refresh_token)
        return self.create_tokens(user_id)

    def revoke_token(self, token: str) -> None:
        """Revoke a refresh token for the rest of its lifetime."""
        self.cache.set(
            _revocation_key(token), "1", ttl=settings.refresh_token_expire_days * 86400
        )
