"""FastAPI dependencies."""

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

import redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenException, RateLimitException
from app.core.redis_client import CacheManager, RateLimiter, get_redis_client
from app.core.security import decode_access_token
from app.database import get_db
from app.services.ai_client import AIClient, get_ai_client
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway
from app.services.user_service import UserService
from app.services.whatsapp_client import AisensyClient

# Security
security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Extract and validate user ID from JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)

    user_id_str = payload.get("sub") if payload else None
    if not isinstance(user_id_str, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return UUID(user_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_cache_manager(
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> CacheManager:
    """Cache manager bound to the shared Redis client."""
    return CacheManager(redis_client)


CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: CacheManagerDep,
) -> dict:
    """
    Get the authenticated staff member.

    Raises:
        HTTPException: If user not found or inactive
    """
    user = await UserService(cache).get_user_by_id(db, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


async def get_current_organization_id(
    current_user: Annotated[dict, Depends(get_current_user)],
) -> int:
    """Organization every query of the request is scoped to."""
    organization_id = current_user.get("organization_id")
    if organization_id is None:
        raise ForbiddenException("User does not belong to an organization")
    return int(organization_id)


async def require_admin(
    current_user: Annotated[dict, Depends(get_current_user)],
) -> dict:
    """Only organization admins may continue."""
    if current_user["role"] != "admin":
        raise ForbiddenException("Administrator role required")
    return current_user


def get_client_ip(request: Request) -> str | None:
    """Caller IP, honouring the proxy headers set by the load balancer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


async def public_rate_limit(
    request: Request,
    redis_client: Annotated[redis.Redis, Depends(get_redis_client)],
) -> None:
    """Throttle unauthenticated routes per client IP."""
    key = f"ratelimit:public:{get_client_ip(request) or 'unknown'}"
    if not RateLimiter(redis_client).check_rate_limit(key, settings.rate_limit_per_minute):
        raise RateLimitException("Too many requests, try again in a minute")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
CurrentOrganizationId = Annotated[int, Depends(get_current_organization_id)]
AdminUser = Annotated[dict, Depends(require_admin)]
PublicRateLimit = Depends(public_rate_limit)


def get_whatsapp_client_factory() -> Callable[[str], AisensyClient]:
    """Builds provider clients from an organization's API token."""
    return AisensyClient


WhatsAppClientFactory = Annotated[Callable[[str], AisensyClient], Depends(get_whatsapp_client_factory)]
StripeGatewayDep = Annotated[StripeGateway, Depends(get_stripe_gateway)]
AIClientDep = Annotated[AIClient, Depends(get_ai_client)]
