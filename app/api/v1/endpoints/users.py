"""Staff member endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from app.dependencies import (
    AdminUser,
    CacheManagerDep,
    CurrentOrganizationId,
    CurrentUser,
    DatabaseSession,
)
from app.schemas.users import UserCreate, UserResponse, UserUpdate
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    organization_id: CurrentOrganizationId,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
):
    """Members of the caller's organization."""
    users = await UserService(cache_manager).list_organization_users(db, organization_id)
    return [UserResponse.model_validate(user) for user in users]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    admin: AdminUser,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
):
    """
    Create a staff account in the admin's organization.

    The account is created in Firebase Auth first; if the database insert
    fails the Firebase account is removed again.
    """
    user = await UserService(cache_manager).create_staff_user(
        db, admin["organization_id"], user_data
    )
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(current_user: CurrentUser):
    """Get current user's profile."""
    return UserResponse.model_validate(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    user_data: UserUpdate,
    current_user: CurrentUser,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
):
    """Update current user's profile."""
    user = await UserService(cache_manager).update_user(db, current_user["id"], user_data)
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    organization_id: CurrentOrganizationId,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
):
    """Get an active member of the caller's organization."""
    user = await UserService(cache_manager).get_organization_member(db, organization_id, user_id)
    return UserResponse.model_validate(user)
