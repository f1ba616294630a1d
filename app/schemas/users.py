"""User schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    """Role of a staff member within an organization."""

    ADMIN = "admin"
    PROFESSIONAL = "professional"
    STAFF = "staff"


class UserCreate(BaseModel):
    """Staff account created by an organization admin."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=20)
    role: UserRole = UserRole.PROFESSIONAL
    color: str | None = Field(None, max_length=20)


class UserUpdate(BaseModel):
    """Schema for updating a user profile."""

    name: str | None = Field(None, min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=20)
    color: str | None = Field(None, max_length=20)


class UserResponse(BaseModel):
    """User schema for API responses."""

    id: UUID
    email: str
    name: str | None = None
    phone: str | None = None
    organization_id: int | None = None
    role: UserRole
    color: str | None = None
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}


class PublicProfessional(BaseModel):
    """Professional as listed on the public booking page."""

    id: UUID
    name: str | None = None
    color: str | None = None
