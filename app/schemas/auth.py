"""Authentication schemas."""

from pydantic import BaseModel, Field

from app.schemas.users import UserResponse


class Token(BaseModel):
    """JWT token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    """Token refresh / logout request."""

    refresh_token: str


class FirebaseAuthRequest(BaseModel):
    """Firebase ID token authentication request."""

    id_token: str = Field(..., description="Firebase ID token obtained by the web app")


class LoginResponse(Token):
    """Login response with tokens and the staff member's profile."""

    user: UserResponse
