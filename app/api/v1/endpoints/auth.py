"""Authentication endpoints."""

from fastapi import APIRouter, status

from app.dependencies import CacheManagerDep, CurrentUser, DatabaseSession
from app.schemas.auth import FirebaseAuthRequest, LoginResponse, Token, TokenRefresh
from app.schemas.users import UserResponse
from app.services.auth_service import AuthService

router = APIRouter()


@router.post(
    "/firebase/verify",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Firebase ID token verification",
)
async def firebase_verify(
    request: FirebaseAuthRequest,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> LoginResponse:
    """
    Verify a Firebase ID token from the web app and return JWT tokens.

    Only staff accounts created by an organization admin can log in; an
    unknown identity gets 401 and a deactivated one 403.

    Args:
        request: Firebase ID token
        db: Database session
        cache: Cache manager

    Returns:
        Access token, refresh token, and user information
    """
    auth_service = AuthService(cache)

    firebase_token_data = await auth_service.verify_firebase_id_token(request.id_token)
    user, tokens = await auth_service.handle_firebase_login(firebase_token_data, db)

    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=Token,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Refresh access token",
)
async def refresh_token(request: TokenRefresh, cache: CacheManagerDep) -> Token:
    """
    Refresh access token using refresh token.

    Args:
        request: Refresh token
        cache: Cache manager holding revoked tokens

    Returns:
        New access token and refresh token
    """
    return AuthService(cache).refresh_access_token(request.refresh_token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Authentication"],
    summary="Logout and revoke tokens",
)
async def logout(request: TokenRefresh, cache: CacheManagerDep) -> None:
    """Revoke the refresh token."""
    AuthService(cache).revoke_token(request.refresh_token)


@router.get(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Current staff member",
)
async def me(current_user: CurrentUser) -> UserResponse:
    """Profile of the authenticated staff member."""
    return UserResponse.model_validate(current_user)
