"""Tests for Firebase login and JWT handling."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import create_access_token, create_refresh_token, decode_access_token
from app.models.users import users


@pytest.fixture
def firebase(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    verify = AsyncMock()
    monkeypatch.setattr("app.services.auth_service.verify_firebase_token", verify)
    return verify


@pytest.mark.asyncio
async def test_login_with_provisioned_account(
    client: AsyncClient, firebase: AsyncMock, professional: dict
) -> None:
    firebase.return_value = {"uid": professional["firebase_uid"], "email": professional["email"]}

    response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "firebase-id"})

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["id"] == str(professional["id"])
    assert data["user"]["role"] == "professional"
    assert decode_access_token(data["access_token"])["sub"] == str(professional["id"])
    firebase.assert_awaited_once_with("firebase-id")


@pytest.mark.asyncio
async def test_unknown_identity_is_rejected(client: AsyncClient, firebase: AsyncMock) -> None:
    """Accounts are created by admins, never on first login."""
    firebase.return_value = {"uid": "not-registered", "email": "nadie@example.com"}

    response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "firebase-id"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_firebase_token(client: AsyncClient, firebase: AsyncMock) -> None:
    firebase.side_effect = ValueError("Invalid Firebase ID token: expired")

    response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "old"})

    assert response.status_code == 401
    assert "expired" in response.json()["message"]


@pytest.mark.asyncio
async def test_deactivated_account(
    client: AsyncClient, firebase: AsyncMock, professional: dict, db_session: AsyncSession
) -> None:
    await db_session.execute(
        update(users).where(users.c.id == professional["id"]).values(is_active=False)
    )
    await db_session.commit()
    firebase.return_value = {"uid": professional["firebase_uid"]}

    response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "firebase-id"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_refresh_and_logout(client: AsyncClient, professional: dict) -> None:
    refresh_token = create_refresh_token(
        data={"sub": str(professional["id"])}, expires_delta=timedelta(days=1)
    )

    refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]

    logout = await client.post("/api/v1/auth/logout", json={"refresh_token": refresh_token})
    assert logout.status_code == 204

    revoked = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert revoked.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_works_once(client: AsyncClient, professional: dict) -> None:
    refresh_token = create_refresh_token(
        data={"sub": str(professional["id"])}, expires_delta=timedelta(days=1)
    )

    first = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    replayed = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    rotated = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": first.json()["refresh_token"]}
    )

    assert first.status_code == 200
    assert replayed.status_code == 401
    assert rotated.status_code == 200


@pytest.mark.asyncio
async def test_access_token_cannot_refresh(client: AsyncClient, professional: dict) -> None:
    access_token = create_access_token(
        data={"sub": str(professional["id"])}, expires_delta=timedelta(minutes=5)
    )

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me(client: AsyncClient, professional_headers: dict, professional: dict) -> None:
    response = await client.get("/api/v1/auth/me", headers=professional_headers)

    assert response.status_code == 200
    assert response.json()["email"] == professional["email"]


@pytest.mark.asyncio
async def test_invalid_bearer_token(client: AsyncClient) -> None:
    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401
