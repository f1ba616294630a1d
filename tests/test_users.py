"""Tests for staff accounts and the organization profile."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.users import UserCreate
from app.services.user_service import UserService


@pytest.fixture
def firebase_accounts(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "create": AsyncMock(return_value="firebase-new-uid"),
        "delete": AsyncMock(),
    }
    monkeypatch.setattr("app.services.user_service.create_firebase_user", mocks["create"])
    monkeypatch.setattr("app.services.user_service.delete_firebase_user", mocks["delete"])
    return mocks


@pytest.mark.asyncio
async def test_admin_creates_staff_account(
    client: AsyncClient, auth_headers: dict, firebase_accounts: dict, organization: dict
) -> None:
    response = await client.post(
        "/api/v1/users",
        json={
            "email": "marta@fisiocentro.es",
            "password": "s3cret-pass",
            "name": "Marta Osteo",
            "role": "professional",
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert response.json()["organization_id"] == organization["id"]
    firebase_accounts["create"].assert_awaited_once_with(
        "marta@fisiocentro.es", "s3cret-pass", "Marta Osteo"
    )

    members = await client.get("/api/v1/users", headers=auth_headers)
    assert "Marta Osteo" in [member["name"] for member in members.json()]


@pytest.mark.asyncio
async def test_only_admins_create_accounts(
    client: AsyncClient, professional_headers: dict, firebase_accounts: dict
) -> None:
    response = await client.post(
        "/api/v1/users",
        json={"email": "otra@fisiocentro.es", "password": "s3cret-pass", "name": "Otra"},
        headers=professional_headers,
    )

    assert response.status_code == 403
    firebase_accounts["create"].assert_not_awaited()


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected_before_firebase(
    client: AsyncClient, auth_headers: dict, firebase_accounts: dict, professional: dict
) -> None:
    response = await client.post(
        "/api/v1/users",
        json={"email": professional["email"], "password": "s3cret-pass", "name": "Copia"},
        headers=auth_headers,
    )

    assert response.status_code == 409
    firebase_accounts["create"].assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_insert_removes_firebase_account(
    db_session: AsyncSession, firebase_accounts: dict, organization: dict, professional: dict
) -> None:
    # Firebase hands back a uid already stored, so the insert violates uniqueness
    firebase_accounts["create"].return_value = professional["firebase_uid"]
    data = UserCreate(email="nueva@fisiocentro.es", password="s3cret-pass", name="Nueva")

    with pytest.raises(IntegrityError):
        await UserService().create_staff_user(db_session, organization["id"], data)

    firebase_accounts["delete"].assert_awaited_once_with(professional["firebase_uid"])


@pytest.mark.asyncio
async def test_get_member(client: AsyncClient, auth_headers: dict, professional: dict) -> None:
    response = await client.get(f"/api/v1/users/{professional['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["role"] == "professional"


@pytest.mark.asyncio
async def test_organization_profile(
    client: AsyncClient, auth_headers: dict, professional_headers: dict, organization: dict
) -> None:
    current = await client.get("/api/v1/organizations/me", headers=professional_headers)
    assert current.status_code == 200
    assert current.json()["invoice_prefix"] == "FC"

    forbidden = await client.put(
        "/api/v1/organizations/me", json={"city": "Getafe"}, headers=professional_headers
    )
    assert forbidden.status_code == 403

    updated = await client.put(
        "/api/v1/organizations/me", json={"city": "Getafe"}, headers=auth_headers
    )
    assert updated.status_code == 200
    assert updated.json()["city"] == "Getafe"

    again = await client.get("/api/v1/organizations/me", headers=professional_headers)
    assert again.json()["city"] == "Getafe"
    assert again.json()["name"] == organization["name"]
