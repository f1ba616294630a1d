"""Tests for work schedules, vacations and bookable slots."""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from app.services.schedule_service import weekday_index

SLOT_DAY = date.today() + timedelta(days=14)


async def _create_schedule(client: AsyncClient, headers: dict, professional: dict) -> dict:
    response = await client.post(
        "/api/v1/schedules",
        json={
            "user_id": str(professional["id"]),
            "day_of_week": weekday_index(SLOT_DAY),
            "start_time": "09:00",
            "end_time": "12:00",
            "breaks": [{"start_time": "10:30", "end_time": "11:00"}],
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2026, 10, 18)) == 0
    assert weekday_index(date(2026, 10, 19)) == 1
    assert weekday_index(date(2026, 10, 24)) == 6


@pytest.mark.asyncio
async def test_schedule_with_breaks(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    schedule = await _create_schedule(client, auth_headers, professional)

    assert schedule["start_time"] == "09:00:00"
    assert len(schedule["breaks"]) == 1
    assert schedule["breaks"][0]["start_time"] == "10:30:00"


@pytest.mark.asyncio
async def test_professional_cannot_edit_other_schedules(
    client: AsyncClient, professional_headers: dict, admin_user: dict
) -> None:
    response = await client.post(
        "/api/v1/schedules",
        json={
            "user_id": str(admin_user["id"]),
            "day_of_week": 1,
            "start_time": "09:00",
            "end_time": "14:00",
        },
        headers=professional_headers,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_break_outside_hours_is_rejected(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    response = await client.post(
        "/api/v1/schedules",
        json={
            "user_id": str(professional["id"]),
            "day_of_week": 1,
            "start_time": "09:00",
            "end_time": "12:00",
            "breaks": [{"start_time": "12:30", "end_time": "13:00"}],
        },
        headers=auth_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_slots_skip_breaks_and_bookings(
    client: AsyncClient, auth_headers: dict, professional: dict, service: dict
) -> None:
    """Slots jump over the break and resume after an existing booking."""
    await _create_schedule(client, auth_headers, professional)
    await client.post(
        "/api/v1/appointments",
        json={
            "date": SLOT_DAY.isoformat(),
            "start_time": "09:30",
            "end_time": "10:00",
            "professional_id": str(professional["id"]),
        },
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/availability/slots",
        params={
            "professional_id": str(professional["id"]),
            "service_id": service["id"],
            "date": SLOT_DAY.isoformat(),
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["duration"] == 30
    assert [slot["start_time"] for slot in data["slots"]] == [
        "09:00:00",
        "10:00:00",
        "11:00:00",
        "11:30:00",
    ]
    assert all(slot["available"] for slot in data["slots"])


@pytest.mark.asyncio
async def test_no_slots_without_schedule(
    client: AsyncClient, auth_headers: dict, professional: dict, service: dict
) -> None:
    response = await client.get(
        "/api/v1/availability/slots",
        params={
            "professional_id": str(professional["id"]),
            "service_id": service["id"],
            "date": SLOT_DAY.isoformat(),
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["slots"] == []


@pytest.mark.asyncio
async def test_approved_vacation_removes_slots(
    client: AsyncClient, auth_headers: dict, professional: dict, service: dict
) -> None:
    await _create_schedule(client, auth_headers, professional)

    request = await client.post(
        "/api/v1/vacations",
        json={
            "user_id": str(professional["id"]),
            "start_date": (SLOT_DAY - timedelta(days=1)).isoformat(),
            "end_date": (SLOT_DAY + timedelta(days=1)).isoformat(),
            "reason": "Vacaciones",
        },
        headers=auth_headers,
    )
    assert request.status_code == 201
    assert request.json()["status"] == "pending"

    params = {
        "professional_id": str(professional["id"]),
        "service_id": service["id"],
        "date": SLOT_DAY.isoformat(),
    }
    pending = await client.get("/api/v1/availability/slots", params=params, headers=auth_headers)
    assert len(pending.json()["slots"]) == 5

    review = await client.post(
        f"/api/v1/vacations/{request.json()['id']}/review",
        json={"status": "approved"},
        headers=auth_headers,
    )
    assert review.status_code == 200
    assert review.json()["status"] == "approved"

    approved = await client.get("/api/v1/availability/slots", params=params, headers=auth_headers)
    assert approved.json()["slots"] == []


@pytest.mark.asyncio
async def test_public_slots_for_unknown_clinic(
    client: AsyncClient, professional: dict, service: dict
) -> None:
    response = await client.get(
        "/api/v1/public/9999/available-slots",
        params={
            "professional_id": str(professional["id"]),
            "service_id": service["id"],
            "date": SLOT_DAY.isoformat(),
        },
    )

    assert response.status_code == 404
