"""Tests for appointment booking and availability."""

import asyncio
from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import ConflictException
from app.schemas.appointments import AppointmentCreate, AppointmentCreateResponse
from app.services.appointment_service import AppointmentService

BOOKING_DAY = (date.today() + timedelta(days=7)).isoformat()


def _booking(professional: dict, start: str, end: str, **extra) -> dict:
    return {
        "date": BOOKING_DAY,
        "start_time": start,
        "end_time": end,
        "professional_id": str(professional["id"]),
        **extra,
    }


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_create_appointment(
    client: AsyncClient, auth_headers: dict, professional: dict, patient: dict
) -> None:
    """Test creating a single appointment."""
    response = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:00", "10:30", client_id=patient["id"]),
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["created_count"] == 1
    assert data["skipped_dates"] == []
    appointment = data["appointments"][0]
    assert appointment["status"] == "confirmed"
    assert appointment["client_id"] == patient["id"]
    assert appointment["recurrence_group_id"] is None


@pytest.mark.asyncio
async def test_overlapping_booking_is_rejected(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """A professional cannot hold two overlapping bookings."""
    first = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:00", "10:30"),
        headers=auth_headers,
    )
    assert first.status_code == 201

    response = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:15", "10:45"),
        headers=auth_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "ConflictException"


@pytest.mark.asyncio
async def test_adjacent_bookings_do_not_conflict(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """A booking may start exactly when the previous one ends."""
    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:00", "10:30"),
        headers=auth_headers,
    )

    response = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:30", "11:00"),
        headers=auth_headers,
    )

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_cancelled_appointment_frees_the_slot(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """Cancelled bookings never conflict."""
    created = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "12:00", "12:30"),
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]

    cancel = await client.post(
        f"/api/v1/appointments/{appointment_id}/cancel", headers=auth_headers
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"

    check = await client.post(
        "/api/v1/appointments/availability",
        json=_booking(professional, "12:00", "12:30"),
        headers=auth_headers,
    )
    assert check.status_code == 200
    assert check.json()["professional_available"] is True
    assert check.json()["conflicts"] == []


@pytest.mark.asyncio
async def test_reviving_cancelled_appointment_rechecks_slot(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """A cancelled booking whose slot was retaken cannot be confirmed again."""
    created = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "16:00", "16:30"),
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]
    await client.post(f"/api/v1/appointments/{appointment_id}/cancel", headers=auth_headers)

    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "16:00", "16:30"),
        headers=auth_headers,
    )

    response = await client.patch(
        f"/api/v1/appointments/{appointment_id}/status",
        json={"status": "confirmed"},
        headers=auth_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_availability_reports_conflicts(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "09:00", "10:00"),
        headers=auth_headers,
    )

    response = await client.post(
        "/api/v1/appointments/availability",
        json=_booking(professional, "09:30", "10:30"),
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["professional_available"] is False
    assert data["conflicts"][0]["kind"] == "appointment"
    assert data["conflicts"][0]["resource"] == "professional"


@pytest.mark.asyncio
async def test_reschedule_excludes_itself(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """Moving a booking by fifteen minutes does not conflict with itself."""
    created = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "11:00", "11:30"),
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]

    response = await client.put(
        f"/api/v1/appointments/{appointment_id}",
        json={"start_time": "11:15", "end_time": "11:45"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["start_time"] == "11:15:00"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "cleared", [{"start_time": None}, {"end_time": None}, {"date": None}, {"professional_id": None}]
)
async def test_update_cannot_clear_schedule_fields(
    client: AsyncClient, auth_headers: dict, professional: dict, cleared: dict
) -> None:
    created = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "12:00", "12:30"),
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]

    response = await client.put(
        f"/api/v1/appointments/{appointment_id}", json=cleared, headers=auth_headers
    )

    assert response.status_code == 422
    unchanged = await client.get(f"/api/v1/appointments/{appointment_id}", headers=auth_headers)
    assert unchanged.json()["start_time"] == "12:00:00"


@pytest.mark.asyncio
async def test_update_accepts_null_optional_fields(
    client: AsyncClient, auth_headers: dict, professional: dict, patient: dict
) -> None:
    created = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "13:00", "13:30", client_id=patient["id"]),
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]

    response = await client.put(
        f"/api/v1/appointments/{appointment_id}",
        json={"client_id": None, "notes": None},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["client_id"] is None


@pytest.mark.asyncio
async def test_recurring_series_skips_taken_dates(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    """Occurrences after the first that conflict are skipped and reported."""
    start = date.today() + timedelta(days=7)
    blocked = start + timedelta(weeks=1)

    await client.post(
        "/api/v1/appointments",
        json={**_booking(professional, "18:00", "18:30"), "date": blocked.isoformat()},
        headers=auth_headers,
    )

    response = await client.post(
        "/api/v1/appointments",
        json=_booking(
            professional,
            "18:00",
            "18:30",
            recurrence={
                "type": "weekly",
                "interval": 1,
                "end_date": (start + timedelta(weeks=3)).isoformat(),
            },
        ),
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["created_count"] == 3
    assert data["skipped_dates"] == [blocked.isoformat()]
    assert data["recurrence_description"].startswith("Cada semana hasta el")
    group_ids = {item["recurrence_group_id"] for item in data["appointments"]}
    assert len(group_ids) == 1 and None not in group_ids


@pytest.mark.asyncio
async def test_invalid_recurrence_is_rejected(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    response = await client.post(
        "/api/v1/appointments",
        json=_booking(
            professional,
            "18:00",
            "18:30",
            recurrence={"type": "daily", "interval": 30, "end_date": BOOKING_DAY},
        ),
        headers=auth_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_end_before_start_is_rejected(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    response = await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "10:30", "10:00"),
        headers=auth_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_appointments_filters_by_status(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "08:00", "08:30"),
        headers=auth_headers,
    )
    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "08:30", "09:00", status="pending"),
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/appointments", params={"status": "pending"}, headers=auth_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["status"] == "pending"


@pytest.mark.asyncio
async def test_appointments_require_authentication(client: AsyncClient) -> None:
    response = await client.get("/api/v1/appointments")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_recurrence_preview_marks_taken_dates(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    first = date.today() + timedelta(days=7)
    taken = first + timedelta(weeks=1)
    await client.post(
        "/api/v1/appointments",
        json={**_booking(professional, "09:00", "09:30"), "date": taken.isoformat()},
        headers=auth_headers,
    )

    response = await client.post(
        "/api/v1/appointments/recurrence/preview",
        json={
            "start_date": first.isoformat(),
            "start_time": "09:00",
            "end_time": "09:30",
            "professional_id": str(professional["id"]),
            "recurrence": {
                "type": "weekly",
                "interval": 1,
                "end_date": (first + timedelta(weeks=2)).isoformat(),
            },
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 3
    assert data["dates"][0] == first.isoformat()
    assert data["conflicting_dates"] == [taken.isoformat()]


@pytest.mark.asyncio
async def test_free_consultations(
    client: AsyncClient, auth_headers: dict, professional: dict
) -> None:
    rooms = {}
    for name in ("Box 1", "Box 2"):
        created = await client.post(
            "/api/v1/consultations", json={"name": name}, headers=auth_headers
        )
        rooms[name] = created.json()["id"]
    await client.post(
        "/api/v1/appointments",
        json=_booking(professional, "12:00", "13:00", consultation_id=rooms["Box 1"]),
        headers=auth_headers,
    )

    response = await client.post(
        "/api/v1/appointments/free-consultations",
        json={"date": BOOKING_DAY, "start_time": "12:30", "end_time": "13:30"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert [room["name"] for room in response.json()] == ["Box 2"]


@pytest.mark.asyncio
async def test_concurrent_overlapping_bookings_admit_one(
    admin_user: dict,
    professional: dict,
    organization: dict,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Simultaneous overlapping bookings for one professional: only one wins."""

    async def book(start: str, end: str):
        async with session_factory() as session:
            service = AppointmentService(session, organization["id"])
            data = AppointmentCreate(**_booking(professional, start, end))
            return await service.create_appointment(admin_user["id"], data, date.today())

    results = await asyncio.gather(
        book("16:00", "16:30"),
        book("16:15", "16:45"),
        book("16:20", "16:50"),
        book("16:00", "17:00"),
        return_exceptions=True,
    )

    assert sum(isinstance(result, AppointmentCreateResponse) for result in results) == 1
    assert sum(isinstance(result, ConflictException) for result in results) == 3
