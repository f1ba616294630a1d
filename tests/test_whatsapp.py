"""Tests for the WhatsApp Business integration."""

import json
from datetime import date, timedelta

import httpx
import pytest
from httpx import AsyncClient

from app.core.exceptions import ExternalServiceException, ServiceTimeoutException
from app.dependencies import get_whatsapp_client_factory
from app.main import app
from app.services.whatsapp_client import (
    AisensyClient,
    error_message,
    extract_variables,
    prepare_template_components,
)


class FakeProvider:
    """Records provider calls and answers them from a path -> response map."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, httpx.Response] = {}
        self.rejected_templates: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        failure = self.failures.get(request.url.path)
        if failure is not None:
            return failure
        if request.url.path == "/wa_template" and request.method == "POST":
            if json.loads(request.content)["name"] in self.rejected_templates:
                return httpx.Response(400, json={"message": "Template rejected"})
        return httpx.Response(200, json={"ok": True})

    def factory(self, api_token: str) -> AisensyClient:
        return AisensyClient(
            api_token, base_url="https://wa.test", transport=httpx.MockTransport(self.handler)
        )

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def provider(client: AsyncClient) -> FakeProvider:
    fake = FakeProvider()
    app.dependency_overrides[get_whatsapp_client_factory] = lambda: fake.factory
    return fake


async def _setup_project(client: AsyncClient, headers: dict) -> dict:
    response = await client.put(
        "/api/v1/whatsapp/project",
        json={"api_token": "token-1234567890", "project_id": "proj_1", "phone_number": "34911222333"},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


def test_template_components_get_examples():
    components = prepare_template_components(
        [{"type": "body", "text": "Hola {{1}}, cita el {{2}} ({{1}})", "format": None}]
    )

    assert components == [
        {
            "type": "BODY",
            "text": "Hola {{1}}, cita el {{2}} ({{1}})",
            "example": {"body_text": [["Ejemplo1", "Ejemplo2"]]},
        }
    ]
    assert extract_variables("{{10}} {{2}} {{2}}") == ["2", "10"]


def test_error_message_prefers_provider_text():
    response = httpx.Response(400, json={"error": {"message": "Invalid template"}})
    assert error_message(response) == "400: Invalid template"
    assert error_message(httpx.Response(500, text="boom")) == "500: boom"


@pytest.mark.asyncio
async def test_provider_errors_are_mapped():
    def unauthorized(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "bad token"})

    failing = AisensyClient("token", "https://wa.test", httpx.MockTransport(unauthorized))
    with pytest.raises(ExternalServiceException):
        await failing.list_templates()

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    slow = AisensyClient("token", "https://wa.test", httpx.MockTransport(timeout))
    with pytest.raises(ServiceTimeoutException):
        await slow.list_templates()


@pytest.mark.asyncio
async def test_project_hides_token(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    project = await _setup_project(client, auth_headers)

    assert "api_token" not in project
    assert project["status"] == 0
    assert project["webhook_configured"] is False

    fetched = await client.get("/api/v1/whatsapp/project", headers=auth_headers)
    assert fetched.json()["project_id"] == "proj_1"


@pytest.mark.asyncio
async def test_setup_requires_admin(
    client: AsyncClient, professional_headers: dict, provider: FakeProvider
) -> None:
    response = await client.put(
        "/api/v1/whatsapp/project",
        json={"api_token": "token-1234567890"},
        headers=professional_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_configure_registers_webhook_and_templates(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    await _setup_project(client, auth_headers)

    response = await client.post(
        "/api/v1/whatsapp/project/configure",
        json={"webhook_url": "https://api.physia.test/webhooks/whatsapp"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["templates"] == ["recordatorio_1", "revision_cita"]
    assert [r.url.path for r in provider.requests] == [
        "/settings/update-webhook",
        "/wa_template",
        "/wa_template",
    ]
    assert provider.requests[0].headers["authorization"] == "Bearer token-1234567890"

    project = await client.get("/api/v1/whatsapp/project", headers=auth_headers)
    assert project.json()["status"] == 1
    assert project.json()["templates_created"] is True


@pytest.mark.asyncio
async def test_configure_failure_keeps_progress(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    """A failed template step keeps the webhook step and stores the error."""
    await _setup_project(client, auth_headers)
    provider.failures["/wa_template"] = httpx.Response(400, json={"message": "Template exists"})

    response = await client.post(
        "/api/v1/whatsapp/project/configure",
        json={"webhook_url": "https://api.physia.test/webhooks/whatsapp"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    project = (await client.get("/api/v1/whatsapp/project", headers=auth_headers)).json()
    assert project["webhook_configured"] is True
    assert project["templates_created"] is False
    assert project["created_templates"] == []
    assert project["last_setup_error"] == "400: Template exists"


@pytest.mark.asyncio
async def test_configure_resumes_after_partial_template_failure(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    """An accepted template is recorded at once and not resubmitted on retry."""
    await _setup_project(client, auth_headers)
    provider.rejected_templates.add("revision_cita")
    body = {"webhook_url": "https://api.physia.test/webhooks/whatsapp"}

    failed = await client.post("/api/v1/whatsapp/project/configure", json=body, headers=auth_headers)

    assert failed.status_code == 502
    project = (await client.get("/api/v1/whatsapp/project", headers=auth_headers)).json()
    assert project["created_templates"] == ["recordatorio_1"]
    assert project["templates_created"] is False

    provider.rejected_templates.clear()
    provider.requests.clear()
    retried = await client.post("/api/v1/whatsapp/project/configure", json=body, headers=auth_headers)

    assert retried.status_code == 200
    assert [b["name"] for b in provider.bodies("/wa_template")] == ["revision_cita"]
    project = (await client.get("/api/v1/whatsapp/project", headers=auth_headers)).json()
    assert project["created_templates"] == ["recordatorio_1", "revision_cita"]
    assert project["templates_created"] is True


@pytest.mark.asyncio
async def test_send_text_message(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    await _setup_project(client, auth_headers)

    response = await client.post(
        "/api/v1/whatsapp/messages",
        json={"to": "612 345 678", "text": "Hola"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert provider.bodies("/messages") == [
        {
            "to": "34612345678",
            "type": "text",
            "recipient_type": "individual",
            "text": {"body": "Hola"},
        }
    ]


@pytest.mark.asyncio
async def test_media_message_needs_url(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    response = await client.post(
        "/api/v1/whatsapp/messages",
        json={"to": "612345678", "type": "image"},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_messages_without_project(
    client: AsyncClient, auth_headers: dict, provider: FakeProvider
) -> None:
    response = await client.post(
        "/api/v1/whatsapp/messages",
        json={"to": "612345678", "text": "Hola"},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert provider.requests == []


@pytest.mark.asyncio
async def test_appointment_reminder_uses_template(
    client: AsyncClient,
    auth_headers: dict,
    provider: FakeProvider,
    professional: dict,
    patient: dict,
) -> None:
    await _setup_project(client, auth_headers)
    day = date.today() + timedelta(days=3)
    created = await client.post(
        "/api/v1/appointments",
        json={
            "date": day.isoformat(),
            "start_time": "17:30",
            "end_time": "18:00",
            "professional_id": str(professional["id"]),
            "client_id": patient["id"],
        },
        headers=auth_headers,
    )
    appointment_id = created.json()["appointments"][0]["id"]

    response = await client.post(
        f"/api/v1/appointments/{appointment_id}/reminder", headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["template"] == "recordatorio_1"
    body = provider.bodies("/messages")[0]
    assert body["to"] == "34612345678"
    assert body["template"]["name"] == "recordatorio_1"
    parameters = [p["text"] for p in body["template"]["components"][0]["parameters"]]
    assert parameters[0] == "Ana García"
    assert parameters[1] == "Clínica Fisio Centro"
    assert parameters[3] == "17:30"
