"""Tests for the AI assistant."""

import asyncio
import json

import httpx
import pytest
from httpx import AsyncClient

from app.core.exceptions import (
    ExternalServiceException,
    ServiceTimeoutException,
    ServiceUnavailableException,
)
from app.main import app
from app.services.ai_client import AIClient, completion_text, get_ai_client, with_timeout
from app.services.assistant_service import parse_column_mapping


class FakeModel:
    """Answers every completion with a fixed text and keeps the requests."""

    def __init__(self, answer: str, status_code: int = 200):
        self.answer = answer
        self.status_code = status_code
        self.payloads: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": {"message": self.answer}})
        return httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": self.answer}}]}
        )

    def client(self) -> AIClient:
        return AIClient("sk-test", "https://ai.test/v1", httpx.MockTransport(self.handler))


def _use(model: FakeModel) -> None:
    app.dependency_overrides[get_ai_client] = model.client


def test_completion_text_variants():
    assert completion_text({"choices": [{"message": {"content": "  hola "}}]}) == "hola"
    parts = [{"text": "uno"}, {"text": " "}, {"text": "dos"}]
    assert completion_text({"choices": [{"message": {"content": parts}}]}) == "uno\ndos"
    assert completion_text({"choices": []}) == ""


def test_column_mapping_drops_unknown_headers():
    raw = json.dumps({"name": "Nombre", "phone": "Móvil", "email": "Correo", "city": 3})

    mapping = parse_column_mapping(raw, ["Nombre", "Móvil", "DNI"])

    assert mapping.name == "Nombre"
    assert mapping.phone == "Móvil"
    assert mapping.email is None
    assert mapping.city is None


def test_column_mapping_rejects_invalid_json():
    with pytest.raises(ExternalServiceException):
        parse_column_mapping("Nombre -> name", ["Nombre"])
    with pytest.raises(ExternalServiceException):
        parse_column_mapping("[]", ["Nombre"])


@pytest.mark.asyncio
async def test_with_timeout_raises_504():
    with pytest.raises(ServiceTimeoutException) as exc_info:
        await with_timeout(asyncio.sleep(1), 0.01, "Assistant reply")

    assert exc_info.value.status_code == 504


@pytest.mark.asyncio
async def test_unconfigured_client():
    with pytest.raises(ServiceUnavailableException):
        await AIClient(api_key="").complete([{"role": "user", "content": "hola"}])


@pytest.mark.asyncio
async def test_chat_prepends_system_prompt(client: AsyncClient, auth_headers: dict) -> None:
    model = FakeModel("Prueba con ejercicios isométricos suaves.")
    _use(model)

    response = await client.post(
        "/api/v1/assistant/chat",
        json={"messages": [{"role": "user", "content": "¿Ejercicios para tendinitis?"}]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["reply"] == "Prueba con ejercicios isométricos suaves."
    messages = model.payloads[0]["messages"]
    assert messages[0]["role"] == "system"
    assert "PHYSIA AI" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "¿Ejercicios para tendinitis?"}


@pytest.mark.asyncio
async def test_column_mapping_endpoint(client: AsyncClient, auth_headers: dict) -> None:
    model = FakeModel(json.dumps({"name": "Paciente", "phone": "Teléfono", "tax_id": "NIF"}))
    _use(model)

    response = await client.post(
        "/api/v1/assistant/column-mapping",
        json={"headers": ["Paciente", "Teléfono"], "sample_rows": [["Ana", "612345678"]]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Paciente"
    assert response.json()["tax_id"] is None
    assert model.payloads[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_provider_error_is_bad_gateway(client: AsyncClient, auth_headers: dict) -> None:
    _use(FakeModel("Rate limit reached", status_code=429))

    response = await client.post(
        "/api/v1/assistant/conversation-summary",
        json={"messages": [{"sender": "Ana", "content": "Quiero cambiar mi cita"}]},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert "Rate limit reached" in response.json()["message"]
