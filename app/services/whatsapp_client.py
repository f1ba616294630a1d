"""HTTP client for the AiSensy WhatsApp Business direct API."""

import re
from typing import Any

import httpx
import structlog

from app.config import settings
from app.core.exceptions import ExternalServiceException, ServiceTimeoutException
from app.core.phone import format_phone_for_whatsapp

logger = structlog.get_logger(__name__)

PROVIDER = "aisensy"

_VARIABLE = re.compile(r"\{\{(\d+)\}\}")

# Reminder sent before an appointment: name, organization, day, hour
REMINDER_TEMPLATE = {
    "name": "recordatorio_1",
    "category": "UTILITY",
    "language": "es",
    "components": [
        {
            "type": "BODY",
            "text": (
                "Hola {{1}},\n\n"
                "Te recordamos que tienes una cita en {{2}}:\n\n"
                "- Día: {{3}}\n"
                "- Hora: {{4}}.\n\n"
                "Por favor, confirma tu cita cuando puedas.\n"
                "Para cambios o cancelaciones aplica la política del centro.\n\n"
                "Gracias!"
            ),
            "example": {"body_text": [["Juan", "Clínica Physia", "15 de Octubre", "11:00"]]},
        }
    ],
}

# Follow-up after a visit: name
FOLLOW_UP_TEMPLATE = {
    "name": "revision_cita",
    "category": "UTILITY",
    "language": "es",
    "components": [
        {
            "type": "BODY",
            "text": (
                "Hola {{1}}, queríamos saber cómo te encuentras después de tu cita. "
                "Si necesitas hacer alguna consulta, puedes responder directamente a este mensaje."
            ),
            "example": {"body_text": [["Juan"]]},
        }
    ],
}


def extract_variables(text: str) -> list[str]:
    """Distinct ``{{n}}`` placeholders in numeric order."""
    return sorted(set(_VARIABLE.findall(text)), key=int)


def prepare_template_components(components: list[dict]) -> list[dict]:
    """
    Clean template components before submission.

    Empty keys are dropped and BODY components with variables get example
    values (``Ejemplo1`` ..) when the caller did not provide any.
    """
    prepared = []
    for component in components:
        item = {key: value for key, value in component.items() if value not in (None, "", [])}
        item["type"] = str(item.get("type", "")).upper()

        if item["type"] == "BODY" and item.get("text") and not item.get("example"):
            variables = extract_variables(item["text"])
            if variables:
                item["example"] = {
                    "body_text": [[f"Ejemplo{i}" for i in range(1, len(variables) + 1)]]
                }
        prepared.append(item)
    return prepared


def error_message(response: httpx.Response) -> str:
    """Best human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return f"{response.status_code}: {response.text or response.reason_phrase}"

    if isinstance(body, dict):
        for key in ("message", "error", "details"):
            value = body.get(key)
            if value:
                if isinstance(value, dict):
                    value = value.get("message") or str(value)
                return f"{response.status_code}: {value}"
    return f"{response.status_code}: {body}"


class AisensyClient:
    """Thin async wrapper over the provider endpoints the app uses."""

    def __init__(
        self,
        api_token: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client with a project API token."""
        self.api_token = api_token
        self.base_url = (base_url or settings.aisensy_base_url).rstrip("/")
        self.transport = transport

    async def _request(
        self, method: str, path: str, json: Any = None, params: dict | None = None
    ) -> Any:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_token}",
        }
        timeout = httpx.Timeout(settings.http_timeout_seconds, connect=8.0)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.warning("whatsapp_request_timeout", method=method, path=path)
            raise ServiceTimeoutException("WhatsApp provider did not respond in time") from e
        except httpx.HTTPError as e:
            logger.error("whatsapp_request_failed", method=method, path=path, error=str(e))
            raise ExternalServiceException(PROVIDER, f"Could not reach WhatsApp provider: {e}") from e

        if response.status_code >= 400:
            message = error_message(response)
            logger.warning(
                "whatsapp_provider_error",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise ExternalServiceException(PROVIDER, message)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def update_webhook(self, url: str) -> Any:
        """Point provider events at our webhook."""
        return await self._request("PATCH", "/settings/update-webhook", json={"webhooks": {"url": url}})

    async def list_templates(self, project_id: str | None = None) -> Any:
        """Templates of the project."""
        params = {"projectID": project_id} if project_id else None
        return await self._request("GET", "/get-templates", params=params)

    async def create_template(self, template: dict) -> Any:
        """Submit a template for approval."""
        payload = {**template, "components": prepare_template_components(template["components"])}
        return await self._request("POST", "/wa_template", json=payload)

    async def delete_template(self, name: str) -> Any:
        """Delete a template by name."""
        return await self._request("DELETE", f"/wa_template/{name}")

    async def send_message(
        self,
        to: str,
        message_type: str,
        text: str | None = None,
        media_url: str | None = None,
        caption: str | None = None,
        filename: str | None = None,
    ) -> Any:
        """Free-form text or media message."""
        payload: dict[str, Any] = {
            "to": format_phone_for_whatsapp(to),
            "type": message_type,
            "recipient_type": "individual",
        }
        if message_type == "text":
            payload["text"] = {"body": text}
        else:
            media: dict[str, Any] = {"link": media_url}
            if caption and message_type in ("image", "video", "document"):
                media["caption"] = caption
            if filename and message_type == "document":
                media["filename"] = filename
            payload[message_type] = media
        return await self._request("POST", "/messages", json=payload)

    async def send_template(
        self, to: str, name: str, language: str = "es", parameters: list[str] | None = None
    ) -> Any:
        """Approved template with positional body parameters."""
        template: dict[str, Any] = {
            "language": {"policy": "deterministic", "code": language},
            "name": name,
        }
        if parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": value} for value in parameters],
                }
            ]
        payload = {
            "to": format_phone_for_whatsapp(to),
            "type": "template",
            "recipient_type": "individual",
            "template": template,
        }
        return await self._request("POST", "/messages", json=payload)

    async def update_profile(self, profile: dict) -> Any:
        """Business profile fields (about, description, email, websites, address)."""
        return await self._request("PATCH", "/update-profile", json=profile)

    async def update_profile_picture(self, url: str) -> Any:
        """Display image given by a public URL."""
        return await self._request(
            "PATCH", "/update-profile-picture", json={"whatsAppDisplayImage": url}
        )
