"""OpenAI-compatible chat completions client."""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import httpx
import structlog

from app.config import settings
from app.core.exceptions import (
    ExternalServiceException,
    ServiceTimeoutException,
    ServiceUnavailableException,
)

logger = structlog.get_logger(__name__)

PROVIDER = "ai"

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """Await ``awaitable`` or raise a 504 after ``seconds``."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except TimeoutError as e:
        logger.warning("ai_call_timed_out", operation=label, seconds=seconds)
        raise ServiceTimeoutException(f"{label} did not finish within {seconds:g} seconds") from e


def completion_text(payload: dict) -> str:
    """Text of the first choice, joining content parts when the provider splits them."""
    choices = payload.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = [item.get("text", "") for item in content if isinstance(item, dict)]
        return "\n".join(part.strip() for part in parts if part.strip())
    return ""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"{response.status_code}: {response.text[:200]}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        error = error.get("message")
    return f"{response.status_code}: {error or body}"


class AIClient:
    """Bearer-authenticated ``/chat/completions`` caller."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client from explicit values or settings."""
        self.api_key = api_key if api_key is not None else settings.ai_api_key
        self.base_url = (base_url or settings.ai_base_url).rstrip("/")
        self.transport = transport

    async def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        """Completion text for ``messages``."""
        if not self.api_key:
            raise ServiceUnavailableException("The AI assistant is not configured")

        payload: dict[str, Any] = {
            "model": model or settings.ai_chat_model,
            "temperature": temperature,
            "messages": messages,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(settings.ai_timeout_seconds, connect=8.0),
                transport=self.transport,
            ) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", headers=headers, json=payload
                )
        except httpx.TimeoutException as e:
            raise ServiceTimeoutException("The AI provider did not respond in time") from e
        except httpx.HTTPError as e:
            logger.error("ai_request_failed", error=str(e))
            raise ExternalServiceException(PROVIDER, f"Could not reach the AI provider: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("ai_provider_error", status_code=response.status_code, message=message)
            raise ExternalServiceException(PROVIDER, message)

        try:
            text = completion_text(response.json())
        except ValueError as e:
            raise ExternalServiceException(PROVIDER, "The AI provider returned invalid JSON") from e
        if not text:
            raise ExternalServiceException(PROVIDER, "The AI provider returned an empty answer")
        return text


def get_ai_client() -> AIClient:
    """Dependency returning a client configured from settings."""
    return AIClient()
