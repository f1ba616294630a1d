"""AI assistant operations: chat, import column mapping and conversation summaries."""

import json

import structlog
from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import ExternalServiceException
from app.schemas.assistant import (
    CLIENT_IMPORT_FIELDS,
    ChatRequest,
    ChatResponse,
    ColumnMapping,
    ColumnMappingRequest,
    ConversationSummaryRequest,
    ConversationSummaryResponse,
)
from app.services.ai_client import AIClient, with_timeout

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "Eres PHYSIA AI, el asistente de una clínica de fisioterapia y salud. "
    "Respondes siempre en español, con tono profesional y cercano. "
    "Ayudas al equipo con dudas clínicas generales, ejercicios, organización de la agenda "
    "y redacción de comunicaciones con pacientes. "
    "No sustituyes el juicio clínico del profesional: cuando una pregunta requiera valoración "
    "presencial o diagnóstico, indícalo con claridad."
)

COLUMN_MAPPING_PROMPT = (
    "Relaciona las columnas de una hoja de cálculo de pacientes con los campos de destino. "
    "Responde solo con un objeto JSON cuyas claves sean exactamente: {fields}. "
    "Cada valor debe ser el nombre exacto de una de las columnas recibidas, o null si "
    "ninguna corresponde. No uses una misma columna para dos campos."
)

SUMMARY_PROMPT = (
    "Resume en español, en un máximo de cinco frases, la conversación de WhatsApp entre la "
    "clínica y un paciente. Destaca citas solicitadas, dudas pendientes y acuerdos."
)


def parse_column_mapping(raw: str, headers: list[str]) -> ColumnMapping:
    """
    Validate a model answer into a :class:`ColumnMapping`.

    Values that are not one of ``headers`` are discarded.
    """
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ExternalServiceException("ai", "The AI answer was not valid JSON") from e
    if not isinstance(data, dict):
        raise ExternalServiceException("ai", "The AI answer was not a JSON object")

    try:
        mapping = ColumnMapping.model_validate(
            {key: value if isinstance(value, str) else None for key, value in data.items()}
        )
    except ValidationError as e:
        raise ExternalServiceException("ai", "The AI answer did not match the mapping") from e

    known = set(headers)
    cleaned = {
        field: value if value in known else None
        for field, value in mapping.model_dump().items()
    }
    dropped = [value for value in mapping.model_dump().values() if value and value not in known]
    if dropped:
        logger.info("column_mapping_unknown_headers_dropped", headers=dropped)
    return ColumnMapping(**cleaned)


class AssistantService:
    """Prompting on top of :class:`AIClient`."""

    def __init__(self, client: AIClient):
        """Initialize service with an AI client."""
        self.client = client

    async def chat(self, data: ChatRequest) -> ChatResponse:
        """Reply to the conversation as PHYSIA AI."""
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages += [message.model_dump() for message in data.messages]

        reply = await with_timeout(
            self.client.complete(messages, model=settings.ai_chat_model, temperature=0.4),
            settings.ai_timeout_seconds,
            "Assistant reply",
        )
        return ChatResponse(reply=reply, model=settings.ai_chat_model)

    async def map_columns(self, data: ColumnMappingRequest) -> ColumnMapping:
        """Suggest which spreadsheet column feeds each client field."""
        sample = "\n".join(" | ".join(row) for row in data.sample_rows)
        messages = [
            {
                "role": "system",
                "content": COLUMN_MAPPING_PROMPT.format(fields=", ".join(CLIENT_IMPORT_FIELDS)),
            },
            {
                "role": "user",
                "content": f"Columnas: {json.dumps(data.headers, ensure_ascii=False)}\n"
                f"Filas de ejemplo:\n{sample or '(sin filas)'}",
            },
        ]

        raw = await with_timeout(
            self.client.complete(
                messages, model=settings.ai_extraction_model, temperature=0, json_mode=True
            ),
            settings.ai_timeout_seconds,
            "Column mapping",
        )
        return parse_column_mapping(raw, data.headers)

    async def summarize_conversation(
        self, data: ConversationSummaryRequest
    ) -> ConversationSummaryResponse:
        """Short summary of a client conversation."""
        transcript = "\n".join(
            f"[{m.timestamp.strftime('%d/%m/%Y %H:%M') if m.timestamp else '-'}] {m.sender}: {m.content}"
            for m in data.messages
        )
        header = f"Paciente: {data.client_name}\n" if data.client_name else ""
        messages = [
            {"role": "system", "content": SUMMARY_PROMPT},
            {"role": "user", "content": header + transcript},
        ]

        summary = await with_timeout(
            self.client.complete(messages, model=settings.ai_extraction_model, temperature=0.2),
            settings.ai_timeout_seconds,
            "Conversation summary",
        )
        return ConversationSummaryResponse(summary=summary)
