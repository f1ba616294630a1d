"""AI assistant schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=8000)


class ChatRequest(BaseModel):
    """Conversation sent to the assistant."""

    messages: list[ChatMessage] = Field(..., min_length=1, max_length=50)


class ChatResponse(BaseModel):
    """Assistant reply."""

    reply: str
    model: str


class ColumnMappingRequest(BaseModel):
    """Spreadsheet headers and a couple of sample rows."""

    headers: list[str] = Field(..., min_length=1, max_length=100)
    sample_rows: list[list[str]] = Field(default_factory=list, max_length=5)


CLIENT_IMPORT_FIELDS = (
    "name",
    "tax_id",
    "address",
    "postal_code",
    "city",
    "province",
    "country",
    "email",
    "phone",
    "client_type",
    "birth_date",
    "gender",
)


class ColumnMapping(BaseModel):
    """Target client field to source header (or null when absent)."""

    name: str | None = None
    tax_id: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None
    client_type: str | None = None
    birth_date: str | None = None
    gender: str | None = None

    model_config = {"extra": "ignore"}


class ConversationMessage(BaseModel):
    """WhatsApp message to summarize."""

    sender: str
    content: str
    timestamp: datetime | None = None


class ConversationSummaryRequest(BaseModel):
    """Messages exchanged with a client."""

    client_name: str | None = None
    messages: list[ConversationMessage] = Field(..., min_length=1, max_length=200)


class ConversationSummaryResponse(BaseModel):
    """Short summary of a conversation."""

    summary: str
