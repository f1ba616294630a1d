"""WhatsApp Business project, template and message schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class WabaSetupRequest(BaseModel):
    """Credentials for the organization's WhatsApp Business project."""

    api_token: str = Field(..., min_length=10)
    name: str | None = Field(None, max_length=200)
    description: str | None = None
    phone_number: str | None = Field(None, max_length=20)
    project_id: str | None = None


class WabaResponse(BaseModel):
    """Stored WABA state; the API token is never returned."""

    id: int
    organization_id: int
    phone_number: str | None = None
    name: str | None = None
    description: str | None = None
    project_id: str | None = None
    webhook_url: str | None = None
    status: int
    webhook_configured: bool
    templates_created: bool
    created_templates: list[str] = Field(default_factory=list)
    last_setup_error: str | None = None
    updated_at: datetime


class WabaConfigureResponse(BaseModel):
    """Result of webhook and template provisioning."""

    webhook_url: str
    templates: list[str]
    status: int


class TemplateComponent(BaseModel):
    """Header/body/footer/buttons block of a template."""

    type: str
    format: str | None = None
    text: str | None = None
    buttons: list[dict] | None = None
    example: dict | None = None


class TemplateCreate(BaseModel):
    """Message template submitted for approval."""

    name: str = Field(..., pattern=r"^[a-z0-9_]+$", max_length=512)
    category: str = Field("UTILITY", pattern=r"^(UTILITY|MARKETING|AUTHENTICATION)$")
    language: str = "es"
    components: list[TemplateComponent]


class MessageType(str, Enum):
    """Free-form message kinds."""

    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"


class SendMessageRequest(BaseModel):
    """Free-form message to a contact inside the 24h window."""

    to: str = Field(..., min_length=9, max_length=20)
    type: MessageType = MessageType.TEXT
    text: str | None = Field(None, max_length=4096)
    media_url: str | None = None
    caption: str | None = None
    filename: str | None = None

    @model_validator(mode="after")
    def check_payload(self) -> "SendMessageRequest":
        """Text messages need text; media messages need a URL."""
        if self.type == MessageType.TEXT and not self.text:
            raise ValueError("Text messages require 'text'")
        if self.type != MessageType.TEXT and not self.media_url:
            raise ValueError(f"{self.type.value} messages require 'media_url'")
        return self


class SendTemplateRequest(BaseModel):
    """Approved template message."""

    to: str = Field(..., min_length=9, max_length=20)
    template_name: str
    language: str = "es"
    parameters: list[str] = Field(default_factory=list)


class BusinessProfileUpdate(BaseModel):
    """Public WhatsApp Business profile."""

    about: str | None = Field(None, max_length=139)
    description: str | None = Field(None, max_length=512)
    email: str | None = None
    websites: list[str] | None = Field(None, max_length=2)
    address: str | None = None
    vertical: str | None = None


class ProfilePictureUpdate(BaseModel):
    """Profile picture given by URL."""

    url: str
