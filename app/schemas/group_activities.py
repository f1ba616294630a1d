"""Group activity schemas."""

import datetime as dt
from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from app.core.phone import is_valid_phone_number, normalize_phone_number
from app.schemas.appointments import TimeRangeMixin, reject_cleared


class GroupActivityStatus(str, Enum):
    """Group activity lifecycle."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    """Enrollment status of a participant."""

    REGISTERED = "registered"
    ATTENDED = "attended"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class GroupActivityCreate(TimeRangeMixin):
    """Schema for scheduling a group session."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    professional_id: UUID
    consultation_id: UUID | None = None
    service_id: int | None = None
    max_participants: int = Field(..., gt=0, le=500)
    color: str | None = Field(None, max_length=20)


class GroupActivityUpdate(BaseModel):
    """Partial update of a group session."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    date: dt.date | None = None
    start_time: time | None = None
    end_time: time | None = None
    professional_id: UUID | None = None
    consultation_id: UUID | None = None
    max_participants: int | None = Field(None, gt=0, le=500)
    color: str | None = Field(None, max_length=20)
    status: GroupActivityStatus | None = None

    @model_validator(mode="after")
    def check_required_fields(self):
        required = ("name", "date", "start_time", "end_time", "professional_id")
        reject_cleared(self, required + ("max_participants", "status"))
        return self


class GroupActivityResponse(BaseModel):
    """Group activity response."""

    id: UUID
    organization_id: int
    name: str
    description: str | None = None
    date: date
    start_time: time
    end_time: time
    professional_id: UUID
    consultation_id: UUID | None = None
    service_id: int | None = None
    max_participants: int
    current_participants: int
    color: str | None = None
    status: GroupActivityStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class EnrollmentRequest(BaseModel):
    """Enroll an existing client."""

    client_id: int
    notes: str | None = Field(None, max_length=500)


class ParticipantResponse(BaseModel):
    """Participant with the client's display data."""

    id: UUID
    group_activity_id: UUID
    client_id: int
    client_name: str | None = None
    client_phone: str | None = None
    status: ParticipantStatus
    notes: str | None = None
    registration_date: datetime

    model_config = {"from_attributes": True}


class ParticipantStatusUpdate(BaseModel):
    """Change a participant's status."""

    status: ParticipantStatus


class GroupActivityDetail(GroupActivityResponse):
    """Group activity with its participants."""

    participants: list[ParticipantResponse] = Field(default_factory=list)


class GroupActivityStats(BaseModel):
    """Attendance figures for a group activity."""

    total_registered: int
    total_attended: int
    total_cancelled: int
    total_no_show: int
    available_spots: int
    is_full: bool


class PublicGroupBookingRequest(BaseModel):
    """Self-service enrollment from the public booking page."""

    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=9, max_length=20)
    email: EmailStr | None = None
    notes: str | None = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not is_valid_phone_number(v):
            raise ValueError("Phone number must have between 9 and 15 digits")
        return normalize_phone_number(v)

    @model_validator(mode="after")
    def strip_name(self) -> "PublicGroupBookingRequest":
        """Trim whitespace around the name."""
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("Name is required")
        return self
