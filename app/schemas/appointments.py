"""Appointment, recurrence and availability schemas."""

import datetime as dt
from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class RecurrenceType(str, Enum):
    """How often a recurring appointment repeats."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurrenceConfig(BaseModel):
    """Recurrence descriptor attached to an appointment."""

    type: RecurrenceType
    interval: int = Field(1, ge=1)
    end_date: date


def reject_cleared(model: BaseModel, fields: tuple[str, ...]) -> None:
    """Partial updates may replace these fields but never set them to null."""
    cleared = [
        name for name in fields if name in model.model_fields_set and getattr(model, name) is None
    ]
    if cleared:
        raise ValueError(f"{', '.join(cleared)} cannot be null")


class TimeRangeMixin(BaseModel):
    """Start/end pair on a single day."""

    date: date
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_time_range(self):
        """End time must be after start time."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class AppointmentCreate(TimeRangeMixin):
    """Schema for creating a new appointment."""

    professional_id: UUID
    consultation_id: UUID | None = None
    client_id: int | None = None
    service_id: int | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: str | None = Field(None, max_length=2000)
    recurrence: RecurrenceConfig | None = None


class AppointmentUpdate(BaseModel):
    """Schema for rescheduling or editing an appointment."""

    date: dt.date | None = None
    start_time: time | None = None
    end_time: time | None = None
    professional_id: UUID | None = None
    consultation_id: UUID | None = None
    client_id: int | None = None
    service_id: int | None = None
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_required_fields(self):
        reject_cleared(self, ("date", "start_time", "end_time", "professional_id"))
        return self


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    organization_id: int
    date: date
    start_time: time
    end_time: time
    professional_id: UUID
    consultation_id: UUID | None = None
    client_id: int | None = None
    service_id: int | None = None
    status: AppointmentStatus
    notes: str | None = None
    recurrence: RecurrenceConfig | None = None
    recurrence_group_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentCreateResponse(BaseModel):
    """Result of a booking request; recurring series may skip dates."""

    appointments: list[AppointmentResponse]
    created_count: int
    skipped_dates: list[date] = Field(default_factory=list)
    recurrence_description: str | None = None


class AvailabilityCheck(TimeRangeMixin):
    """Slot to check against existing bookings."""

    professional_id: UUID
    consultation_id: UUID | None = None
    exclude_appointment_id: UUID | None = None
    exclude_group_activity_id: UUID | None = None


class ConflictKind(str, Enum):
    """What a conflicting booking is."""

    APPOINTMENT = "appointment"
    GROUP_ACTIVITY = "group_activity"


class ConflictItem(BaseModel):
    """A booking overlapping the requested slot."""

    kind: ConflictKind
    id: UUID
    label: str
    start_time: time
    end_time: time
    status: str
    resource: str = Field(..., description="'professional' or 'consultation'")


class AvailabilityResult(BaseModel):
    """Availability of a professional and optional room for a slot."""

    professional_available: bool
    consultation_available: bool
    conflicts: list[ConflictItem] = Field(default_factory=list)

    @property
    def available(self) -> bool:
        """Both resources are free."""
        return self.professional_available and self.consultation_available


class FreeConsultationsQuery(TimeRangeMixin):
    """Window to look for free rooms."""


class RecurrencePreviewRequest(BaseModel):
    """Dates a recurring appointment would produce."""

    start_date: date
    start_time: time | None = None
    end_time: time | None = None
    professional_id: UUID | None = None
    consultation_id: UUID | None = None
    recurrence: RecurrenceConfig


class RecurrencePreviewResponse(BaseModel):
    """Generated dates, count and which of them already conflict."""

    dates: list[date]
    count: int
    description: str
    conflicting_dates: list[date] = Field(default_factory=list)


class TimeSlot(BaseModel):
    """A bookable slot."""

    start_time: time
    end_time: time
    available: bool = True


class AvailableSlotsResponse(BaseModel):
    """Bookable slots for a professional, service and date."""

    date: date
    professional_id: UUID
    service_id: int
    duration: int
    slots: list[TimeSlot]


class ReminderResponse(BaseModel):
    """Outcome of sending an appointment reminder."""

    sent: bool
    to: str
    template: str
