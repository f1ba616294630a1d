"""Work schedule and vacation schemas."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ScheduleBreak(BaseModel):
    """Break inside a working day."""

    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_range(self) -> "ScheduleBreak":
        """Break must end after it starts."""
        if self.end_time <= self.start_time:
            raise ValueError("Break end time must be after start time")
        return self


class WorkScheduleCreate(BaseModel):
    """Working hours of a professional for one weekday."""

    user_id: UUID
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday .. 6 = Saturday")
    start_time: time
    end_time: time
    breaks: list[ScheduleBreak] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_range(self) -> "WorkScheduleCreate":
        """Schedule must end after it starts and contain its breaks."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        for item in self.breaks:
            if item.start_time < self.start_time or item.end_time > self.end_time:
                raise ValueError("Breaks must fall inside the working hours")
        return self


class ScheduleBreakResponse(ScheduleBreak):
    """Stored break."""

    id: UUID
    is_active: bool


class WorkScheduleResponse(BaseModel):
    """Stored schedule with its breaks."""

    id: UUID
    user_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool
    breaks: list[ScheduleBreakResponse] = Field(default_factory=list)


class VacationStatus(str, Enum):
    """Vacation request lifecycle."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VacationRequestCreate(BaseModel):
    """Time off requested by a professional."""

    user_id: UUID | None = Field(None, description="Defaults to the requesting user")
    start_date: date
    end_date: date
    reason: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_range(self) -> "VacationRequestCreate":
        """End date cannot precede start date."""
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class VacationReview(BaseModel):
    """Admin decision on a vacation request."""

    status: VacationStatus


class VacationRequestResponse(BaseModel):
    """Vacation request response."""

    id: UUID
    user_id: UUID
    start_date: date
    end_date: date
    status: VacationStatus
    reason: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
