"""Appointments table using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("professional_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("consultation_id", Uuid, ForeignKey("consultations.id", ondelete="SET NULL")),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="SET NULL")),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="SET NULL")),
    Column("status", String(20), nullable=False, server_default=text("'confirmed'")),
    Column("notes", Text),
    # {"type": "weekly", "interval": 1, "end_date": "2024-12-31"}
    Column("recurrence", JSON),
    # Shared by every occurrence created from one recurring request
    Column("recurrence_group_id", Uuid, index=True),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    CheckConstraint(
        "status IN ('confirmed', 'pending', 'cancelled', 'completed', 'no_show')",
        name="status",
    ),
    CheckConstraint("end_time > start_time", name="time_range"),
    Index("ix_appointments_professional_date", "professional_id", "date"),
    Index("ix_appointments_consultation_date", "consultation_id", "date"),
)
