"""Group activities and their participants using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
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

group_activities = Table(
    "group_activities",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", Text, nullable=False),
    Column("description", Text),
    Column("date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("professional_id", Uuid, ForeignKey("users.id"), nullable=False),
    Column("consultation_id", Uuid, ForeignKey("consultations.id", ondelete="SET NULL")),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="SET NULL")),
    Column("max_participants", Integer, nullable=False),
    Column("current_participants", Integer, nullable=False, server_default=text("0")),
    Column("color", String(20)),
    Column("status", String(20), nullable=False, server_default=text("'active'")),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    CheckConstraint("status IN ('active', 'completed', 'cancelled')", name="status"),
    CheckConstraint("max_participants > 0", name="capacity_positive"),
    CheckConstraint(
        "current_participants >= 0 AND current_participants <= max_participants",
        name="capacity",
    ),
    CheckConstraint("end_time > start_time", name="time_range"),
    Index("ix_group_activities_professional_date", "professional_id", "date"),
)

group_activity_participants = Table(
    "group_activity_participants",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column(
        "group_activity_id",
        Uuid,
        ForeignKey("group_activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
    Column("status", String(20), nullable=False, server_default=text("'registered'")),
    Column("notes", Text),
    Column("registration_date", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('registered', 'attended', 'no_show', 'cancelled')",
        name="status",
    ),
)
