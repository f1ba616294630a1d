"""Account balance movements using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)

from app.models.base import metadata

balance_movements = Table(
    "balance_movements",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("type", String(10), nullable=False),
    Column("concept", Text, nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    # Provider object id (checkout session, invoice...)
    Column("reference_id", Text, unique=True),
    Column("reference_data", JSON),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("type IN ('ingreso', 'gasto')", name="type"),
)
