"""Client (patient) and tag tables using SQLAlchemy Core."""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)

from app.models.base import metadata

clients = Table(
    "clients",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", Text, nullable=False),
    Column("tax_id", String(20)),
    Column("email", Text),
    # Stored normalized (national digits only)
    Column("phone", String(20), index=True),
    Column("address", Text),
    Column("postal_code", String(10)),
    Column("city", Text),
    Column("province", Text),
    Column("country", Text),
    Column("birth_date", Date),
    Column("gender", String(20)),
    Column("client_type", String(20), nullable=False, server_default=text("'private'")),
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    UniqueConstraint("organization_id", "phone", name="uq_clients_organization_phone"),
)

organization_tags = Table(
    "organization_tags",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", String(50), nullable=False),
    Column("color", String(20), nullable=False, server_default=text("'#6366f1'")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("organization_id", "name", name="uq_organization_tags_name"),
)

client_tags = Table(
    "client_tags",
    metadata,
    Column(
        "client_id",
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Integer,
        ForeignKey("organization_tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
