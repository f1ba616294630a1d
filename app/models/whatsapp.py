"""WhatsApp Business channel tables using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    SmallInteger,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)

from app.models.base import metadata

# Channel 1 is WhatsApp
WHATSAPP_CHANNEL_ID = 1

channel_organizations = Table(
    "channel_organizations",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("channel_id", SmallInteger, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("organization_id", "channel_id", name="uq_channel_organizations_pair"),
)

waba = Table(
    "waba",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "channel_organization_id",
        Integer,
        ForeignKey("channel_organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("phone_number", String(20)),
    Column("name", Text),
    Column("description", Text),
    Column("project_id", Text),
    Column("api_token", Text, nullable=False),
    Column("webhook_url", Text),
    # 0 = pending configuration, 1 = active
    Column("status", SmallInteger, nullable=False, server_default=text("0")),
    Column("webhook_configured", Boolean, nullable=False, server_default=text("false")),
    Column("templates_created", Boolean, nullable=False, server_default=text("false")),
    # Names of the setup templates the provider has accepted so far
    Column("created_templates", JSON, nullable=False, server_default=text("'[]'")),
    Column("last_setup_error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
)
