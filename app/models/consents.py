"""Consent forms, signing tokens and signed consents using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

consent_forms = Table(
    "consent_forms",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("title", Text, nullable=False),
    # HTML with {{ORGANIZATION_*}} placeholders
    Column("content", Text, nullable=False),
    Column("description", Text),
    Column("category", String(50), nullable=False, server_default=text("'general'")),
    Column("version", String(20), nullable=False, server_default=text("'1.0'")),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
)

consent_tokens = Table(
    "consent_tokens",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column("token", String(64), nullable=False, unique=True, index=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("consent_form_id", Uuid, ForeignKey("consent_forms.id", ondelete="CASCADE"), nullable=False),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="CASCADE")),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("used_at", DateTime(timezone=True)),
    Column("sent_via", String(20), nullable=False, server_default=text("'manual'")),
    # Snapshot of the rendered content at generation time
    Column("recipient_info", JSON),
    Column("signature_data", JSON),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("sent_via IN ('whatsapp', 'email', 'qr', 'manual')", name="sent_via"),
)

patient_consents = Table(
    "patient_consents",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid.uuid4),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="SET NULL"), index=True),
    Column("consent_form_id", Uuid, ForeignKey("consent_forms.id"), nullable=False),
    Column("token_id", Uuid, ForeignKey("consent_tokens.id"), unique=True),
    Column("patient_name", Text, nullable=False),
    Column("patient_tax_id", String(20), nullable=False),
    # data:image/png;base64,...
    Column("signature_base64", Text, nullable=False),
    Column("signed_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("browser_info", JSON),
    Column("identity_verified", Boolean, nullable=False, server_default=text("false")),
    Column("is_valid", Boolean, nullable=False, server_default=text("true")),
    Column("terms_accepted", Boolean, nullable=False, server_default=text("false")),
    Column("terms_accepted_at", DateTime(timezone=True)),
    Column("document_read_understood", Boolean, nullable=False, server_default=text("false")),
    Column("document_read_understood_at", DateTime(timezone=True)),
    Column("marketing_notifications_accepted", Boolean, nullable=False, server_default=text("false")),
    Column("marketing_accepted_at", DateTime(timezone=True)),
    Column("marketing_rejected_at", DateTime(timezone=True)),
    Column("medical_treatment_accepted", Boolean, nullable=False, server_default=text("false")),
    Column("medical_treatment_accepted_at", DateTime(timezone=True)),
    Column("acceptance_text_version", String(10), nullable=False, server_default=text("'v1.0'")),
    Column("consent_content", Text, nullable=False),
    Column("organization_data", JSON),
    Column("revoked_at", DateTime(timezone=True)),
)
