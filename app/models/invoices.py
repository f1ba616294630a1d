"""Invoices and invoice lines using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("client_id", Integer, ForeignKey("clients.id", ondelete="SET NULL")),
    # Assigned when the draft is issued
    Column("invoice_number", String(30)),
    Column("invoice_type", String(20), nullable=False, server_default=text("'normal'")),
    Column("status", String(20), nullable=False, server_default=text("'draft'")),
    Column("issue_date", Date, nullable=False),
    Column("base_amount", Numeric(12, 2), nullable=False, server_default=text("0")),
    Column("vat_amount", Numeric(12, 2), nullable=False, server_default=text("0")),
    Column("irpf_amount", Numeric(12, 2), nullable=False, server_default=text("0")),
    Column("total_amount", Numeric(12, 2), nullable=False, server_default=text("0")),
    Column("notes", Text),
    Column("validated_at", DateTime(timezone=True)),
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
        "invoice_type IN ('normal', 'rectificativa', 'simplificada')",
        name="invoice_type",
    ),
    CheckConstraint("status IN ('draft', 'issued', 'paid', 'cancelled')", name="status"),
    UniqueConstraint("organization_id", "invoice_number", name="uq_invoices_organization_number"),
)

invoice_lines = Table(
    "invoice_lines",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "invoice_id",
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("description", Text, nullable=False),
    Column("quantity", Numeric(10, 2), nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("vat_rate", Numeric(5, 2), nullable=False, server_default=text("0")),
    Column("irpf_rate", Numeric(5, 2), nullable=False, server_default=text("0")),
    Column("line_amount", Numeric(12, 2), nullable=False),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="SET NULL")),
    Column("professional_id", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
)
