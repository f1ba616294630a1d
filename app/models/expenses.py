"""Expenses table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
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
    Uuid,
    func,
    text,
)

from app.models.base import metadata

expenses = Table(
    "expenses",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "organization_id",
        Integer,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    # Professional the expense is attributed to
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True),
    Column("description", Text, nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("expense_date", Date, nullable=False),
    Column("status", String(20), nullable=False, server_default=text("'pending'")),
    Column("payment_method", String(30)),
    Column("supplier_name", Text),
    Column("supplier_tax_id", String(20)),
    Column("is_deductible", Boolean, nullable=False, server_default=text("true")),
    Column("vat_rate", Numeric(5, 2), nullable=False, server_default=text("21")),
    Column("vat_amount", Numeric(12, 2), nullable=False, server_default=text("0")),
    Column("notes", Text),
    Column("created_by", Uuid, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    CheckConstraint("status IN ('pending', 'approved', 'rejected', 'paid')", name="status"),
    CheckConstraint("amount > 0", name="amount_positive"),
)
