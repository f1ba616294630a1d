"""Organization (tenant) table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    Text,
    func,
    text,
)

from app.models.base import metadata

organizations = Table(
    "organizations",
    metadata,
    Column("id", Integer, primary_key=True),
    # Fiscal identity, printed on invoices and consent documents
    Column("name", Text, nullable=False),
    Column("tax_id", String(20)),
    Column("address", Text),
    Column("postal_code", String(10)),
    Column("city", Text),
    Column("province", Text),
    Column("country", Text, nullable=False, server_default=text("'España'")),
    Column("email", Text),
    Column("phone", String(20)),
    Column("website", Text),
    Column("logo_url", Text),
    # Invoice numbering, one counter per invoice type
    Column("invoice_prefix", String(10), nullable=False, server_default=text("'F'")),
    Column("last_invoice_number", Integer, nullable=False, server_default=text("0")),
    Column("last_rectificative_invoice_number", Integer, nullable=False, server_default=text("0")),
    Column("last_simplified_invoice_number", Integer, nullable=False, server_default=text("0")),
    # Mirror of the payment provider's subscription state
    Column("stripe_customer_id", Text, unique=True),
    Column("stripe_subscription_id", Text, index=True),
    Column("subscription_status", String(30)),
    Column("subscription_plan", String(30)),
    Column("subscription_interval", String(10)),
    Column("subscription_expires", DateTime(timezone=True)),
    Column("trial_ends_at", DateTime(timezone=True)),
    Column("cancel_at_period_end", Boolean, nullable=False, server_default=text("false")),
    Column("stripe_payment_method_id", Text),
    Column("card_brand", String(20)),
    Column("card_last4", String(4)),
    Column("card_exp_month", Integer),
    Column("card_exp_year", Integer),
    Column("active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
)
