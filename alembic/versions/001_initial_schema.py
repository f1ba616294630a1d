"""Initial schema - organizations, staff, scheduling, billing and consents.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
from app.models import metadata

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every table of the current models."""
    # Later revisions must use explicit operations, never the live metadata
    metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    """Drop every table."""
    metadata.drop_all(bind=op.get_bind())
