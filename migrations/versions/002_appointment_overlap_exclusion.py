"""Exclusion constraint: occupying appointments of one provider never overlap.

Revision ID: 002_overlap_exclusion
Revises: 001_initial
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op


revision: str = "002_overlap_exclusion"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    if op.get_context().dialect.name != "postgresql":
        return
    # btree_gist provides the gist operator class for the integer equality part
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT ex_appointments_provider_no_overlap
        EXCLUDE USING gist (
            provider_id WITH =,
            tsrange(scheduled_at, ends_at, '[)') WITH &&
        )
        WHERE (status IN ('scheduled', 'confirmed', 'in_progress'))
        """
    )


def downgrade() -> None:
    if op.get_context().dialect.name != "postgresql":
        return
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS ex_appointments_provider_no_overlap")
