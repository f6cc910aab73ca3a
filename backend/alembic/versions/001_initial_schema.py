"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op

from parts_recovery.database import Base
import parts_recovery.models  # noqa: F401

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Baseline: every table as declared in parts_recovery.models at this revision.
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
