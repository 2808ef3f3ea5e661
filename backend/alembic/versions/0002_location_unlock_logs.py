"""location_unlock_logs

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

Audit trail for exact-location reveals: unlocked, skipped and error
decisions from the host endpoint and the scheduled unlock.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

unlock_action = sa.Enum("unlocked", "skipped", "error", name="unlockaction")


def upgrade() -> None:
    # --- location_unlock_logs ---
    op.create_table(
        "location_unlock_logs",
        sa.Column("log_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False, index=True),
        sa.Column("event_title", sa.String(255), nullable=True),
        sa.Column("action", unlock_action, nullable=False),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column("logged_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    op.drop_table("location_unlock_logs")
    unlock_action.drop(op.get_bind(), checkfirst=True)
