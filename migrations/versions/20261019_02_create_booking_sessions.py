"""create booking sessions

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19 15:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "booking_sessions",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("session_number", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time", sa.Time(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("attended_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("booking_id", "session_number", name="uq_booking_sessions_number"),
    )
    op.create_index("ix_booking_sessions_id", "booking_sessions", ["id"], unique=False)
    op.create_index("ix_booking_sessions_booking_id", "booking_sessions", ["booking_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_booking_sessions_booking_id", table_name="booking_sessions")
    op.drop_index("ix_booking_sessions_id", table_name="booking_sessions")
    op.drop_table("booking_sessions")
