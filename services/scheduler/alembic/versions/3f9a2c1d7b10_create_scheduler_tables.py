"""create scheduler tables

Revision ID: 3f9a2c1d7b10
Revises:
Create Date: 2025-05-01 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f9a2c1d7b10"
down_revision = None
branch_labels = None
depends_on = None

meeting_status = sa.Enum("pending", "scheduled", "cancelled", name="meetingstatus")
invitation_status = sa.Enum("pending", "accepted", "declined", name="invitationstatus")


def upgrade() -> None:
    op.create_table(
        "scheduler_meetings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organizer_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("join_token", sa.String(length=64), nullable=True),
        sa.Column("date_range_start", sa.Date(), nullable=False),
        sa.Column("date_range_end", sa.Date(), nullable=False),
        sa.Column("window_start", sa.Time(), nullable=False),
        sa.Column("window_end", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("status", meeting_status, nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_start", sa.String(length=40), nullable=True),
        sa.Column("scheduled_end", sa.String(length=40), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.String(length=40), nullable=True),
        sa.Column("updated_at", sa.String(length=40), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("join_token"),
    )
    op.create_index(
        "ix_scheduler_meetings_organizer_id",
        "scheduler_meetings",
        ["organizer_id"],
    )

    op.create_table(
        "scheduler_participants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_id", sa.String(length=36), nullable=False),
        sa.Column("participant_id", sa.String(length=255), nullable=False),
        sa.Column("invitation_token", sa.String(length=64), nullable=False),
        sa.Column("status", invitation_status, nullable=False),
        sa.Column("has_responded", sa.Boolean(), nullable=False),
        sa.Column("invited_at", sa.String(length=40), nullable=True),
        sa.Column("responded_at", sa.String(length=40), nullable=True),
        sa.ForeignKeyConstraint(
            ["meeting_id"], ["scheduler_meetings.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invitation_token"),
        sa.UniqueConstraint(
            "meeting_id", "participant_id", name="_meeting_participant_uc"
        ),
    )
    op.create_index(
        "ix_scheduler_participants_participant_id",
        "scheduler_participants",
        ["participant_id"],
    )

    op.create_table(
        "scheduler_busy_intervals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_id", sa.String(length=36), nullable=False),
        sa.Column("participant_id", sa.String(length=255), nullable=True),
        sa.Column("start", sa.String(length=40), nullable=False),
        sa.Column("end", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["meeting_id"], ["scheduler_meetings.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("scheduler_busy_intervals")
    op.drop_index(
        "ix_scheduler_participants_participant_id",
        table_name="scheduler_participants",
    )
    op.drop_table("scheduler_participants")
    op.drop_index("ix_scheduler_meetings_organizer_id", table_name="scheduler_meetings")
    op.drop_table("scheduler_meetings")
    # Postgres keeps enum types after their tables are gone
    invitation_status.drop(op.get_bind(), checkfirst=True)
    meeting_status.drop(op.get_bind(), checkfirst=True)
