"""Create report schedule and execution run tables.

Revision ID: 0001_report_schedules
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_report_schedules"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create report schedules and their execution run history."""
    op.create_table(
        "report_schedules",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("report_type", sa.String(length=100), nullable=False),
        sa.Column("agent_alias", sa.String(length=100), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily",
                "weekly",
                "custom",
                name="report_schedule_frequency",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("weekday", sa.String(length=20), nullable=True),
        sa.Column("time_of_day", sa.String(length=5), nullable=False),
        sa.Column("timezone", sa.String(length=100), nullable=False),
        sa.Column("rrule", sa.String(length=1000), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("channels", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_report_schedules_owner_id", "report_schedules", ["owner_id"])
    op.create_index("ix_report_schedules_next_run", "report_schedules", ["next_run"])

    op.create_table(
        "report_execution_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column(
            "schedule_id",
            sa.Uuid(),
            sa.ForeignKey("report_schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "running",
                "completed",
                "failed",
                name="report_execution_run_status",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("output", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_report_execution_runs_owner_id", "report_execution_runs", ["owner_id"]
    )
    op.create_index(
        "ix_report_execution_runs_schedule_id", "report_execution_runs", ["schedule_id"]
    )
    op.create_index("ix_report_execution_runs_status", "report_execution_runs", ["status"])


def downgrade() -> None:
    """Drop report execution runs and schedules."""
    op.drop_index("ix_report_execution_runs_status", table_name="report_execution_runs")
    op.drop_index("ix_report_execution_runs_schedule_id", table_name="report_execution_runs")
    op.drop_index("ix_report_execution_runs_owner_id", table_name="report_execution_runs")
    op.drop_table("report_execution_runs")
    op.drop_index("ix_report_schedules_next_run", table_name="report_schedules")
    op.drop_index("ix_report_schedules_owner_id", table_name="report_schedules")
    op.drop_table("report_schedules")
