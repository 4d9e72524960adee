"""001 – Initial schema: users, sessions, summaries, requests, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000+05:30
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ACTIVE = sa.text("end_time IS NULL")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _user_fk() -> sa.Column:
    return sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False)


# ---------------------------------------------------------------------------
# Upgrade
# ---------------------------------------------------------------------------

def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200)),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Sessions ────────────────────────────────────────────────────
    op.create_table(
        "leave_sessions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True)),
        sa.Column("planned_duration", sa.Integer, nullable=False),
        sa.Column("actual_duration", sa.Integer),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("is_half_day", sa.Boolean, server_default=sa.false()),
        sa.Column("last_reminder_bucket", sa.Integer),
        sa.Column("final_warning_sent", sa.Boolean, server_default=sa.false()),
        sa.Column("auto_converted", sa.Boolean, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index(
        "uq_leave_sessions_active_user", "leave_sessions", ["user_id"],
        unique=True, postgresql_where=ACTIVE,
    )
    op.create_index("ix_leave_sessions_user_date", "leave_sessions", ["user_id", "date"])

    op.create_table(
        "extra_work_sessions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True)),
        sa.Column("duration", sa.Integer),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("work_description", sa.Text),
        sa.Column("completion_notified", sa.Boolean, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index(
        "uq_extra_work_sessions_active_user", "extra_work_sessions", ["user_id"],
        unique=True, postgresql_where=ACTIVE,
    )
    op.create_index("ix_extra_work_sessions_user_date", "extra_work_sessions", ["user_id", "date"])

    # ── Balance ─────────────────────────────────────────────────────
    op.create_table(
        "daily_summaries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("total_leave_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_extra_work_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("shortfall_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pending_extra_work_minutes", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_summaries_user_date"),
    )
    op.create_index("ix_daily_summaries_date", "daily_summaries", ["date"])

    # ── Leave requests ──────────────────────────────────────────────
    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("task_escalation", sa.Text, nullable=False),
        sa.Column("leave_date", sa.Date, nullable=False),
        sa.Column("planned_duration", sa.Integer),
        sa.Column("expected_return_time", sa.DateTime(timezone=True)),
        sa.Column("start_date", sa.Date),
        sa.Column("end_date", sa.Date),
        sa.Column("leave_duration_days", sa.Integer),
        sa.Column("standard_time", sa.Time),
        sa.Column("actual_time", sa.Time),
        sa.Column("shortfall_minutes", sa.Integer),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.String(64)),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("approval_notes", sa.Text),
        *_timestamps(),
    )
    op.create_index("ix_leave_requests_status", "leave_requests", ["status"])
    op.create_index("ix_leave_requests_user_date", "leave_requests", ["user_id", "leave_date"])

    # ── Notifications / audit ───────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipient", sa.String(100), nullable=False),
        sa.Column("type", sa.String(30), nullable=False, server_default="info"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("entity_type", sa.String(50)),
        sa.Column("entity_id", sa.Integer),
        sa.Column("delivered", sa.Boolean, server_default=sa.false()),
        sa.Column("error", sa.Text),
        *_timestamps(),
    )
    op.create_index("ix_notifications_recipient", "notifications", ["recipient"])
    op.create_index("ix_notifications_entity", "notifications", ["entity_type", "entity_id"])

    op.create_table(
        "audit_trail",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64)),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("old_values", sa.JSON),
        sa.Column("new_values", sa.JSON),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_trail_entity", "audit_trail", ["entity_type", "entity_id"])
    op.create_index("ix_audit_trail_created_at", "audit_trail", ["created_at"])


# ---------------------------------------------------------------------------
# Downgrade
# ---------------------------------------------------------------------------

def downgrade() -> None:
    for table in (
        "audit_trail",
        "notifications",
        "leave_requests",
        "daily_summaries",
        "extra_work_sessions",
        "leave_sessions",
        "users",
    ):
        op.drop_table(table)
