"""initial scheduling schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

COMMITTED = "status IN ('PENDING','CONFIRMED','SCHEDULED','IN_PROGRESS')"
SLOT_INDEX = "ux_tutor_sessions_tutor_start_committed"

availability_kind = sa.Enum("RECURRING", "SPECIFIC_DATE", name="availability_kind_enum")
session_type = sa.Enum("ONLINE", "OFFLINE", name="session_type_enum")
session_status = sa.Enum(
    "PENDING",
    "CONFIRMED",
    "SCHEDULED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    "REJECTED",
    name="session_status_enum",
)
registration_status = sa.Enum(
    "PENDING", "ACTIVE", "INACTIVE", "CANCELLED", name="registration_status_enum"
)
notification_status = sa.Enum("UNREAD", "READ", name="notification_status_enum")


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "availability_windows",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tutor_id", sa.String(length=64), nullable=False),
        sa.Column("kind", availability_kind, nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("max_slots", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name=op.f("ck_availability_windows_day_of_week_range"),
        ),
        sa.CheckConstraint(
            "(kind = 'RECURRING' AND day_of_week IS NOT NULL AND specific_date IS NULL)"
            " OR (kind = 'SPECIFIC_DATE' AND specific_date IS NOT NULL AND day_of_week IS NULL)",
            name=op.f("ck_availability_windows_kind_discriminator"),
        ),
        sa.CheckConstraint(
            "end_time > start_time", name=op.f("ck_availability_windows_time_order")
        ),
        sa.CheckConstraint(
            "max_slots >= 1", name=op.f("ck_availability_windows_max_slots_positive")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_availability_windows")),
    )
    op.create_index(
        op.f("ix_availability_windows_tutor_id"), "availability_windows", ["tutor_id"]
    )
    op.create_index(
        "ix_availability_tutor_weekday",
        "availability_windows",
        ["tutor_id", "day_of_week", "is_active"],
    )
    op.create_index(
        "ix_availability_tutor_date",
        "availability_windows",
        ["tutor_id", "specific_date", "is_active"],
    )

    op.create_table(
        "tutor_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tutor_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _ts("starts_at"),
        _ts("ends_at"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("session_type", session_type, nullable=False),
        sa.Column("meeting_link", sa.String(length=500), nullable=True),
        sa.Column("location", sa.String(length=160), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("status", session_status, nullable=False),
        sa.Column("requested_by", sa.String(length=64), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        _ts("confirmed_at", nullable=True),
        _ts("rejected_at", nullable=True),
        _ts("cancelled_at", nullable=True),
        sa.Column("has_report", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("ends_at > starts_at", name=op.f("ck_tutor_sessions_time_order")),
        sa.CheckConstraint(
            "duration_minutes > 0", name=op.f("ck_tutor_sessions_duration_positive")
        ),
        sa.CheckConstraint(
            "max_participants >= 1", name=op.f("ck_tutor_sessions_max_participants_positive")
        ),
        sa.CheckConstraint(
            "participant_count >= 0", name=op.f("ck_tutor_sessions_participant_count_positive")
        ),
        sa.CheckConstraint(
            "participant_count <= max_participants",
            name=op.f("ck_tutor_sessions_participant_count_lte_max"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tutor_sessions")),
    )
    op.create_index("ix_tutor_sessions_tutor_start", "tutor_sessions", ["tutor_id", "starts_at"])
    op.create_index("ix_tutor_sessions_status_start", "tutor_sessions", ["status", "starts_at"])
    op.create_index(
        "ix_tutor_sessions_subject_status", "tutor_sessions", ["subject_id", "status"]
    )
    # só sessões que ocupam o horário entram na unicidade
    op.create_index(
        SLOT_INDEX,
        "tutor_sessions",
        ["tutor_id", "starts_at"],
        unique=True,
        postgresql_where=sa.text(COMMITTED),
        sqlite_where=sa.text(COMMITTED),
    )

    op.create_table(
        "session_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        _ts("registered_at"),
        sa.Column("attended", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["tutor_sessions.id"],
            name=op.f("fk_session_participants_session_id_tutor_sessions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_session_participants")),
        sa.UniqueConstraint(
            "session_id", "student_id", name="uq_participant_session_student"
        ),
    )
    op.create_index("ix_participant_student_id", "session_participants", ["student_id"])

    op.create_table(
        "course_registrations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("tutor_id", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("status", registration_status, nullable=False),
        _ts("registered_at"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_course_registrations")),
    )
    op.create_index(
        "ix_registration_lookup",
        "course_registrations",
        ["student_id", "tutor_id", "subject_id", "status"],
    )
    op.create_index(
        "ix_registration_tutor_status", "course_registrations", ["tutor_id", "status"]
    )

    op.create_table(
        "tutor_calendars",
        sa.Column("tutor_id", sa.String(length=64), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("tutor_id", name=op.f("pk_tutor_calendars")),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=60), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", notification_status, nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notifications")),
    )
    op.create_index(
        "ix_notification_recipient_status", "notifications", ["recipient_id", "status"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        _ts("timestamp_utc"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index("ix_audit_timestamp_utc", "audit_logs", ["timestamp_utc"])
    op.create_index("ix_audit_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_entity", "audit_logs", ["entity", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("tutor_calendars")
    op.drop_table("course_registrations")
    op.drop_table("session_participants")
    op.drop_index(SLOT_INDEX, table_name="tutor_sessions")
    op.drop_table("tutor_sessions")
    op.drop_table("availability_windows")

    bind = op.get_bind()
    for enum_type in (
        notification_status,
        registration_status,
        session_status,
        session_type,
        availability_kind,
    ):
        enum_type.drop(bind, checkfirst=True)
