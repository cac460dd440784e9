"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before tables that reference them)
  2. Tables in FK dependency order (users, groups → memberships, tasks
     → assignments)
  3. Indexes

Reference policy:
  Columns holding user ids (groups.owner_user_id, memberships.user_id,
  tasks.created_by, assignments.user_id) are plain VARCHARs, not foreign
  keys. User rows are owned by an external service and may disappear; the
  application repairs dangling owner references on read.

ON DELETE policies:
  memberships.group_id    → CASCADE   (memberships owned by group)
  tasks.group_id          → CASCADE   (tasks owned by group)
  assignments.task_id     → CASCADE   (assignments owned by task)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None

_ID = sa.String(36)


def upgrade() -> None:
    """
    Apply the full initial schema.

    Enum types are created via op.execute() so the exact SQL is explicit;
    the columns below reference them with create_type=False.
    """

    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────

    op.execute("""
        CREATE TYPE recurrence_enum AS ENUM (
            'one-time',
            'daily',
            'weekly',
            'bi-weekly',
            'monthly'
        )
    """)

    op.execute("""
        CREATE TYPE assignment_status_enum AS ENUM (
            'incomplete',
            'in-progress',
            'completed'
        )
    """)

    # ── Step 2: users ──────────────────────────────────────────────────────
    # The core writes group_name only; everything else is read.

    op.create_table(
        "users",
        sa.Column("id", _ID, nullable=False),
        sa.Column("name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column(
            "average_rating",
            sa.Float(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("group_name", sa.String(100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "average_rating >= 0 AND average_rating <= 5",
            name="ck_users_average_rating_range",
        ),
    )

    # ── Step 3: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", _ID, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("invite_code", sa.String(4), nullable=False),
        sa.Column("owner_user_id", _ID, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.UniqueConstraint("invite_code", name="uq_groups_invite_code"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        sa.CheckConstraint(
            "LENGTH(invite_code) = 4",
            name="ck_groups_invite_code_length",
        ),
    )

    # ── Step 4: memberships ────────────────────────────────────────────────
    # UNIQUE(user_id): a user belongs to at most one group.

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            _ID,
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", name="uq_memberships_user"),
    )

    # ── Step 5: tasks ──────────────────────────────────────────────────────
    # required_people stays nullable; the scheduler backfills NULL to 1.

    op.create_table(
        "tasks",
        sa.Column("id", _ID, nullable=False),
        sa.Column(
            "group_id",
            _ID,
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_tasks_group"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.Integer(), nullable=False),
        sa.Column(
            "recurrence",
            postgresql.ENUM(
                "one-time", "daily", "weekly", "bi-weekly", "monthly",
                name="recurrence_enum",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("required_people", sa.Integer(), nullable=True),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", _ID, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tasks"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_tasks_name_nonempty",
        ),
        sa.CheckConstraint(
            "difficulty BETWEEN 1 AND 5",
            name="ck_tasks_difficulty_range",
        ),
        sa.CheckConstraint(
            "required_people IS NULL OR required_people BETWEEN 1 AND 10",
            name="ck_tasks_required_people_range",
        ),
        sa.CheckConstraint(
            "recurrence <> 'one-time' OR deadline IS NOT NULL",
            name="ck_tasks_one_time_deadline",
        ),
    )

    # ── Step 6: assignments ────────────────────────────────────────────────
    # UNIQUE(task_id, user_id, week_start): one row per person, task, week.

    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "task_id",
            _ID,
            sa.ForeignKey("tasks.id", ondelete="CASCADE", name="fk_assignments_task"),
            nullable=False,
        ),
        sa.Column("user_id", _ID, nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(
                "incomplete", "in-progress", "completed",
                name="assignment_status_enum",
                create_type=False,
            ),
            nullable=False,
            server_default="incomplete",
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_assignments"),
        sa.UniqueConstraint(
            "task_id", "user_id", "week_start",
            name="uq_assignments_task_user_week",
        ),
        sa.CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_assignments_completed_at_matches_status",
        ),
    )

    # ── Step 7: Indexes ────────────────────────────────────────────────────

    op.create_index("idx_memberships_group", "memberships", ["group_id"])
    op.create_index("idx_tasks_group", "tasks", ["group_id"])
    op.create_index("idx_tasks_created_by", "tasks", ["created_by"])
    op.create_index("idx_assignments_task", "assignments", ["task_id"])
    op.create_index("idx_assignments_user", "assignments", ["user_id"])
    # "My tasks this week" and the scheduler's current-week check.
    op.create_index("idx_assignments_week", "assignments", ["week_start"])


def downgrade() -> None:
    """Drop all objects created in upgrade(), in reverse dependency order."""

    op.drop_index("idx_assignments_week",  table_name="assignments")
    op.drop_index("idx_assignments_user",  table_name="assignments")
    op.drop_index("idx_assignments_task",  table_name="assignments")
    op.drop_index("idx_tasks_created_by",  table_name="tasks")
    op.drop_index("idx_tasks_group",       table_name="tasks")
    op.drop_index("idx_memberships_group", table_name="memberships")

    op.drop_table("assignments")
    op.drop_table("tasks")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS assignment_status_enum")
    op.execute("DROP TYPE IF EXISTS recurrence_enum")
