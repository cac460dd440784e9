"""
models/task.py — Task table definition.

No business logic. No imports from services or routes.

Key design points:
  - Recurrence is a Python enum so schemas and services never repeat the
    string literals.
  - required_people is nullable: rows created before the column existed carry
    NULL, and the weekly scheduler backfills them to 1 the first time it sees
    them.
  - deadline is mandatory for one-time tasks. "Must be in the future" is a
    creation-time rule and lives in the schema/service, not in a CHECK.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsync.app.extensions import db
from roomsync.app.ids import RECORD_ID_LENGTH, new_record_id

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
MIN_REQUIRED_PEOPLE = 1
MAX_REQUIRED_PEOPLE = 10


class Recurrence(str, enum.Enum):
    ONE_TIME  = "one-time"
    DAILY     = "daily"
    WEEKLY    = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY   = "monthly"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'one-time'), not names ('ONE_TIME')."""
    return [member.value for member in enum_cls]


class Task(db.Model):
    __tablename__ = "tasks"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_tasks_name_nonempty",
        ),
        CheckConstraint(
            f"difficulty BETWEEN {MIN_DIFFICULTY} AND {MAX_DIFFICULTY}",
            name="ck_tasks_difficulty_range",
        ),
        CheckConstraint(
            "required_people IS NULL OR "
            f"required_people BETWEEN {MIN_REQUIRED_PEOPLE} AND {MAX_REQUIRED_PEOPLE}",
            name="ck_tasks_required_people_range",
        ),
        CheckConstraint(
            "recurrence <> 'one-time' OR deadline IS NOT NULL",
            name="ck_tasks_one_time_deadline",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        primary_key=True,
        default=new_record_id,
    )

    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    difficulty: Mapped[int] = mapped_column(Integer, nullable=False)

    recurrence: Mapped[Recurrence] = mapped_column(
        Enum(
            Recurrence,
            name="recurrence_enum",
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    required_people: Mapped[int | None] = mapped_column(Integer, nullable=True)

    deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Plain id, not a FK: the creator's account may be deleted upstream.
    created_by: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="tasks",
    )

    assignments: Mapped[list["Assignment"]] = relationship(  # noqa: F821
        "Assignment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Assignment.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Task id={self.id} name={self.name!r} recurrence={self.recurrence.value}>"
