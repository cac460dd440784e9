"""
models/assignment.py — Assignment table definition.

One row = one user on the hook for one task during one week.

Constraints:
  - UNIQUE(task_id, user_id, week_start): never two assignments for the same
    person, task and week. The scheduler and assign_task both check before
    inserting; the constraint is the last line of defence.
  - completed_at is set iff status = 'completed'.
  - week_start is a DATE (the Sunday that opens the week), so equality
    comparisons are exact regardless of time zone or DB driver.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsync.app.extensions import db
from roomsync.app.ids import RECORD_ID_LENGTH


class AssignmentStatus(str, enum.Enum):
    INCOMPLETE  = "incomplete"
    IN_PROGRESS = "in-progress"
    COMPLETED   = "completed"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Assignment(db.Model):
    __tablename__ = "assignments"

    __table_args__ = (
        UniqueConstraint(
            "task_id",
            "user_id",
            "week_start",
            name="uq_assignments_task_user_week",
        ),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_assignments_completed_at_matches_status",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    task_id: Mapped[str] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        nullable=False,
        index=True,
    )

    week_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )

    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(
            AssignmentStatus,
            name="assignment_status_enum",
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=AssignmentStatus.INCOMPLETE,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    task: Mapped["Task"] = relationship(  # noqa: F821
        "Task",
        back_populates="assignments",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Assignment id={self.id} task_id={self.task_id} "
            f"user_id={self.user_id} week_start={self.week_start}>"
        )
