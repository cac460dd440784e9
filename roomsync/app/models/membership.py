"""
models/membership.py — Membership table definition.

No business logic. No imports from services or routes.

UNIQUE(user_id) is the store-level backstop for "a user belongs to zero or
one groups". GroupService checks it first (read-then-write) to produce a
precise error; the constraint catches the race between two concurrent
create/join calls from the same user.

user_id is not a foreign key — see models/group.py.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsync.app.extensions import db
from roomsync.app.ids import RECORD_ID_LENGTH


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Membership(db.Model):
    __tablename__ = "memberships"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Deleting a group deletes its memberships.
    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        nullable=False,
        unique=True,
    )

    # Python-side default, stamped at flush (None while the row is pending).
    # Microsecond timestamps from the app clock, not the database's, so join
    # order survives SQLite's second-resolution CURRENT_TIMESTAMP.
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership id={self.id} "
            f"user_id={self.user_id} "
            f"group_id={self.group_id}>"
        )
