"""
models/user.py — User table definition.

Users are owned by the external profile/auth service. The core reads their
display fields (name, email, bio, average_rating) and writes exactly one
column: `group_name`, a denormalized cache of the user's current group name.

A user row may disappear while groups still reference its id (account
deletion upstream). Groups and memberships therefore hold plain id columns,
not foreign keys, and the core repairs broken references on read.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from roomsync.app.extensions import db
from roomsync.app.ids import RECORD_ID_LENGTH, new_record_id


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "average_rating >= 0 AND average_rating <= 5",
            name="ck_users_average_rating_range",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        primary_key=True,
        default=new_record_id,
    )

    # May be empty for half-provisioned accounts; an empty name makes the
    # user unresolvable for display purposes (see UserDirectory.resolve).
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    average_rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0,
    )

    # Cache of the current group's name. NULL after removal by the owner,
    # "" after leaving voluntarily.
    group_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} name={self.name!r}>"
