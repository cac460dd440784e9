"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

Invariants that live in the schema:
  - invite_code is UNIQUE and exactly 4 characters.
  - name is non-empty after trim (also enforced by schema and validators).

Invariants that live in GroupService (cannot be expressed as constraints):
  - owner_user_id is one of the group's member user ids.
  - 1 <= member count <= GROUP_CAPACITY.

owner_user_id is deliberately NOT a foreign key: the owner's user row can be
deleted upstream, and the group must survive that so it can be repaired.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsync.app.extensions import db
from roomsync.app.ids import RECORD_ID_LENGTH, new_record_id

GROUP_CAPACITY = 8
INVITE_CODE_LENGTH = 4


class Group(db.Model):
    # 'groups' is a reserved word in some SQL dialects but is valid in
    # PostgreSQL as a quoted identifier; SQLAlchemy handles quoting.
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        CheckConstraint(
            f"LENGTH(invite_code) = {INVITE_CODE_LENGTH}",
            name="ck_groups_invite_code_length",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        primary_key=True,
        default=new_record_id,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    invite_code: Mapped[str] = mapped_column(
        String(INVITE_CODE_LENGTH),
        nullable=False,
        unique=True,
    )

    owner_user_id: Mapped[str] = mapped_column(
        String(RECORD_ID_LENGTH),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    # Always loaded in join order; leave_group and the ownership protocol
    # both rely on "first in list" meaning "joined earliest".
    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Membership.joined_at",
    )

    tasks: Mapped[list["Task"]] = relationship(  # noqa: F821
        "Task",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.memberships]

    def membership_for(self, user_id: str) -> "Membership | None":  # noqa: F821
        for membership in self.memberships:
            if membership.user_id == user_id:
                return membership
        return None

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r} code={self.invite_code}>"
