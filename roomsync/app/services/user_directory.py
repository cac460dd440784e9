"""
services/user_directory.py — Dereferences user ids to display records.

The directory is the only way the core looks at users. It is a separate
object (rather than a relationship on Group) because a dereference can fail
independently of the primary group read: the user row may be gone, or the
lookup itself may error. Callers choose how to react:

  resolve(user_id)  → User          the reference is live
                    → None          the user was deleted / has no display name
                    raises DependencyFailure   the lookup itself failed

GroupService recovers from both failure shapes on the owner path; everything
else lets DependencyFailure propagate.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomsync.app.errors import DependencyFailure
from roomsync.app.models.user import User

logger = logging.getLogger(__name__)


def user_view(user: User) -> dict:
    """Display fields exposed for owners and members in a group view."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "bio": user.bio or "",
        "average_rating": user.average_rating or 0,
    }


class UserDirectory:

    def __init__(self, session: Session) -> None:
        self._session = session

    def resolve(self, user_id: str) -> User | None:
        try:
            user = self._session.get(User, user_id)
        except SQLAlchemyError as exc:
            logger.warning("User lookup failed for %s: %s", user_id, exc)
            raise DependencyFailure(
                "The user directory is unavailable.",
                details={"user_id": user_id},
            ) from exc

        if user is None or not user.name:
            return None
        return user

    def set_group_name(self, user_ids: Iterable[str], group_name: str | None) -> None:
        """Batch-updates the cached group_name of every user in `user_ids`."""
        ids = list(user_ids)
        if not ids:
            return
        try:
            self._session.execute(
                update(User)
                .where(User.id.in_(ids))
                .values(group_name=group_name)
            )
        except SQLAlchemyError as exc:
            raise DependencyFailure(
                "Could not update the users' group name.",
                details={"user_ids": ids},
            ) from exc
