"""
services/ownership.py — Successor selection for group ownership.

Used in two places:
  - GroupService.get_group_for_user, when the owner reference is broken
    (owner user deleted, lookup failing, or owner no longer a member).
  - GroupService.leave_group, when the owner walks out.

Rule: the successor is the member with the earliest joined_at among the
candidates. Ties keep list order (min() is stable on the first minimum).

select_successor() is pure: it takes the memberships and a resolve callable,
so it can be unit-tested without a session. transfer_to_successor() applies
the choice to a Group and flushes. Neither ever removes a member.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from roomsync.app.errors import DependencyFailure
from roomsync.app.models.group import Group
from roomsync.app.models.membership import Membership
from roomsync.app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

PLACEHOLDER_OWNER_ID = "deleted-owner"

PLACEHOLDER_OWNER = {
    "id": PLACEHOLDER_OWNER_ID,
    "name": "Deleted User",
    "email": "",
    "bio": "",
    "average_rating": 0,
}


def placeholder_owner() -> dict:
    """Fresh copy of the owner stand-in. Never persisted."""
    return dict(PLACEHOLDER_OWNER)


def _join_key(membership) -> datetime:
    # SQLite hands back naive datetimes for timezone=True columns; treat
    # naive values as UTC so fresh and reloaded rows compare.
    joined_at = membership.joined_at
    if joined_at.tzinfo is None:
        return joined_at.replace(tzinfo=timezone.utc)
    return joined_at.astimezone(timezone.utc)


def oldest_member(memberships: Iterable[Membership]) -> Membership | None:
    candidates = list(memberships)
    if not candidates:
        return None
    return min(candidates, key=_join_key)


def select_successor(
        memberships: Iterable[Membership],
        resolve: Callable[[str], object],
) -> Membership | None:
    """
    Returns the earliest-joined membership whose user resolves, else None.

    `resolve(user_id)` returns a record or None. A DependencyFailure raised
    for one member only disqualifies that member.
    """
    resolvable = []
    for membership in memberships:
        try:
            record = resolve(membership.user_id)
        except DependencyFailure:
            record = None
        if record is not None:
            resolvable.append(membership)

    return oldest_member(resolvable)


def transfer_to_successor(
        group: Group,
        directory: UserDirectory,
        session: Session,
) -> Membership | None:
    """
    Points group.owner_user_id at the selected successor and flushes.

    Returns the successor membership, or None when no member resolves; in
    that case the group is left untouched and the caller falls back to the
    placeholder owner.
    """
    successor = select_successor(group.memberships, directory.resolve)
    if successor is None:
        logger.warning(
            "Group %s has no resolvable member to take over ownership from %s",
            group.id,
            group.owner_user_id,
        )
        return None

    if successor.user_id != group.owner_user_id:
        logger.info(
            "Repairing owner of group %s: %s -> %s",
            group.id,
            group.owner_user_id,
            successor.user_id,
        )
        group.owner_user_id = successor.user_id
        session.flush()

    return successor
