"""
services/group_service.py — Group membership and ownership consistency.

Invariants enforced here:
  - One group per user          ALREADY_IN_GROUP (409)
  - Capacity                    GROUP_FULL (409), 1 <= members <= 8
  - Owner is a valid member     repaired on read (get_group_for_user)
  - Owner-only operations       NOT_OWNER (403)

Concurrency:
  The one-group-per-user check is read-then-write. It is not wrapped in a
  transaction spanning the check and the insert; UNIQUE(memberships.user_id)
  catches the losing side of a race and the IntegrityError is reported as
  ALREADY_IN_GROUP. An invite code taken by a concurrent create between the
  uniqueness check and the insert surfaces as INVITE_CODE_EXHAUSTED (503,
  retryable). Two concurrent owner repairs on the same group are harmless:
  both pick the same deterministic successor.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session dependency.
  - Commits are the caller's responsibility — only flush here.
  - Instances are stateless; build one per request with its dependencies.
"""

from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roomsync.app.errors import AppError, DependencyFailure, ErrorCode
from roomsync.app.models.group import GROUP_CAPACITY, INVITE_CODE_LENGTH, Group
from roomsync.app.models.membership import Membership
from roomsync.app.services.ownership import (
    oldest_member,
    placeholder_owner,
    transfer_to_successor,
)
from roomsync.app.services.user_directory import UserDirectory, user_view
from roomsync.app.validators import (
    clean_group_name,
    clean_invite_code,
    require_record_id,
)

logger = logging.getLogger(__name__)

_INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
_INVITE_CODE_ATTEMPTS = 10


def generate_invite_code() -> str:
    return "".join(
        secrets.choice(_INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
    )


def _build_group_dict(group: Group, owner: dict, members: list[dict]) -> dict:
    """Serialises a Group view. `members` entries carry join dates."""
    return {
        "id": group.id,
        "name": group.name,
        "invite_code": group.invite_code,
        "owner": owner,
        "members": members,
        "member_count": len(group.memberships),
        "capacity": GROUP_CAPACITY,
        "is_full": len(group.memberships) >= GROUP_CAPACITY,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


class GroupService:

    def __init__(self, session: Session, directory: UserDirectory) -> None:
        self.session = session
        self.directory = directory

    # ── Private helpers ────────────────────────────────────────────────────

    def _find_group_for_user(self, user_id: str) -> Group | None:
        return self.session.execute(
            select(Group)
            .join(Membership, Group.id == Membership.group_id)
            .where(Membership.user_id == user_id)
        ).scalar_one_or_none()

    def _require_group_for_user(self, user_id: str) -> Group:
        group = self._find_group_for_user(user_id)
        if group is None:
            raise AppError(
                ErrorCode.NOT_IN_GROUP,
                "You are not a member of any group.",
                404,
            )
        return group

    def _require_owner(self, group: Group, caller_id: str, action: str) -> None:
        if group.owner_user_id != caller_id:
            raise AppError(
                ErrorCode.NOT_OWNER,
                f"Only the group owner can {action}.",
                403,
            )

    def _ensure_not_in_any_group(self, user_id: str) -> None:
        existing = self._find_group_for_user(user_id)
        if existing is not None:
            raise AppError(
                ErrorCode.ALREADY_IN_GROUP,
                "You are already a member of a group. Leave it before joining another.",
                409,
                details={"group_id": existing.id},
            )

    def _unique_invite_code(self) -> str:
        for _ in range(_INVITE_CODE_ATTEMPTS):
            code = generate_invite_code()
            taken = self.session.execute(
                select(Group.id).where(Group.invite_code == code)
            ).scalar_one_or_none()
            if taken is None:
                return code
        raise AppError(
            ErrorCode.INVITE_CODE_EXHAUSTED,
            "Could not allocate a unique invite code. Please try again.",
            503,
        )

    def _flush_membership(self, user_id: str) -> None:
        """
        Flushes a new membership (and, on create, its group).

        A UNIQUE(invite_code) hit means a concurrent create took the code we
        checked; any other UNIQUE hit is UNIQUE(user_id), i.e. we lost a
        one-group-per-user race.
        """
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            if "invite_code" in str(exc.orig):
                logger.info("Invite code taken concurrently while user %s created a group", user_id)
                raise AppError(
                    ErrorCode.INVITE_CODE_EXHAUSTED,
                    "Could not allocate a unique invite code. Please try again.",
                    503,
                ) from exc
            logger.info("Concurrent membership insert for user %s rejected", user_id)
            raise AppError(
                ErrorCode.ALREADY_IN_GROUP,
                "You are already a member of a group. Leave it before joining another.",
                409,
            ) from exc

    def _resolve_owner_view(self, group: Group) -> dict:
        """
        Dereferences the owner, repairing the group once if the reference is
        broken. Falls back to the non-persisted placeholder.
        """
        owner = None
        if group.membership_for(group.owner_user_id) is not None:
            try:
                owner = self.directory.resolve(group.owner_user_id)
            except DependencyFailure:
                logger.warning("Owner lookup failed for group %s", group.id)
        if owner is not None:
            return user_view(owner)

        successor = transfer_to_successor(group, self.directory, self.session)
        if successor is None:
            return placeholder_owner()

        try:
            owner = self.directory.resolve(group.owner_user_id)
        except DependencyFailure:
            logger.warning("Owner lookup failed again for group %s after repair", group.id)
            owner = None
        return user_view(owner) if owner is not None else placeholder_owner()

    def _resolve_member_views(self, group: Group) -> list[dict]:
        """Member display records; unresolvable members are left out of the view."""
        views = []
        for membership in group.memberships:
            try:
                user = self.directory.resolve(membership.user_id)
            except DependencyFailure:
                user = None
            if user is None:
                logger.debug(
                    "Hiding unresolvable member %s of group %s",
                    membership.user_id,
                    group.id,
                )
                continue
            view = user_view(user)
            view["joined_at"] = membership.joined_at.isoformat()
            views.append(view)
        return views

    def _view(self, group: Group) -> dict:
        owner = self._resolve_owner_view(group)
        members = self._resolve_member_views(group)
        return _build_group_dict(group, owner, members)

    # ── Public operations ──────────────────────────────────────────────────

    def create_group(self, caller_id: str, name: str) -> dict:
        """
        Creates a new group. The creator becomes the owner and first member.

        Raises:
          AppError(INVALID_FIELD, 400)     — name blank or over 100 characters
          AppError(ALREADY_IN_GROUP, 409)  — caller already belongs to a group
        """
        require_record_id(caller_id, "user_id")
        cleaned = clean_group_name(name)
        self._ensure_not_in_any_group(caller_id)

        group = Group(
            name=cleaned,
            invite_code=self._unique_invite_code(),
            owner_user_id=caller_id,
        )
        group.memberships.append(Membership(user_id=caller_id))
        self.session.add(group)
        self._flush_membership(caller_id)

        self.directory.set_group_name([caller_id], group.name)
        logger.info("User %s created group %s (%s)", caller_id, group.id, group.invite_code)
        return self._view(group)

    def join_group(self, caller_id: str, invite_code: str) -> dict:
        """
        Adds the caller to the group with `invite_code`.

        Raises:
          AppError(INVALID_FIELD, 400)     — code is not 4 letters/digits
          AppError(GROUP_NOT_FOUND, 404)   — no group has that code
          AppError(ALREADY_MEMBER, 409)    — caller is already in this group
          AppError(ALREADY_IN_GROUP, 409)  — caller is in a different group
          AppError(GROUP_FULL, 409)        — group already has 8 members
        """
        require_record_id(caller_id, "user_id")
        code = clean_invite_code(invite_code)

        group = self.session.execute(
            select(Group).where(Group.invite_code == code)
        ).scalar_one_or_none()
        if group is None:
            raise AppError(
                ErrorCode.GROUP_NOT_FOUND,
                f"No group uses the invite code {code}.",
                404,
                field="invite_code",
            )

        if group.membership_for(caller_id) is not None:
            raise AppError(
                ErrorCode.ALREADY_MEMBER,
                "You are already a member of this group.",
                409,
            )

        self._ensure_not_in_any_group(caller_id)

        member_count = len(group.memberships)
        if member_count >= GROUP_CAPACITY:
            raise AppError(
                ErrorCode.GROUP_FULL,
                f"This group is full ({member_count}/{GROUP_CAPACITY} members).",
                409,
                details={"member_count": member_count, "capacity": GROUP_CAPACITY},
            )

        group.memberships.append(Membership(user_id=caller_id))
        self._flush_membership(caller_id)

        self.directory.set_group_name([caller_id], group.name)
        logger.info("User %s joined group %s", caller_id, group.id)
        return self._view(group)

    def get_group_for_user(self, user_id: str) -> dict:
        """
        Returns the caller's group with owner and members dereferenced.

        Self-healing: if the owner cannot be dereferenced, ownership moves to
        the oldest resolvable member (flushed, so the route's commit persists
        it). If nobody resolves, the view carries a placeholder owner that is
        never written back. Unresolvable members are omitted from the view
        only.

        Raises:
          AppError(NOT_IN_GROUP, 404) — the user belongs to no group
        """
        require_record_id(user_id, "user_id")
        group = self._require_group_for_user(user_id)
        return self._view(group)

    def update_group_name(self, caller_id: str, new_name: str) -> dict:
        """
        Renames the caller's group and cascades the new name into every
        member's cached group_name. Owner only.
        """
        require_record_id(caller_id, "user_id")
        cleaned = clean_group_name(new_name)
        group = self._require_group_for_user(caller_id)
        self._require_owner(group, caller_id, "rename the group")

        if cleaned != group.name:
            group.name = cleaned
            self.session.flush()
            self.directory.set_group_name(group.member_ids, cleaned)
            logger.info("Group %s renamed by %s", group.id, caller_id)

        return self._view(group)

    def transfer_ownership(self, caller_id: str, new_owner_id: str) -> dict:
        """
        Hands ownership to another member. Owner only.

        Raises:
          AppError(NOT_OWNER, 403)      — caller is not the owner
          AppError(ALREADY_OWNER, 409)  — target already owns the group
          AppError(NOT_A_MEMBER, 404)   — target is not in the group
        """
        require_record_id(caller_id, "user_id")
        require_record_id(new_owner_id, "new_owner_id")
        group = self._require_group_for_user(caller_id)
        self._require_owner(group, caller_id, "transfer ownership")

        if new_owner_id == group.owner_user_id:
            raise AppError(
                ErrorCode.ALREADY_OWNER,
                "That user already owns the group.",
                409,
                field="new_owner_id",
            )

        if group.membership_for(new_owner_id) is None:
            raise AppError(
                ErrorCode.NOT_A_MEMBER,
                f"User {new_owner_id} is not a member of this group.",
                404,
                field="new_owner_id",
            )

        group.owner_user_id = new_owner_id
        self.session.flush()
        logger.info("Group %s ownership: %s -> %s", group.id, caller_id, new_owner_id)
        return self._view(group)

    def remove_member(self, caller_id: str, member_id: str) -> dict:
        """
        Removes another member from the group. Owner only.

        Raises:
          AppError(NOT_OWNER, 403)            — caller is not the owner
          AppError(CANNOT_REMOVE_OWNER, 409)  — target is the owner
          AppError(MEMBER_NOT_FOUND, 404)     — target is not a member
        """
        require_record_id(caller_id, "user_id")
        require_record_id(member_id, "member_id")
        group = self._require_group_for_user(caller_id)
        self._require_owner(group, caller_id, "remove members")

        if member_id == group.owner_user_id:
            raise AppError(
                ErrorCode.CANNOT_REMOVE_OWNER,
                "The owner cannot be removed. Transfer ownership first.",
                409,
                field="member_id",
            )

        membership = group.membership_for(member_id)
        if membership is None:
            raise AppError(
                ErrorCode.MEMBER_NOT_FOUND,
                f"User {member_id} is not a member of this group.",
                404,
                field="member_id",
            )

        group.memberships.remove(membership)
        self.session.flush()
        self.directory.set_group_name([member_id], None)
        logger.info("User %s removed %s from group %s", caller_id, member_id, group.id)
        return self._view(group)

    def leave_group(self, caller_id: str) -> dict:
        """
        Removes the caller from their group.

        An owner who leaves hands the group to the oldest remaining member.
        The last member out deletes the group and its tasks. The caller's
        cached group_name is always reset to "".

        Returns: {"group_deleted": bool}
        """
        require_record_id(caller_id, "user_id")
        group = self._require_group_for_user(caller_id)
        membership = group.membership_for(caller_id)

        group.memberships.remove(membership)
        group_deleted = not group.memberships

        if group_deleted:
            self.session.delete(group)
            logger.info("Last member %s left; group %s deleted", caller_id, group.id)
        elif group.owner_user_id == caller_id:
            successor = oldest_member(group.memberships)
            group.owner_user_id = successor.user_id
            logger.info(
                "Owner %s left group %s; ownership -> %s",
                caller_id,
                group.id,
                successor.user_id,
            )

        self.session.flush()
        self.directory.set_group_name([caller_id], "")
        return {"group_deleted": group_deleted}
