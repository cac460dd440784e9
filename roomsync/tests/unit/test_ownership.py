"""
Unit tests for services/ownership.py.

Successor selection is pure, so these tests drive it with SimpleNamespace
memberships and plain resolve callables. No database, no app context.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from roomsync.app.errors import DependencyFailure
from roomsync.app.services import ownership

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _member(user_id: str, minutes: int) -> SimpleNamespace:
    return SimpleNamespace(user_id=user_id, joined_at=T0 + timedelta(minutes=minutes))


def _resolver(*live_ids: str):
    live = set(live_ids)
    return lambda user_id: object() if user_id in live else None


def test_successor_is_earliest_joined_resolvable_member():
    memberships = [_member("carol", 20), _member("alice", 0), _member("bob", 10)]

    chosen = ownership.select_successor(memberships, _resolver("bob", "carol"))

    assert chosen.user_id == "bob"


def test_successor_ignores_list_order():
    forward = [_member("alice", 0), _member("bob", 10)]
    backward = list(reversed(forward))
    resolve = _resolver("alice", "bob")

    assert ownership.select_successor(forward, resolve).user_id == "alice"
    assert ownership.select_successor(backward, resolve).user_id == "alice"


def test_successor_tie_keeps_list_order():
    memberships = [_member("bob", 5), _member("alice", 5)]
    assert ownership.select_successor(memberships, _resolver("alice", "bob")).user_id == "bob"


def test_dependency_failure_only_disqualifies_that_member():
    def resolve(user_id):
        if user_id == "alice":
            raise DependencyFailure("directory down")
        return object()

    memberships = [_member("alice", 0), _member("bob", 10)]

    assert ownership.select_successor(memberships, resolve).user_id == "bob"


def test_no_resolvable_member_returns_none():
    memberships = [_member("alice", 0), _member("bob", 10)]
    assert ownership.select_successor(memberships, _resolver()) is None


def test_empty_group_returns_none():
    assert ownership.select_successor([], _resolver("alice")) is None
    assert ownership.oldest_member([]) is None


def test_naive_and_aware_join_dates_compare():
    # SQLite returns naive datetimes; freshly created rows carry UTC tzinfo.
    naive = SimpleNamespace(user_id="alice", joined_at=datetime(2026, 3, 1, 11, 0))
    aware = _member("bob", 0)

    assert ownership.oldest_member([aware, naive]).user_id == "alice"


def test_transfer_moves_owner_and_flushes():
    group = SimpleNamespace(
        id="g1",
        owner_user_id="alice",
        memberships=[_member("alice", 0), _member("bob", 10), _member("carol", 20)],
    )
    directory = MagicMock()
    directory.resolve.side_effect = _resolver("bob", "carol")
    session = MagicMock()

    successor = ownership.transfer_to_successor(group, directory, session)

    assert successor.user_id == "bob"
    assert group.owner_user_id == "bob"
    session.flush.assert_called_once()


def test_transfer_without_candidates_leaves_group_untouched():
    group = SimpleNamespace(id="g1", owner_user_id="alice", memberships=[_member("alice", 0)])
    directory = MagicMock()
    directory.resolve.return_value = None
    session = MagicMock()

    assert ownership.transfer_to_successor(group, directory, session) is None
    assert group.owner_user_id == "alice"
    session.flush.assert_not_called()


def test_transfer_to_current_owner_does_not_write():
    group = SimpleNamespace(id="g1", owner_user_id="alice", memberships=[_member("alice", 0)])
    directory = MagicMock()
    directory.resolve.return_value = object()
    session = MagicMock()

    successor = ownership.transfer_to_successor(group, directory, session)

    assert successor.user_id == "alice"
    session.flush.assert_not_called()


def test_placeholder_owner_is_a_fresh_copy():
    first = ownership.placeholder_owner()
    first["name"] = "Mutated"

    second = ownership.placeholder_owner()
    assert second["name"] == "Deleted User"
    assert second["id"] == ownership.PLACEHOLDER_OWNER_ID
