"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database in TestingConfig (in-memory SQLite unless
    TEST_DATABASE_URL points elsewhere).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

User accounts belong to an external service, so users are inserted straight
into the users table and tokens are signed with the testing secret.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)          → user id
  - delete_user(app, user_id)    → removes the user row (upstream deletion)
  - token_for(user_id)           → signed bearer token
  - auth_headers(user_id)        → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)      → group dict
  - join_group(client, ...)      → HTTP response
  - make_task(client, ...)       → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from roomsync.app import create_app
from roomsync.app.extensions import db as _db
from roomsync.app.models.user import User
from roomsync.config import TestingConfig


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM assignments"))
            conn.execute(text("DELETE FROM tasks"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, name: str = "alice", email: str | None = None, **fields) -> str:
    """Inserts a user row and returns its id."""
    if email is None:
        email = f"{name or 'user'}-{uuid.uuid4().hex[:12]}@test.com"
    with app.app_context():
        user = User(name=name, email=email, **fields)
        _db.session.add(user)
        _db.session.commit()
        return user.id


def delete_user(app, user_id: str) -> None:
    """Simulates an upstream account deletion."""
    with app.app_context():
        user = _db.session.get(User, user_id)
        _db.session.delete(user)
        _db.session.commit()


def get_user(app, user_id: str) -> dict:
    with app.app_context():
        user = _db.session.get(User, user_id)
        return {"id": user.id, "name": user.name, "group_name": user.group_name}


def token_for(user_id: str, expires_in: timedelta = timedelta(minutes=15)) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, TestingConfig.JWT_SECRET_KEY, algorithm="HS256")


def auth_headers(user_id: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token_for(user_id)}"}


def make_group(client, user_id: str, name: str = "Flat 4B") -> dict:
    """
    Creates a group and returns the group data dict.
    The caller becomes the group owner and first member.
    """
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(user_id),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def join_group(client, user_id: str, invite_code: str):
    """Joins the group with `invite_code`. Returns the HTTP response."""
    return client.post(
        "/api/v1/groups/join",
        json={"invite_code": invite_code},
        headers=auth_headers(user_id),
    )


def future_deadline(days: int = 3) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def make_task(
    client,
    user_id: str,
    name: str = "Dishes",
    difficulty: int = 2,
    recurrence: str = "weekly",
    required_people: int = 1,
    **extra,
):
    """Creates a task in the caller's group. Returns the HTTP response."""
    payload = {
        "name": name,
        "difficulty": difficulty,
        "recurrence": recurrence,
        "required_people": required_people,
    }
    payload.update(extra)
    return client.post(
        "/api/v1/tasks/",
        json=payload,
        headers=auth_headers(user_id),
    )
