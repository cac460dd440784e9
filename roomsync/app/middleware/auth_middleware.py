"""
middleware/auth_middleware.py — Bearer token verification decorator.

Tokens are issued by the external auth service; this core only verifies
them. The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (HS256, shared secret)
  3. Checks token expiry
  4. Attaches the `sub` claim (a record id string) to flask.g.user_id
  5. Raises the appropriate 401 error if any step fails

Strict responsibility boundary:
  - Middleware = authentication (401). Services = authorization (403).
  - Services receive user_id as a plain string argument, with no knowledge
    of JWT or HTTP headers.
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from roomsync.app.errors import AppError, ErrorCode
from roomsync.app.ids import is_record_id


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer authentication.

    Usage:
        @groups_bp.route("/", methods=["GET"])
        @require_auth
        def get_my_group():
            user_id = g.user_id  # always a record id string when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full token check and sets flask.g.user_id.

    Raises AppError on any authentication failure (never returns a response
    directly — error propagates to the global Flask error handler).
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    raw_token = parts[1]

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Obtain a new one from the auth service.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, invalid claims, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract and validate the sub (user id) claim ──────────────
    sub = payload.get("sub")
    if not is_record_id(sub):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user id.",
            401,
        )

    g.user_id = sub
