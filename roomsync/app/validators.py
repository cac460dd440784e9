"""
validators.py — Input checks for direct (non-HTTP) callers of the services.

marshmallow schemas are the primary gate at the HTTP edge. Services can also
be driven from the CLI or another Python caller, so the few checks that
protect the store (id format, name length, invite code shape) are repeated
here and raise AppError(INVALID_FIELD, 400) instead of a marshmallow
ValidationError.
"""

from __future__ import annotations

from roomsync.app.errors import AppError, ErrorCode
from roomsync.app.ids import is_record_id
from roomsync.app.models.group import INVITE_CODE_LENGTH

GROUP_NAME_MAX_LENGTH = 100


def require_record_id(value, field: str) -> str:
    """Returns `value` unchanged if it is a well-formed record id."""
    if not is_record_id(value):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{field} must be a valid record id.",
            400,
            field=field,
        )
    return value


def clean_group_name(name, field: str = "name") -> str:
    """Trims `name` and checks 1..100 characters. Returns the trimmed value."""
    if not isinstance(name, str) or not name.strip():
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Group name is required.",
            400,
            field=field,
        )
    cleaned = name.strip()
    if len(cleaned) > GROUP_NAME_MAX_LENGTH:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"Group name must be {GROUP_NAME_MAX_LENGTH} characters or fewer.",
            400,
            field=field,
        )
    return cleaned


def clean_invite_code(code, field: str = "invite_code") -> str:
    """Normalises an invite code to upper case and checks its shape."""
    if not isinstance(code, str):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Invite code is required.",
            400,
            field=field,
        )
    cleaned = code.strip().upper()
    if len(cleaned) != INVITE_CODE_LENGTH or not (cleaned.isascii() and cleaned.isalnum()):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"Invite code must be exactly {INVITE_CODE_LENGTH} letters or digits.",
            400,
            field=field,
        )
    return cleaned
