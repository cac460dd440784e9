"""
schemas/group_schema.py — Marshmallow schemas for group endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    invite code shape, record id shape.
  - services/group_service.py:
      - NOT_IN_GROUP / GROUP_NOT_FOUND (require DB lookup)
      - ALREADY_IN_GROUP / ALREADY_MEMBER / GROUP_FULL (require DB lookup)
      - NOT_OWNER, ALREADY_OWNER, NOT_A_MEMBER, CANNOT_REMOVE_OWNER

IMPORTANT: Inherits from marshmallow.Schema directly so unit tests can load
           schemas without a Flask application context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from roomsync.app.ids import is_record_id
from roomsync.app.models.group import INVITE_CODE_LENGTH
from roomsync.app.validators import GROUP_NAME_MAX_LENGTH


# ── Shared validators ─────────────────────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks,
# mirroring the DB CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_record_id(value: str) -> None:
    if not is_record_id(value):
        raise ValidationError("Must be a valid record id.")


def _validate_invite_code(value: str) -> None:
    cleaned = value.strip()
    if len(cleaned) != INVITE_CODE_LENGTH or not (cleaned.isascii() and cleaned.isalnum()):
        raise ValidationError(
            f"Invite code must be exactly {INVITE_CODE_LENGTH} letters or digits."
        )


class _GroupNameSchema(Schema):

    # Trimmed length is checked in the service; the raw length cap here only
    # stops absurd payloads before they reach it.
    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=GROUP_NAME_MAX_LENGTH,
                error=f"Group name must be between 1 and {GROUP_NAME_MAX_LENGTH} characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )


class CreateGroupSchema(_GroupNameSchema):
    """POST /groups — name: non-empty after trim, max 100 chars."""


class UpdateGroupNameSchema(_GroupNameSchema):
    """PATCH /groups/name — same rules as creation."""


class JoinGroupSchema(Schema):
    """
    POST /groups/join

    The code is case-insensitive; the service upper-cases it before lookup.
    """

    invite_code = fields.Str(
        required=True,
        validate=_validate_invite_code,
    )


class TransferOwnershipSchema(Schema):
    """PUT /groups/owner — the new owner must already be a member (service)."""

    new_owner_id = fields.Str(
        required=True,
        validate=_validate_record_id,
    )
