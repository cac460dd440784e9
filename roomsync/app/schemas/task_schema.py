"""
schemas/task_schema.py — Marshmallow schemas for task endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values (recurrence, status)
      - difficulty 1..5, required_people 1..10, integers only
      - deadline required when recurrence is 'one-time' (request shape rule)
      - assignee ids well-formed
  - services/task_service.py:
      - deadline in the future (needs the service clock)
      - assignees are group members, no duplicates (needs the roster)
      - creator/owner permission (needs DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly so unit tests can load
           schemas without a Flask application context.
"""

from __future__ import annotations

from datetime import timezone

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from roomsync.app.ids import is_record_id
from roomsync.app.models.assignment import AssignmentStatus
from roomsync.app.models.task import (
    MAX_DIFFICULTY,
    MAX_REQUIRED_PEOPLE,
    MIN_DIFFICULTY,
    MIN_REQUIRED_PEOPLE,
    Recurrence,
)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_record_id(value: str) -> None:
    if not is_record_id(value):
        raise ValidationError("Must be a valid record id.")


# ── Create task ────────────────────────────────────────────────────────────

class CreateTaskSchema(Schema):
    """
    POST /tasks

    Checks in this schema:
      - name non-empty after trim, max 100
      - difficulty / required_people ranges, strict integers
      - deadline present when recurrence='one-time'

    Checks NOT in this schema (belong in service):
      - deadline in the future
      - assigned_user_ids are members of the caller's group
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Task name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="Description must be 500 characters or fewer."),
    )

    difficulty = fields.Int(
        required=True,
        strict=True,  # reject floats like 2.0; integers only
        validate=validate.Range(
            min=MIN_DIFFICULTY,
            max=MAX_DIFFICULTY,
            error=f"Difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}.",
        ),
    )

    recurrence = fields.Enum(
        Recurrence,
        required=True,
        by_value=True,
    )

    required_people = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=MIN_REQUIRED_PEOPLE,
            max=MAX_REQUIRED_PEOPLE,
            error=(
                f"Required people must be between {MIN_REQUIRED_PEOPLE} "
                f"and {MAX_REQUIRED_PEOPLE}."
            ),
        ),
    )

    # ISO 8601. A value without an offset is read as UTC.
    deadline = fields.AwareDateTime(
        load_default=None,
        allow_none=True,
        default_timezone=timezone.utc,
    )

    assigned_user_ids = fields.List(
        fields.Str(validate=_validate_record_id),
        load_default=None,
        allow_none=True,
    )

    @validates_schema
    def validate_one_time_deadline(self, data: dict, **kwargs) -> None:
        if data.get("recurrence") == Recurrence.ONE_TIME and data.get("deadline") is None:
            raise ValidationError(
                "Deadline is required for one-time tasks.",
                field_name="deadline",
            )


# ── Manual assignment ──────────────────────────────────────────────────────

class AssignTaskSchema(Schema):
    """POST /tasks/:id/assign — replaces this week's assignees."""

    user_ids = fields.List(
        fields.Str(validate=_validate_record_id),
        required=True,
        validate=validate.Length(min=1, error="At least one user id is required."),
    )


# ── Status update ──────────────────────────────────────────────────────────

class UpdateTaskStatusSchema(Schema):
    """PUT /tasks/:id/status — one of incomplete, in-progress, completed."""

    status = fields.Enum(
        AssignmentStatus,
        required=True,
        by_value=True,
    )
