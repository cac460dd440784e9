"""
routes/tasks.py — Task and scheduler route handlers.

Layer rules:
  - Parse, validate, call ONE service method, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/tasks), all scoped to the caller's group:
  POST   /                      → 201  create task
  GET    /                      → 200  all group tasks, newest first
  GET    /mine                  → 200  caller's tasks this week
  GET    /week/<YYYY-MM-DD>     → 200  tasks relevant to that week
  GET    /date/<YYYY-MM-DD>     → 200  tasks relevant to that day
  PUT    /<task_id>/status      → 200  update caller's assignment status
  POST   /<task_id>/assign      → 200  replace this week's assignees
  POST   /assign-weekly         → 200  run the weekly scheduler
  DELETE /<task_id>             → 200  delete (creator or owner)
"""

from __future__ import annotations

import random
from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from roomsync.app.errors import AppError, ErrorCode
from roomsync.app.extensions import db
from roomsync.app.middleware.auth_middleware import require_auth
from roomsync.app.schemas.task_schema import (
    AssignTaskSchema,
    CreateTaskSchema,
    UpdateTaskStatusSchema,
)
from roomsync.app.services.task_service import TaskService

tasks_bp = Blueprint("tasks", __name__)


def scheduler_rng() -> random.Random:
    """Seeded from SCHEDULER_RANDOM_SEED when configured, else system-random."""
    return random.Random(current_app.config.get("SCHEDULER_RANDOM_SEED"))


def _task_service() -> TaskService:
    return TaskService(db.session, rng=scheduler_rng())


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{field} must be a date in YYYY-MM-DD format.",
            400,
            field=field,
        )


@tasks_bp.route("/", methods=["POST"])
@require_auth
def create_task():
    """POST /tasks — Create a task in the caller's group."""
    data = CreateTaskSchema().load(request.get_json(force=True) or {})
    result = _task_service().create_task(
        g.user_id,
        name=data["name"],
        difficulty=data["difficulty"],
        recurrence=data["recurrence"],
        required_people=data["required_people"],
        description=data["description"],
        deadline=data["deadline"],
        assigned_user_ids=data["assigned_user_ids"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@tasks_bp.route("/", methods=["GET"])
@require_auth
def list_group_tasks():
    """GET /tasks — Every task of the caller's group."""
    result = _task_service().list_group_tasks(g.user_id)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/mine", methods=["GET"])
@require_auth
def list_my_tasks():
    """GET /tasks/mine — Tasks the caller is assigned to this week."""
    result = _task_service().list_my_tasks(g.user_id)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/week/<string:week_start>", methods=["GET"])
@require_auth
def list_tasks_for_week(week_start: str):
    """GET /tasks/week/:date — Recurring tasks plus one-time tasks due that week."""
    start = _parse_date(week_start, "week_start")
    result = _task_service().list_tasks_for_week(g.user_id, start)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/date/<string:day>", methods=["GET"])
@require_auth
def list_tasks_for_date(day: str):
    """GET /tasks/date/:date — Recurring tasks plus one-time tasks due that day."""
    result = _task_service().list_tasks_for_date(g.user_id, _parse_date(day, "date"))
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<string:task_id>/status", methods=["PUT"])
@require_auth
def update_task_status(task_id: str):
    """PUT /tasks/:id/status — Update the caller's assignment for this week."""
    data = UpdateTaskStatusSchema().load(request.get_json(force=True) or {})
    result = _task_service().update_task_status(g.user_id, task_id, data["status"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<string:task_id>/assign", methods=["POST"])
@require_auth
def assign_task(task_id: str):
    """POST /tasks/:id/assign — Replace this week's assignees. Creator or owner."""
    data = AssignTaskSchema().load(request.get_json(force=True) or {})
    result = _task_service().assign_task(g.user_id, task_id, data["user_ids"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/assign-weekly", methods=["POST"])
@require_auth
def assign_weekly_tasks():
    """POST /tasks/assign-weekly — Run the weekly scheduler for the caller's group."""
    result = _task_service().assign_weekly_tasks(g.user_id)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<string:task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id: str):
    """DELETE /tasks/:id — Delete a task. Creator or owner."""
    result = _task_service().delete_task(g.user_id, task_id)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
