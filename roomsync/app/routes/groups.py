"""
routes/groups.py — Group route handlers.

Layer rules:
  - Parse, validate, call ONE service method, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - A fresh GroupService is built per request; it holds no state between
    requests.

Endpoints (url_prefix=/api/v1/groups). Every endpoint acts on the caller's
own group — a user belongs to at most one:
  POST   /                       → 201  create group
  POST   /join                   → 200  join by invite code
  GET    /                       → 200  caller's group (may repair the owner)
  PATCH  /name                   → 200  rename (owner only)
  PUT    /owner                  → 200  transfer ownership (owner only)
  DELETE /members/<member_id>    → 200  remove member (owner only)
  POST   /leave                  → 200  leave (deletes the group if last)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomsync.app.extensions import db
from roomsync.app.middleware.auth_middleware import require_auth
from roomsync.app.schemas.group_schema import (
    CreateGroupSchema,
    JoinGroupSchema,
    TransferOwnershipSchema,
    UpdateGroupNameSchema,
)
from roomsync.app.services.group_service import GroupService
from roomsync.app.services.user_directory import UserDirectory

groups_bp = Blueprint("groups", __name__)


def _group_service() -> GroupService:
    return GroupService(db.session, UserDirectory(db.session))


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes owner and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = _group_service().create_group(g.user_id, data["name"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/join", methods=["POST"])
@require_auth
def join_group():
    """POST /groups/join — Join the group that owns the given invite code."""
    data = JoinGroupSchema().load(request.get_json(force=True) or {})
    result = _group_service().join_group(g.user_id, data["invite_code"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/", methods=["GET"])
@require_auth
def get_my_group():
    """
    GET /groups — The caller's group with owner and members dereferenced.

    Commits because the read may have repaired a broken owner reference.
    """
    result = _group_service().get_group_for_user(g.user_id)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/name", methods=["PATCH"])
@require_auth
def update_group_name():
    """PATCH /groups/name — Rename the group. Owner only."""
    data = UpdateGroupNameSchema().load(request.get_json(force=True) or {})
    result = _group_service().update_group_name(g.user_id, data["name"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/owner", methods=["PUT"])
@require_auth
def transfer_ownership():
    """PUT /groups/owner — Hand ownership to another member. Owner only."""
    data = TransferOwnershipSchema().load(request.get_json(force=True) or {})
    result = _group_service().transfer_ownership(g.user_id, data["new_owner_id"])
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/members/<string:member_id>", methods=["DELETE"])
@require_auth
def remove_member(member_id: str):
    """DELETE /groups/members/:id — Remove a member. Owner only."""
    result = _group_service().remove_member(g.user_id, member_id)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/leave", methods=["POST"])
@require_auth
def leave_group():
    """POST /groups/leave — Leave the caller's group."""
    result = _group_service().leave_group(g.user_id)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
