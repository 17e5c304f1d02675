"""
Workspace Blueprint — workspace lifecycle and membership administration.

Endpoints:
    POST   /api/v1/workspaces
    GET    /api/v1/workspaces
    GET    /api/v1/workspaces/<id>
    PUT    /api/v1/workspaces/<id>
    POST   /api/v1/workspaces/<id>/archive
    POST   /api/v1/workspaces/<id>/restore
    POST   /api/v1/workspaces/<id>/transfer
    GET    /api/v1/workspaces/<id>/members
    DELETE /api/v1/workspaces/<id>/members/<user_id>
    PATCH  /api/v1/workspaces/<id>/members/<user_id>/role
    POST   /api/v1/workspaces/<id>/leave
"""

import logging

from flask import Blueprint, g, jsonify, request

from workhub.blueprints import json_body
from workhub.core.exceptions import ValidationError
from workhub.middleware.jwt_auth import require_auth
from workhub.services import workspace_service

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspace_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  WORKSPACES
# ═══════════════════════════════════════════════════════════════════════════

@workspace_bp.route("/workspaces", methods=["POST"])
@require_auth
def create_workspace():
    ws = workspace_service.create_workspace(g.current_user_id, json_body())
    return jsonify(ws.to_dict(include_members=True)), 201


@workspace_bp.route("/workspaces", methods=["GET"])
@require_auth
def list_workspaces():
    include_archived = request.args.get("include_archived", "false").lower() in ("1", "true", "yes")
    items = workspace_service.list_user_workspaces(g.current_user_id, include_archived=include_archived)
    return jsonify({"items": items, "total": len(items)}), 200


@workspace_bp.route("/workspaces/<int:workspace_id>", methods=["GET"])
@require_auth
def get_workspace(workspace_id):
    return jsonify(workspace_service.get_workspace(workspace_id, g.current_user_id)), 200


@workspace_bp.route("/workspaces/<int:workspace_id>", methods=["PUT"])
@require_auth
def update_workspace(workspace_id):
    ws = workspace_service.update_workspace(workspace_id, g.current_user_id, json_body())
    return jsonify(ws.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/archive", methods=["POST"])
@require_auth
def archive_workspace(workspace_id):
    ws = workspace_service.archive_workspace(workspace_id, g.current_user_id)
    return jsonify(ws.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/restore", methods=["POST"])
@require_auth
def restore_workspace(workspace_id):
    ws = workspace_service.restore_workspace(workspace_id, g.current_user_id)
    return jsonify(ws.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/transfer", methods=["POST"])
@require_auth
def transfer_ownership(workspace_id):
    data = json_body()
    new_owner_id = data.get("new_owner_id")
    if not isinstance(new_owner_id, int):
        raise ValidationError("new_owner_id is required", details={"new_owner_id": "required"})
    ws = workspace_service.transfer_ownership(
        workspace_id, g.current_user_id, new_owner_id,
        demote_to=data.get("demote_to") or "admin",
    )
    return jsonify(ws.to_dict(include_members=True)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  MEMBERS
# ═══════════════════════════════════════════════════════════════════════════

@workspace_bp.route("/workspaces/<int:workspace_id>/members", methods=["GET"])
@require_auth
def list_members(workspace_id):
    items = workspace_service.list_members(workspace_id, g.current_user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/members/<int:member_user_id>", methods=["DELETE"])
@require_auth
def remove_member(workspace_id, member_user_id):
    workspace_service.remove_member(workspace_id, g.current_user_id, member_user_id)
    return jsonify({"deleted": True, "user_id": member_user_id}), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/members/<int:member_user_id>/role", methods=["PATCH"])
@require_auth
def change_member_role(workspace_id, member_user_id):
    role = json_body().get("role")
    if not role:
        raise ValidationError("role is required", details={"role": "required"})
    member = workspace_service.change_member_role(workspace_id, g.current_user_id, member_user_id, role)
    return jsonify(member.to_dict()), 200


@workspace_bp.route("/workspaces/<int:workspace_id>/leave", methods=["POST"])
@require_auth
def leave_workspace(workspace_id):
    workspace_service.leave_workspace(workspace_id, g.current_user_id)
    return jsonify({"left": True, "workspace_id": workspace_id}), 200
