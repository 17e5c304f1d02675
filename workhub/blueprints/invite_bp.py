"""
Invite Blueprint — issue, preview, accept and decline workspace invites.

The whole blueprint is rate limited (INVITE_RATE_LIMIT) in the app factory.
"""

import logging

from flask import Blueprint, g, jsonify

from workhub.blueprints import json_body
from workhub.core.exceptions import ValidationError
from workhub.middleware.jwt_auth import require_auth
from workhub.services import invite_lifecycle

logger = logging.getLogger(__name__)

invite_bp = Blueprint("invite_bp", __name__, url_prefix="/api/v1")


@invite_bp.route("/workspaces/<int:workspace_id>/invites", methods=["POST"])
@require_auth
def issue_invite(workspace_id):
    """Invite an email address; the token only appears in this response."""
    data = json_body()
    email = (data.get("email") or "").strip()
    if not email:
        raise ValidationError("email is required", details={"email": "required"})
    invite = invite_lifecycle.issue_invite(
        workspace_id, email, data.get("role") or "member", g.current_user_id,
    )
    return jsonify(invite.to_dict(include_token=True)), 201


@invite_bp.route("/workspaces/<int:workspace_id>/invites", methods=["GET"])
@require_auth
def list_invites(workspace_id):
    items = invite_lifecycle.list_workspace_invites(workspace_id, g.current_user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@invite_bp.route("/invites/<token>", methods=["GET"])
@require_auth
def preview_invite(token):
    return jsonify(invite_lifecycle.get_invite_preview(token)), 200


@invite_bp.route("/invites/<token>/accept", methods=["POST"])
@require_auth
def accept_invite(token):
    member = invite_lifecycle.accept_invite(token, g.current_user_id)
    return jsonify(member.to_dict()), 200


@invite_bp.route("/invites/<token>/decline", methods=["POST"])
@require_auth
def decline_invite(token):
    invite = invite_lifecycle.decline_invite(token, g.current_user_id)
    return jsonify(invite.to_dict()), 200
