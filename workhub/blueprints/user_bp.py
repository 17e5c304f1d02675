"""
User Blueprint — the caller's profile and account deletion.
"""

from flask import Blueprint, g, jsonify

from workhub.middleware.jwt_auth import require_auth
from workhub.services import user_service

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")


@user_bp.route("/users/me", methods=["GET"])
@require_auth
def me():
    user = user_service.get_user_or_404(g.current_user_id)
    return jsonify(user.to_dict(include_workspaces=True)), 200


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_auth
def delete_user(user_id):
    user_service.delete_user(user_id, g.current_user_id)
    return jsonify({"deleted": True, "id": user_id}), 200
