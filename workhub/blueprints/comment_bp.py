"""
Comment Blueprint — task discussion threads.
"""

from flask import Blueprint, g, jsonify

from workhub.blueprints import json_body
from workhub.middleware.jwt_auth import require_auth
from workhub.services import comment_service

comment_bp = Blueprint("comment_bp", __name__, url_prefix="/api/v1")


@comment_bp.route("/tasks/<int:task_id>/comments", methods=["GET"])
@require_auth
def list_comments(task_id):
    items = comment_service.list_task_comments(task_id, g.current_user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@comment_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
@require_auth
def create_comment(task_id):
    data = json_body()
    comment = comment_service.create_comment(
        task_id, g.current_user_id, data.get("content"),
        parent_id=data.get("parent_id"),
        attachments=data.get("attachments"),
    )
    return jsonify(comment.to_dict()), 201


@comment_bp.route("/comments/<int:comment_id>", methods=["PUT"])
@require_auth
def update_comment(comment_id):
    comment = comment_service.update_comment(comment_id, g.current_user_id, json_body().get("content"))
    return jsonify(comment.to_dict()), 200


@comment_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@require_auth
def delete_comment(comment_id):
    comment_service.delete_comment(comment_id, g.current_user_id)
    return jsonify({"deleted": True, "id": comment_id}), 200
