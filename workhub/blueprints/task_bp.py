"""
Task Blueprint — task CRUD, status transitions and handover notes.
"""

import logging

from flask import Blueprint, g, jsonify, request

from workhub.blueprints import json_body
from workhub.core.exceptions import ValidationError
from workhub.middleware.jwt_auth import require_auth
from workhub.services import task_service

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")


@task_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
@require_auth
def create_task(project_id):
    task = task_service.create_task(project_id, g.current_user_id, json_body())
    return jsonify(task.to_dict()), 201


@task_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
@require_auth
def list_tasks(project_id):
    filters = {
        "status": request.args.get("status"),
        "category": request.args.get("category"),
        "assignee_id": request.args.get("assignee_id", type=int),
    }
    items = task_service.list_project_tasks(project_id, g.current_user_id, filters)
    return jsonify({"items": items, "total": len(items)}), 200


@task_bp.route("/projects/<int:project_id>/tasks/mine", methods=["GET"])
@require_auth
def my_tasks(project_id):
    items = task_service.list_user_project_tasks(project_id, g.current_user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@task_bp.route("/projects/<int:project_id>/assignable-members", methods=["GET"])
@require_auth
def assignable_members(project_id):
    items = task_service.get_assignable_members(
        project_id, g.current_user_id, category=request.args.get("category"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_auth
def get_task(task_id):
    return jsonify(task_service.get_task(task_id, g.current_user_id).to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@require_auth
def update_task(task_id):
    task = task_service.update_task(task_id, g.current_user_id, json_body())
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/status", methods=["PATCH"])
@require_auth
def update_task_status(task_id):
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    task = task_service.update_task_status(task_id, g.current_user_id, status)
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/handover", methods=["PATCH"])
@require_auth
def update_handover(task_id):
    task = task_service.update_handover_notes(
        task_id, g.current_user_id, json_body().get("handover_notes"),
    )
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id):
    task_service.delete_task(task_id, g.current_user_id)
    return jsonify({"deleted": True, "id": task_id}), 200
