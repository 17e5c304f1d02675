"""
Project Blueprint — projects, categories and category membership.

Category names travel in the URL; they are unique per project.
"""

import logging

from flask import Blueprint, g, jsonify

from workhub.blueprints import json_body
from workhub.core.exceptions import ValidationError
from workhub.middleware.jwt_auth import require_auth
from workhub.services import project_service, task_service

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/workspaces/<int:workspace_id>/projects", methods=["POST"])
@require_auth
def create_project(workspace_id):
    project = project_service.create_project(workspace_id, g.current_user_id, json_body())
    return jsonify(project.to_dict()), 201


@project_bp.route("/workspaces/<int:workspace_id>/projects", methods=["GET"])
@require_auth
def list_projects(workspace_id):
    items = project_service.list_projects(workspace_id, g.current_user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    project = project_service.get_project(project_id, g.current_user_id)
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_auth
def update_project(project_id):
    project = project_service.update_project(project_id, g.current_user_id, json_body())
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/status", methods=["PATCH"])
@require_auth
def update_project_status(project_id):
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    project = project_service.update_project_status(project_id, g.current_user_id, status)
    return jsonify(project.to_dict(include_categories=False)), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_auth
def delete_project(project_id):
    project_service.delete_project(project_id, g.current_user_id)
    return jsonify({"deleted": True, "id": project_id}), 200


@project_bp.route("/projects/<int:project_id>/role", methods=["GET"])
@require_auth
def my_project_role(project_id):
    return jsonify(project_service.get_user_project_role(project_id, g.current_user_id)), 200


@project_bp.route("/projects/<int:project_id>/analytics", methods=["GET"])
@require_auth
def project_analytics(project_id):
    return jsonify(task_service.project_task_summary(project_id, g.current_user_id)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  CATEGORIES
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/categories", methods=["POST"])
@require_auth
def add_category(project_id):
    category = project_service.add_category(project_id, g.current_user_id, json_body().get("name"))
    return jsonify(category.to_dict()), 201


@project_bp.route("/projects/<int:project_id>/categories/<name>/status", methods=["PATCH"])
@require_auth
def update_category_status(project_id, name):
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    category = project_service.update_category_status(project_id, g.current_user_id, name, status)
    return jsonify(category.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/categories/<name>/members", methods=["POST"])
@require_auth
def add_category_member(project_id, name):
    member = project_service.add_category_member(project_id, g.current_user_id, name, json_body())
    return jsonify(member.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/categories/<name>/members/<int:member_user_id>",
                  methods=["DELETE"])
@require_auth
def remove_category_member(project_id, name, member_user_id):
    project_service.remove_category_member(project_id, g.current_user_id, name, member_user_id)
    return jsonify({"deleted": True, "user_id": member_user_id}), 200


@project_bp.route("/projects/<int:project_id>/categories/<name>/members/<int:member_user_id>/role",
                  methods=["PATCH"])
@require_auth
def change_category_member_role(project_id, name, member_user_id):
    role = json_body().get("role")
    if not role:
        raise ValidationError("role is required", details={"role": "required"})
    member = project_service.change_category_member_role(
        project_id, g.current_user_id, name, member_user_id, role,
    )
    return jsonify(member.to_dict()), 200
