"""
Project service — projects, categories and category membership.

``progress`` is never written directly; it is derived from ``status``
through ``STATUS_PROGRESS`` on every status change.
"""

import logging

import sqlalchemy as sa

from workhub.core.exceptions import DuplicateError, ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.project import (
    CATEGORY_ROLES,
    CATEGORY_STATUSES,
    PROJECT_STATUSES,
    CategoryMember,
    Project,
    ProjectCategory,
)
from workhub.models.user import User
from workhub.models.workspace import WorkspaceMember
from workhub.services import permission_service as perms
from workhub.services import workspace_service
from workhub.services.notification import NotificationService
from workhub.services.permission_service import Capability
from workhub.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────────────────


def get_project_or_404(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None or not project.is_active:
        raise NotFoundError("Project", project_id)
    return project


def get_category_or_404(project: Project, name: str) -> ProjectCategory:
    category = project.get_category(name)
    if category is None:
        raise NotFoundError("Category", name)
    return category


def _resolve_member_user(workspace_id: int, ref: dict) -> int:
    """Turn ``{"user_id": ..}`` or ``{"email": ..}`` into a workspace member's id."""
    user = None
    if ref.get("user_id") is not None:
        user = db.session.get(User, ref["user_id"])
    elif ref.get("email"):
        user = User.query.filter(db.func.lower(User.email) == ref["email"].strip().lower()).first()
    if user is None or workspace_service.get_member(workspace_id, user.id) is None:
        label = ref.get("email") or ref.get("user_id")
        raise ValidationError(
            f"User {label} is not found or not in workspace",
            details={"member": label},
        )
    return user.id


def _validate_status(status: str) -> str:
    if status not in PROJECT_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {list(PROJECT_STATUSES)}", details={"status": status},
        )
    return status


def _validate_category_role(role: str) -> str:
    if role not in CATEGORY_ROLES:
        raise ValidationError(
            f"Invalid category role. Must be one of: {list(CATEGORY_ROLES)}", details={"role": role},
        )
    return role


def _apply_dates(project: Project, data: dict) -> None:
    if "start_date" in data:
        project.start_date = parse_date_input(data.get("start_date"), "start_date")
    if "end_date" in data:
        project.end_date = parse_date_input(data.get("end_date"), "end_date")
    if project.start_date and project.end_date and project.start_date > project.end_date:
        raise ValidationError("start_date must be on or before end_date",
                              details={"start_date": "after end_date"})


def _category_member_ids(project: Project) -> set[int]:
    return {m.user_id for c in project.categories for m in c.members}


# ── Create / read ───────────────────────────────────────────────────────


def create_project(workspace_id: int, user_id: int, data: dict) -> Project:
    """Create a project with optional categories and their members.

    ``data["categories"]`` is a list of ``{"name", "members": [{"user_id"|"email", "role"}]}``.
    """
    ws = workspace_service.get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.CREATE_PROJECT, workspace_id)
    workspace_service.ensure_not_archived(ws)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Project title is required", details={"title": "required"})

    project = Project(
        workspace_id=workspace_id,
        title=title,
        description=(data.get("description") or "").strip(),
        created_by=user_id,
    )
    project.set_status(_validate_status(data.get("status") or "Planning"))
    _apply_dates(project, data)

    seen_names = set()
    for position, cat in enumerate(data.get("categories") or []):
        name = (cat.get("name") or "").strip()
        if not name:
            raise ValidationError("Category name is required", details={"categories": position})
        if name in seen_names:
            raise ValidationError(f"Duplicate category name: {name}", details={"categories": name})
        seen_names.add(name)
        category = ProjectCategory(name=name, position=position)
        member_ids = set()
        for ref in cat.get("members") or []:
            member_id = _resolve_member_user(workspace_id, ref)
            if member_id in member_ids:
                continue
            member_ids.add(member_id)
            category.members.append(
                CategoryMember(user_id=member_id, role=_validate_category_role(ref.get("role") or "member"))
            )
        project.categories.append(category)

    db.session.add(project)
    db.session.flush()

    NotificationService.emit_many(
        "project_created",
        [uid for uid in _category_member_ids(project) if uid != user_id],
        title=f"Added to project {project.title}",
        message=f"You were added to the project {project.title}.",
        sender_id=user_id,
        data={"project_id": project.id},
    )
    db.session.commit()
    logger.info("Project created id=%s ws=%s categories=%d", project.id, workspace_id, len(seen_names))
    return project


def list_projects(workspace_id: int, user_id: int) -> list[dict]:
    """Admins see every active project; others only those they created or belong to."""
    workspace_service.get_workspace_or_404(workspace_id)
    resolved = perms.authorize(user_id, Capability.VIEW, workspace_id)

    q = Project.query.filter_by(workspace_id=workspace_id, is_active=True)
    if not resolved.is_workspace_admin:
        member_project_ids = (
            sa.select(ProjectCategory.project_id)
            .join(CategoryMember, CategoryMember.category_id == ProjectCategory.id)
            .where(CategoryMember.user_id == user_id)
        )
        q = q.filter(sa.or_(Project.created_by == user_id, Project.id.in_(member_project_ids)))
    return [p.to_dict() for p in q.order_by(Project.created_at.desc()).all()]


def get_project(project_id: int, user_id: int) -> Project:
    project = get_project_or_404(project_id)
    perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id)
    return project


def get_user_project_role(project_id: int, user_id: int) -> dict:
    project = get_project_or_404(project_id)
    resolved = perms.authorize(user_id, Capability.VIEW, project.workspace_id, project.id)
    categories = perms.category_roles_in_project(user_id, project.id)
    return {
        "project_id": project.id,
        "effective_role": resolved.role.name.lower(),
        "workspace_role": resolved.workspace_role,
        "global_role": resolved.global_role,
        "is_creator": project.created_by == user_id,
        "categories": [{"name": name, "role": role} for name, role in categories.items()],
    }


# ── Update / delete ─────────────────────────────────────────────────────


def ensure_project_writable(project: Project) -> None:
    """Conflict when the owning workspace is archived."""
    workspace_service.ensure_not_archived(workspace_service.get_workspace_or_404(project.workspace_id))


def _authorize_edit(project: Project, user_id: int):
    resolved = perms.resolve_for_project(user_id, project)
    perms.ensure(resolved, Capability.VIEW)
    if not perms.can_edit_project(resolved, project):
        raise ForbiddenError("You do not have permission to edit this project",
                             capability=Capability.EDIT_PROJECT.value)
    return resolved


def update_project(project_id: int, user_id: int, data: dict) -> Project:
    project = get_project_or_404(project_id)
    _authorize_edit(project, user_id)
    ensure_project_writable(project)
    if "progress" in data:
        raise ValidationError("progress is derived from status and cannot be set",
                              details={"progress": "read-only"})

    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Project title is required", details={"title": "required"})
        project.title = title
    if "description" in data:
        project.description = (data.get("description") or "").strip()
    if "status" in data:
        project.set_status(_validate_status(data["status"]))
    _apply_dates(project, data)

    NotificationService.emit_many(
        "project_updated",
        [uid for uid in _category_member_ids(project) if uid != user_id],
        title=f"Project {project.title} updated",
        message=f"The project {project.title} was updated.",
        sender_id=user_id,
        data={"project_id": project.id},
    )
    db.session.commit()
    logger.info("Project updated id=%s by=%s", project_id, user_id)
    return project


def update_project_status(project_id: int, user_id: int, status: str) -> Project:
    return update_project(project_id, user_id, {"status": status})


def delete_project(project_id: int, user_id: int) -> None:
    """Soft delete: the project disappears from listings and lookups."""
    project = get_project_or_404(project_id)
    perms.authorize(user_id, Capability.DELETE_PROJECT, project.workspace_id)
    ensure_project_writable(project)
    project.is_active = False
    db.session.commit()
    logger.info("Project soft-deleted id=%s by=%s", project_id, user_id)


# ── Categories ──────────────────────────────────────────────────────────


def add_category(project_id: int, user_id: int, name: str) -> ProjectCategory:
    project = get_project_or_404(project_id)
    perms.authorize(user_id, Capability.MANAGE_CATEGORY_MEMBERS, project.workspace_id)
    ensure_project_writable(project)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required", details={"name": "required"})
    if project.get_category(name) is not None:
        raise DuplicateError(f"Category {name} already exists", resource="ProjectCategory")

    category = ProjectCategory(name=name, position=len(project.categories))
    project.categories.append(category)
    db.session.commit()
    logger.info("Category %r added to project %s", name, project_id)
    return category


def update_category_status(project_id: int, user_id: int, name: str, status: str) -> ProjectCategory:
    project = get_project_or_404(project_id)
    category = get_category_or_404(project, name)
    resolved = perms.resolve_for_project(user_id, project, name)
    perms.ensure(resolved, Capability.VIEW)
    if not perms.can_edit_project(resolved, project):
        raise ForbiddenError("You do not have permission to edit this category",
                             capability=Capability.EDIT_PROJECT.value)
    ensure_project_writable(project)
    if status not in CATEGORY_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {list(CATEGORY_STATUSES)}", details={"status": status},
        )
    category.set_status(status)
    db.session.commit()
    return category


def add_category_member(project_id: int, user_id: int, name: str, member_ref: dict) -> CategoryMember:
    """Upsert ``(user, role)`` into the category."""
    project = get_project_or_404(project_id)
    perms.authorize(user_id, Capability.MANAGE_CATEGORY_MEMBERS, project.workspace_id, project.id)
    ensure_project_writable(project)
    category = project.get_category(name)
    if category is None:
        raise ValidationError(f"Category {name} does not exist on this project",
                              details={"category": name})
    member_id = _resolve_member_user(project.workspace_id, member_ref)
    role = _validate_category_role(member_ref.get("role") or "member")

    existing = next((m for m in category.members if m.user_id == member_id), None)
    if existing is not None:
        existing.role = role
        member = existing
    else:
        member = CategoryMember(user_id=member_id, role=role)
        category.members.append(member)
        if member_id != user_id:
            NotificationService.emit(
                "project_updated", member_id,
                title=f"Added to {project.title}",
                message=f"You were added to category {name} of {project.title} as {role}.",
                sender_id=user_id,
                data={"project_id": project.id},
            )
    db.session.commit()
    logger.info("Category member upsert project=%s category=%r user=%s role=%s",
                project_id, name, member_id, role)
    return member


def remove_category_member(project_id: int, user_id: int, name: str, member_user_id: int) -> None:
    project = get_project_or_404(project_id)
    perms.authorize(user_id, Capability.MANAGE_CATEGORY_MEMBERS, project.workspace_id, project.id)
    ensure_project_writable(project)
    category = get_category_or_404(project, name)
    member = next((m for m in category.members if m.user_id == member_user_id), None)
    if member is None:
        raise NotFoundError("CategoryMember", member_user_id)
    category.members.remove(member)
    db.session.commit()
    logger.info("Category member removed project=%s category=%r user=%s", project_id, name, member_user_id)


def change_category_member_role(project_id: int, user_id: int, name: str,
                                member_user_id: int, role: str) -> CategoryMember:
    project = get_project_or_404(project_id)
    category = get_category_or_404(project, name)
    resolved = perms.authorize(user_id, Capability.CHANGE_CATEGORY_ROLE,
                               project.workspace_id, project.id, name)
    ensure_project_writable(project)
    role = _validate_category_role(role)
    member = next((m for m in category.members if m.user_id == member_user_id), None)
    if member is None:
        raise NotFoundError("CategoryMember", member_user_id)
    if not resolved.is_workspace_admin and member_user_id == user_id:
        raise ForbiddenError("You cannot change your own category role")
    member.role = role
    db.session.commit()
    return member


def project_member_ids(project: Project) -> set[int]:
    """Category members plus workspace owner/admins."""
    ids = _category_member_ids(project)
    admins = WorkspaceMember.query.filter(
        WorkspaceMember.workspace_id == project.workspace_id,
        WorkspaceMember.role.in_(("owner", "admin")),
    ).all()
    ids.update(m.user_id for m in admins)
    return ids
