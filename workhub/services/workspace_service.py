"""
Workspace service — workspace lifecycle and membership.

Owns every write to ``workspace_members``. Owner-affecting writes are
single conditional statements so that "exactly one owner" holds even under
concurrent requests:

    remove_member        DELETE ... WHERE role != 'owner'
    change_member_role   UPDATE ... WHERE role != 'owner'
    transfer_ownership   one UPDATE touching exactly two rows, else rollback
"""

import logging
from datetime import timedelta

import sqlalchemy as sa
from flask import current_app

from workhub.core.exceptions import (
    ConflictError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from workhub.models import db
from workhub.models.project import CategoryMember, Project, ProjectCategory
from workhub.models.user import User
from workhub.models.workspace import ASSIGNABLE_WORKSPACE_ROLES, Workspace, WorkspaceMember
from workhub.services import permission_service as perms
from workhub.services.notification import NotificationService
from workhub.services.permission_service import Capability, EffectiveRole
from workhub.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────────────────


def get_workspace_or_404(workspace_id: int) -> Workspace:
    ws = db.session.get(Workspace, workspace_id)
    if ws is None:
        raise NotFoundError("Workspace", workspace_id)
    return ws


def get_member(workspace_id: int, user_id: int) -> WorkspaceMember | None:
    return WorkspaceMember.query.filter_by(workspace_id=workspace_id, user_id=user_id).first()


def ensure_not_archived(ws: Workspace) -> None:
    if ws.is_archived:
        raise ConflictError("Workspace is archived", resource="Workspace")


def admin_recipient_ids(workspace_id: int) -> list[int]:
    """Owner first, then admins."""
    rows = (
        WorkspaceMember.query
        .filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.role.in_(("owner", "admin")),
        )
        .all()
    )
    rows.sort(key=lambda m: 0 if m.role == "owner" else 1)
    return [m.user_id for m in rows]


# ── Membership primitive ────────────────────────────────────────────────


def add_member(workspace_id: int, user_id: int, role: str) -> WorkspaceMember:
    """Add a membership row to the current session without committing.

    Raises:
        DuplicateError: the user already belongs to the workspace.
    """
    if get_member(workspace_id, user_id) is not None:
        raise DuplicateError("User is already a member of this workspace", resource="WorkspaceMember")
    member = WorkspaceMember(workspace_id=workspace_id, user_id=user_id, role=role)
    db.session.add(member)
    db.session.flush()
    return member


# ── Create / read / update ──────────────────────────────────────────────


def create_workspace(user_id: int, data: dict) -> Workspace:
    """Create a workspace; the creator becomes its single owner."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("Unknown or inactive user")

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Workspace name is required", details={"name": "required"})
    if len(name) > 200:
        raise ValidationError("Workspace name must be <= 200 chars", details={"name": "too long"})

    ws = Workspace(
        name=name,
        description=(data.get("description") or "").strip(),
        created_by=user_id,
    )
    db.session.add(ws)
    db.session.flush()
    add_member(ws.id, user_id, "owner")
    db.session.commit()
    logger.info("Workspace created id=%s owner=%s", ws.id, user_id)
    return ws


def list_user_workspaces(user_id: int, include_archived: bool = False) -> list[dict]:
    q = (
        db.session.query(Workspace, WorkspaceMember.role)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .filter(WorkspaceMember.user_id == user_id)
    )
    if not include_archived:
        q = q.filter(Workspace.is_archived.is_(False))
    result = []
    for ws, role in q.order_by(Workspace.created_at.desc()).all():
        d = ws.to_dict()
        d["my_role"] = role
        result.append(d)
    return result


def get_workspace(workspace_id: int, user_id: int) -> dict:
    ws = get_workspace_or_404(workspace_id)
    resolved = perms.authorize(user_id, Capability.VIEW, workspace_id)
    d = ws.to_dict(include_members=True)
    d["my_role"] = resolved.role.name.lower()
    return d


def list_members(workspace_id: int, user_id: int) -> list[dict]:
    ws = get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.VIEW, workspace_id)
    return [m.to_dict() for m in ws.members]


def update_workspace(workspace_id: int, user_id: int, data: dict) -> Workspace:
    ws = get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.UPDATE_WORKSPACE, workspace_id)
    ensure_not_archived(ws)

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Workspace name is required", details={"name": "required"})
        ws.name = name
    if "description" in data:
        ws.description = (data.get("description") or "").strip()
    db.session.commit()
    logger.info("Workspace updated id=%s by=%s", workspace_id, user_id)
    return ws


# ── Archive / restore ───────────────────────────────────────────────────


def archive_workspace(workspace_id: int, user_id: int) -> Workspace:
    ws = get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.MANAGE_OWNERSHIP, workspace_id)
    if ws.is_archived:
        raise ConflictError("Workspace is already archived", resource="Workspace")

    now = utcnow()
    retention = current_app.config.get("ARCHIVE_RETENTION_DAYS", 7)
    ws.is_archived = True
    ws.archived_at = now
    ws.archived_by = user_id
    ws.delete_scheduled_at = now + timedelta(days=retention)
    db.session.commit()
    logger.info("Workspace archived id=%s delete_at=%s", workspace_id, ws.delete_scheduled_at)
    return ws


def restore_workspace(workspace_id: int, user_id: int) -> Workspace:
    ws = get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.MANAGE_OWNERSHIP, workspace_id)
    if not ws.is_archived:
        raise ConflictError("Workspace is not archived", resource="Workspace")
    if ws.delete_scheduled_at is not None and utcnow() >= as_utc(ws.delete_scheduled_at):
        raise ConflictError("Restore window has passed", resource="Workspace")

    ws.is_archived = False
    ws.archived_at = None
    ws.archived_by = None
    ws.delete_scheduled_at = None
    db.session.commit()
    logger.info("Workspace restored id=%s", workspace_id)
    return ws


def purge_archived_workspaces(now=None) -> int:
    """Hard-delete archived workspaces whose retention window has elapsed."""
    now = now or utcnow()
    due = (
        Workspace.query
        .filter(Workspace.is_archived.is_(True), Workspace.delete_scheduled_at.isnot(None))
        .all()
    )
    purged = 0
    for ws in due:
        if as_utc(ws.delete_scheduled_at) > now:
            continue
        db.session.delete(ws)
        purged += 1
    db.session.commit()
    if purged:
        logger.info("Purged %d archived workspaces", purged)
    return purged


# ── Ownership ───────────────────────────────────────────────────────────


def transfer_ownership(workspace_id: int, user_id: int, new_owner_id: int, demote_to: str = "admin") -> Workspace:
    """Hand ownership to another member; the old owner becomes ``demote_to``."""
    ws = get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.MANAGE_OWNERSHIP, workspace_id)
    ensure_not_archived(ws)
    if demote_to not in ("admin", "lead"):
        raise ValidationError("Previous owner can only become admin or lead", details={"demote_to": demote_to})

    current = ws.owner_member()
    if current is None:
        raise ConflictError("Workspace has no owner", resource="Workspace")
    if current.user_id == new_owner_id:
        raise ConflictError("User is already the owner", resource="Workspace")
    if get_member(workspace_id, new_owner_id) is None:
        raise ValidationError("New owner must be a member of the workspace",
                              details={"new_owner_id": new_owner_id})

    old_owner_id = current.user_id
    stmt = (
        sa.update(WorkspaceMember)
        .where(
            WorkspaceMember.workspace_id == workspace_id,
            sa.or_(
                sa.and_(WorkspaceMember.user_id == old_owner_id, WorkspaceMember.role == "owner"),
                sa.and_(WorkspaceMember.user_id == new_owner_id, WorkspaceMember.role != "owner"),
            ),
        )
        .values(role=sa.case((WorkspaceMember.user_id == new_owner_id, "owner"), else_=demote_to))
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 2:
        db.session.rollback()
        raise ConflictError("Ownership changed concurrently; retry", resource="Workspace")
    db.session.commit()
    logger.info("Workspace %s ownership %s -> %s", workspace_id, old_owner_id, new_owner_id)
    return ws


# ── Members ─────────────────────────────────────────────────────────────


def _drop_category_memberships(workspace_id: int, user_id: int) -> None:
    category_ids = (
        sa.select(ProjectCategory.id)
        .join(Project, Project.id == ProjectCategory.project_id)
        .where(Project.workspace_id == workspace_id)
    )
    (
        CategoryMember.query
        .filter(CategoryMember.user_id == user_id, CategoryMember.category_id.in_(category_ids))
        .delete(synchronize_session=False)
    )


def _delete_membership(workspace_id: int, user_id: int) -> None:
    deleted = (
        WorkspaceMember.query
        .filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
            WorkspaceMember.role != "owner",
        )
        .delete(synchronize_session=False)
    )
    if deleted != 1:
        db.session.rollback()
        raise ConflictError("The workspace owner cannot be removed", resource="WorkspaceMember")
    _drop_category_memberships(workspace_id, user_id)


def remove_member(workspace_id: int, user_id: int, member_user_id: int) -> None:
    ws = get_workspace_or_404(workspace_id)
    resolved = perms.authorize(user_id, Capability.MANAGE_MEMBERS, workspace_id)
    ensure_not_archived(ws)

    member = get_member(workspace_id, member_user_id)
    if member is None:
        raise NotFoundError("WorkspaceMember", member_user_id)
    if member.role == "owner":
        raise ConflictError("The workspace owner cannot be removed", resource="WorkspaceMember")
    if member.role == "admin" and resolved.role < EffectiveRole.OWNER:
        raise ForbiddenError("Only the owner can remove an admin", capability=Capability.PROMOTE_TO_ADMIN.value)

    _delete_membership(workspace_id, member_user_id)
    NotificationService.emit(
        "member_left", member_user_id,
        title=f"Removed from {ws.name}",
        message=f"You were removed from the workspace {ws.name}.",
        sender_id=user_id,
        data={"workspace_id": workspace_id},
    )
    db.session.commit()
    db.session.expire_all()
    logger.info("Member %s removed from workspace %s by %s", member_user_id, workspace_id, user_id)


def leave_workspace(workspace_id: int, user_id: int) -> None:
    """A member leaves voluntarily; the owner must transfer ownership first."""
    ws = get_workspace_or_404(workspace_id)
    member = get_member(workspace_id, user_id)
    if member is None:
        raise NotFoundError("WorkspaceMember", user_id)
    if member.role == "owner":
        raise ConflictError("Transfer ownership before leaving the workspace", resource="WorkspaceMember")

    leaver = db.session.get(User, user_id)
    _delete_membership(workspace_id, user_id)
    NotificationService.emit_many(
        "member_left", admin_recipient_ids(workspace_id),
        title=f"{leaver.name} left {ws.name}",
        message=f"{leaver.name} ({leaver.email}) left the workspace.",
        sender_id=user_id,
        data={"workspace_id": workspace_id},
    )
    db.session.commit()
    db.session.expire_all()


def change_member_role(workspace_id: int, user_id: int, member_user_id: int, new_role: str) -> WorkspaceMember:
    ws = get_workspace_or_404(workspace_id)
    resolved = perms.authorize(user_id, Capability.MANAGE_MEMBERS, workspace_id)
    ensure_not_archived(ws)

    if new_role not in ASSIGNABLE_WORKSPACE_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {list(ASSIGNABLE_WORKSPACE_ROLES)}",
            details={"role": new_role},
        )

    member = get_member(workspace_id, member_user_id)
    if member is None:
        raise NotFoundError("WorkspaceMember", member_user_id)
    if member.role == "owner":
        raise ConflictError("Use ownership transfer to change the owner's role", resource="WorkspaceMember")
    if member_user_id == user_id and resolved.role < EffectiveRole.OWNER:
        raise ForbiddenError("You cannot change your own role")
    if (new_role == "admin" or member.role == "admin") and resolved.role < EffectiveRole.OWNER:
        raise ForbiddenError("Only the owner can grant or revoke admin",
                             capability=Capability.PROMOTE_TO_ADMIN.value)

    updated = (
        WorkspaceMember.query
        .filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == member_user_id,
            WorkspaceMember.role != "owner",
        )
        .update({"role": new_role}, synchronize_session=False)
    )
    if updated != 1:
        db.session.rollback()
        raise ConflictError("Member role changed concurrently; retry", resource="WorkspaceMember")
    db.session.commit()
    db.session.refresh(member)
    logger.info("Workspace %s member %s role -> %s", workspace_id, member_user_id, new_role)
    return member
