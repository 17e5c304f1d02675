"""
Permission Service — membership resolution and capability checks.

Effective roles form a closed, totally ordered hierarchy:

    UNAUTHORIZED < VIEWER < MEMBER < LEAD < ADMIN < OWNER
                 < PLATFORM_ADMIN < SUPER_ADMIN

Resolution is deterministic and deny-by-default:
  1. global ``super_admin``  -> SUPER_ADMIN, membership irrelevant
  2. global ``admin``        -> PLATFORM_ADMIN at every workspace
  3. workspace membership    -> mapped role; no membership -> UNAUTHORIZED
  4. workspace owner/admin keep their role at every narrower scope
  5. category scope: a category entry replaces the workspace baseline for
     that category (it may exceed it); no entry keeps the baseline
  6. project scope: the highest category role held in the project
     replaces the baseline; no category entry keeps the baseline

Capability predicates are pure functions over a ``ResolvedRole``;
``authorize`` resolves once and raises before any write happens.
"""

import enum
import logging
from dataclasses import dataclass

from workhub.core.exceptions import ForbiddenError, UnauthorizedError
from workhub.models import db
from workhub.models.project import CategoryMember, Project, ProjectCategory
from workhub.models.user import User
from workhub.models.workspace import WorkspaceMember

logger = logging.getLogger(__name__)


class EffectiveRole(enum.IntEnum):
    UNAUTHORIZED = 0
    VIEWER = 1
    MEMBER = 2
    LEAD = 3
    ADMIN = 4
    OWNER = 5
    PLATFORM_ADMIN = 6
    SUPER_ADMIN = 7


WORKSPACE_ROLE_MAP = {
    "viewer": EffectiveRole.VIEWER,
    "member": EffectiveRole.MEMBER,
    "lead": EffectiveRole.LEAD,
    "admin": EffectiveRole.ADMIN,
    "owner": EffectiveRole.OWNER,
}

CATEGORY_ROLE_MAP = {
    "viewer": EffectiveRole.VIEWER,
    "member": EffectiveRole.MEMBER,
    "lead": EffectiveRole.LEAD,
}


@dataclass(frozen=True)
class ResolvedRole:
    """Outcome of a resolution plus the inputs it was derived from."""

    role: EffectiveRole
    user_id: int | None = None
    workspace_id: int | None = None
    global_role: str | None = None
    workspace_role: str | None = None
    category_role: str | None = None

    def at_least(self, minimum: EffectiveRole) -> bool:
        return self.role >= minimum

    @property
    def is_global_admin(self) -> bool:
        return self.role >= EffectiveRole.PLATFORM_ADMIN

    @property
    def is_workspace_admin(self) -> bool:
        """Workspace owner/admin or a platform-level admin."""
        return self.role >= EffectiveRole.ADMIN

    def to_dict(self):
        return {
            "role": self.role.name.lower(),
            "global_role": self.global_role,
            "workspace_role": self.workspace_role,
            "category_role": self.category_role,
        }


# ── Resolution ───────────────────────────────────────────────────────────


def resolve_role(
    user_id: int,
    workspace_id: int,
    project_id: int | None = None,
    category: str | None = None,
) -> ResolvedRole:
    """Resolve the effective role of ``user_id`` at the narrowest given scope.

    ``category`` is a category name and is only meaningful with ``project_id``.
    """
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        return ResolvedRole(EffectiveRole.UNAUTHORIZED, user_id=user_id, workspace_id=workspace_id)

    if user.global_role == "super_admin":
        return ResolvedRole(
            EffectiveRole.SUPER_ADMIN, user_id, workspace_id, global_role=user.global_role,
        )
    if user.global_role == "admin":
        return ResolvedRole(
            EffectiveRole.PLATFORM_ADMIN, user_id, workspace_id, global_role=user.global_role,
        )

    membership = WorkspaceMember.query.filter_by(
        workspace_id=workspace_id, user_id=user_id,
    ).first()
    if membership is None:
        return ResolvedRole(
            EffectiveRole.UNAUTHORIZED, user_id, workspace_id, global_role=user.global_role,
        )

    baseline = WORKSPACE_ROLE_MAP.get(membership.role, EffectiveRole.UNAUTHORIZED)
    resolved = ResolvedRole(
        baseline, user_id, workspace_id,
        global_role=user.global_role, workspace_role=membership.role,
    )
    if baseline >= EffectiveRole.ADMIN or project_id is None:
        return resolved

    category_role = _category_role(user_id, project_id, category)
    if category_role is None:
        return resolved
    return ResolvedRole(
        CATEGORY_ROLE_MAP[category_role], user_id, workspace_id,
        global_role=user.global_role,
        workspace_role=membership.role,
        category_role=category_role,
    )


def resolve_for_project(user_id: int, project: Project, category: str | None = None) -> ResolvedRole:
    return resolve_role(user_id, project.workspace_id, project.id, category)


def _category_role(user_id: int, project_id: int, category: str | None) -> str | None:
    """Category role at ``category``, or the highest one held in the project."""
    q = (
        db.session.query(CategoryMember.role)
        .join(ProjectCategory, CategoryMember.category_id == ProjectCategory.id)
        .filter(ProjectCategory.project_id == project_id, CategoryMember.user_id == user_id)
    )
    if category is not None:
        q = q.filter(ProjectCategory.name == category)
    roles = [r for (r,) in q.all() if r in CATEGORY_ROLE_MAP]
    if not roles:
        return None
    return max(roles, key=lambda r: CATEGORY_ROLE_MAP[r])


def category_roles_in_project(user_id: int, project_id: int) -> dict[str, str]:
    """Map category name -> role for every category of the project the user is in."""
    rows = (
        db.session.query(ProjectCategory.name, CategoryMember.role)
        .join(CategoryMember, CategoryMember.category_id == ProjectCategory.id)
        .filter(ProjectCategory.project_id == project_id, CategoryMember.user_id == user_id)
        .all()
    )
    return {name: role for name, role in rows}


# ── Capabilities ─────────────────────────────────────────────────────────


class Capability(str, enum.Enum):
    VIEW = "view"
    INVITE = "invite"
    UPDATE_WORKSPACE = "update_workspace"
    MANAGE_MEMBERS = "manage_members"
    PROMOTE_TO_ADMIN = "promote_to_admin"
    MANAGE_OWNERSHIP = "manage_ownership"
    CREATE_PROJECT = "create_project"
    EDIT_PROJECT = "edit_project"
    DELETE_PROJECT = "delete_project"
    MANAGE_CATEGORY_MEMBERS = "manage_category_members"
    CHANGE_CATEGORY_ROLE = "change_category_role"
    CREATE_TASK = "create_task"


MINIMUM_ROLE = {
    Capability.VIEW: EffectiveRole.VIEWER,
    Capability.INVITE: EffectiveRole.ADMIN,
    Capability.UPDATE_WORKSPACE: EffectiveRole.ADMIN,
    Capability.MANAGE_MEMBERS: EffectiveRole.ADMIN,
    Capability.PROMOTE_TO_ADMIN: EffectiveRole.OWNER,
    Capability.MANAGE_OWNERSHIP: EffectiveRole.OWNER,
    Capability.CREATE_PROJECT: EffectiveRole.ADMIN,
    Capability.EDIT_PROJECT: EffectiveRole.LEAD,
    Capability.DELETE_PROJECT: EffectiveRole.ADMIN,
    Capability.MANAGE_CATEGORY_MEMBERS: EffectiveRole.ADMIN,
    Capability.CHANGE_CATEGORY_ROLE: EffectiveRole.LEAD,
    Capability.CREATE_TASK: EffectiveRole.LEAD,
}


def has_capability(resolved: ResolvedRole, capability: Capability) -> bool:
    return resolved.role >= MINIMUM_ROLE[capability]


def can_view(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.VIEW)


def can_invite(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.INVITE)


def can_update_workspace(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.UPDATE_WORKSPACE)


def can_manage_members(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.MANAGE_MEMBERS)


def can_manage_ownership(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.MANAGE_OWNERSHIP)


def can_create_project(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.CREATE_PROJECT)


def can_edit_project(resolved: ResolvedRole, project: Project | None = None) -> bool:
    if project is not None and resolved.user_id is not None and project.created_by == resolved.user_id:
        return resolved.role >= EffectiveRole.VIEWER
    return has_capability(resolved, Capability.EDIT_PROJECT)


def can_delete_project(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.DELETE_PROJECT)


def can_manage_category_members(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.MANAGE_CATEGORY_MEMBERS)


def can_change_category_role(resolved: ResolvedRole) -> bool:
    return has_capability(resolved, Capability.CHANGE_CATEGORY_ROLE)


def can_create_task(resolved: ResolvedRole) -> bool:
    """``resolved`` must be taken at the task's category scope."""
    return has_capability(resolved, Capability.CREATE_TASK)


def can_assign_task(resolved: ResolvedRole, assignee_category_role: str | None) -> bool:
    """Admins assign to any project member; leads only within their category.

    ``resolved`` is the assigner at the task's category scope and
    ``assignee_category_role`` the assignee's role in that same category.
    """
    if resolved.is_workspace_admin:
        return True
    if resolved.role >= EffectiveRole.LEAD:
        return assignee_category_role is not None
    return False


def can_modify_task(resolved: ResolvedRole, task) -> bool:
    """Assignee, creator, category lead, or workspace admin."""
    if resolved.role == EffectiveRole.UNAUTHORIZED:
        return False
    if resolved.is_workspace_admin:
        return True
    if resolved.user_id is not None and resolved.user_id in (task.assignee_id, task.created_by):
        return True
    return resolved.role >= EffectiveRole.LEAD and resolved.category_role == "lead"


_PREDICATES = {
    Capability.VIEW: can_view,
    Capability.INVITE: can_invite,
    Capability.UPDATE_WORKSPACE: can_update_workspace,
    Capability.MANAGE_MEMBERS: can_manage_members,
    Capability.MANAGE_OWNERSHIP: can_manage_ownership,
    Capability.CREATE_PROJECT: can_create_project,
    Capability.DELETE_PROJECT: can_delete_project,
    Capability.MANAGE_CATEGORY_MEMBERS: can_manage_category_members,
    Capability.CHANGE_CATEGORY_ROLE: can_change_category_role,
    Capability.CREATE_TASK: can_create_task,
}


def authorize(
    user_id: int,
    capability: Capability,
    workspace_id: int,
    project_id: int | None = None,
    category: str | None = None,
) -> ResolvedRole:
    """Resolve and check one capability; raise instead of returning False.

    Raises:
        UnauthorizedError: ``user_id`` is unknown or deactivated.
        ForbiddenError: the resolved role does not grant ``capability``.
    """
    resolved = resolve_role(user_id, workspace_id, project_id, category)
    ensure(resolved, capability)
    return resolved


def ensure(resolved: ResolvedRole, capability: Capability) -> None:
    if resolved.global_role is None and resolved.role == EffectiveRole.UNAUTHORIZED:
        raise UnauthorizedError("Unknown or inactive user")
    predicate = _PREDICATES.get(capability)
    allowed = predicate(resolved) if predicate else has_capability(resolved, capability)
    if not allowed:
        logger.info(
            "Denied %s for user=%s workspace=%s role=%s",
            capability.value, resolved.user_id, resolved.workspace_id, resolved.role.name,
        )
        raise ForbiddenError(
            f"Insufficient permissions: {capability.value} requires "
            f"{MINIMUM_ROLE[capability].name.lower()}",
            capability=capability.value,
        )
