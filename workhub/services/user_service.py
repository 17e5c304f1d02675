"""
User Service — identity records and the account deletion policy.

Credentials live with the identity provider; this module only keeps the
profile the authorization core needs (email, name, global role).
"""

import logging

from email_validator import EmailNotValidError, validate_email

from workhub.core.exceptions import (
    ConflictError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from workhub.models import db
from workhub.models.comment import Comment
from workhub.models.invite import Invite
from workhub.models.notification import Notification
from workhub.models.project import CategoryMember, Project
from workhub.models.task import Task
from workhub.models.user import GLOBAL_ROLES, User
from workhub.models.workspace import Workspace, WorkspaceMember

logger = logging.getLogger(__name__)


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def create_user(email: str, name: str, global_role: str = "user") -> User:
    """Register a user profile; email is normalized and must be unique."""
    try:
        email = validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e

    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", details={"name": "required"})
    if global_role not in GLOBAL_ROLES:
        raise ValidationError(f"Invalid global role: {global_role}", details={"global_role": global_role})
    if User.query.filter(db.func.lower(User.email) == email).first() is not None:
        raise DuplicateError(f"User with email {email} already exists", resource="User")

    user = User(email=email, name=name, global_role=global_role)
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s role=%s", user.id, global_role)
    return user


def delete_user(user_id: int, actor_id: int) -> None:
    """Delete a user account.

    Rejected while the user owns a workspace (ownership must be transferred
    first) or is assignee of live tasks. Otherwise memberships, category
    memberships and notifications go with the user; issued invites, created
    projects and tasks keep their rows with the reference cleared.
    """
    actor = get_user_or_404(actor_id)
    if actor_id != user_id and actor.global_role not in ("admin", "super_admin"):
        raise ForbiddenError("Only the user or a platform admin can delete this account")
    user = get_user_or_404(user_id)

    owned = WorkspaceMember.query.filter_by(user_id=user_id, role="owner").count()
    if owned:
        raise ConflictError(
            f"User owns {owned} workspace(s); transfer ownership first", resource="User",
        )
    open_tasks = Task.query.filter_by(assignee_id=user_id, is_active=True).filter(Task.status != "done").count()
    if open_tasks:
        raise ConflictError(
            f"User is assignee of {open_tasks} open task(s); reassign them first", resource="User",
        )

    WorkspaceMember.query.filter_by(user_id=user_id).delete(synchronize_session=False)
    CategoryMember.query.filter_by(user_id=user_id).delete(synchronize_session=False)
    Notification.query.filter_by(recipient_id=user_id).delete(synchronize_session=False)
    Notification.query.filter_by(sender_id=user_id).update({"sender_id": None}, synchronize_session=False)
    Invite.query.filter_by(invited_by=user_id).update({"invited_by": None}, synchronize_session=False)
    Invite.query.filter_by(accepted_by=user_id).update({"accepted_by": None}, synchronize_session=False)
    Task.query.filter_by(assignee_id=user_id).update({"assignee_id": None}, synchronize_session=False)
    Task.query.filter_by(created_by=user_id).update({"created_by": None}, synchronize_session=False)
    Project.query.filter_by(created_by=user_id).update({"created_by": None}, synchronize_session=False)
    Comment.query.filter_by(author_id=user_id).update({"author_id": None}, synchronize_session=False)
    Workspace.query.filter_by(created_by=user_id).update({"created_by": None}, synchronize_session=False)
    Workspace.query.filter_by(archived_by=user_id).update({"archived_by": None}, synchronize_session=False)

    db.session.expire_all()
    db.session.delete(db.session.get(User, user.id))
    db.session.commit()
    logger.info("User %s deleted by %s", user_id, actor_id)
