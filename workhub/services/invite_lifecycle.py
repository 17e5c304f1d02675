"""
Invite Lifecycle Service

Manages workspace invitations through their state machine:

    pending ──accept──▶ accepted
       │    ──decline─▶ declined
       └────expiry────▶ expired

Only ``pending`` has outgoing transitions. Expiry is evaluated lazily on
every read path (``now > expires_at`` fails regardless of stored status);
the ``purge-expired-invites`` CLI sweep is housekeeping only.

Acceptance is a compare-and-swap: a single UPDATE guarded by
``status = 'pending'``. Of two concurrent accepts exactly one sees a row
count of 1; the other gets AlreadyConsumedError. The status change, the
membership row and the ``member_joined`` notifications share one commit.

Usage:
    from workhub.services.invite_lifecycle import accept_invite

    member = accept_invite(token="9f2c...", user_id=7)
"""

import logging
import secrets
from datetime import timedelta

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from workhub.core.exceptions import (
    AlreadyConsumedError,
    DuplicateError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from workhub.models import db
from workhub.models.invite import INVITE_ROLES, Invite
from workhub.models.user import User
from workhub.models.workspace import WorkspaceMember
from workhub.services import permission_service as perms
from workhub.services import workspace_service
from workhub.services.email_service import EmailService
from workhub.services.notification import NotificationService
from workhub.services.permission_service import Capability, EffectiveRole
from workhub.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


# Invite transition rules
INVITE_TRANSITIONS = {
    "accept": {"from": ["pending"], "to": "accepted"},
    "decline": {"from": ["pending"], "to": "declined"},
    "expire": {"from": ["pending"], "to": "expired"},
}


def _new_token() -> str:
    return secrets.token_hex(32)


def _ttl() -> timedelta:
    return timedelta(days=current_app.config.get("INVITE_TTL_DAYS", 7))


def _normalize_email(email: str) -> str:
    try:
        return validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid"}) from exc


def is_expired(invite: Invite, now=None) -> bool:
    now = now or utcnow()
    return now > as_utc(invite.expires_at)


def _get_by_token(token: str) -> Invite:
    invite = Invite.query.filter_by(token=token).first() if token else None
    if invite is None:
        raise NotFoundError("Invite")
    return invite


def _compare_and_set(invite_id: int, action: str, values: dict) -> None:
    """Apply ``action`` only if the invite is still in an allowed source state."""
    rule = INVITE_TRANSITIONS[action]
    updated = (
        Invite.query
        .filter(Invite.id == invite_id, Invite.status.in_(rule["from"]))
        .update({"status": rule["to"], **values}, synchronize_session=False)
    )
    if updated != 1:
        db.session.rollback()
        current = db.session.get(Invite, invite_id)
        raise AlreadyConsumedError(current.status if current else None)


def _expire_if_pending(invite: Invite) -> None:
    if invite.status == "pending":
        Invite.query.filter(Invite.id == invite.id, Invite.status == "pending").update(
            {"status": "expired"}, synchronize_session=False,
        )
        db.session.commit()
        logger.info("Invite %s expired on access", invite.id)


def _check_consumable(invite: Invite, user: User) -> None:
    """Guard order: expiry, state, recipient, existing membership."""
    if is_expired(invite):
        _expire_if_pending(invite)
        raise ExpiredError()
    if invite.status != "pending":
        raise AlreadyConsumedError(invite.status)
    if user.email.lower() != invite.email.lower():
        raise ForbiddenError("This invite was issued to a different email address")


def _get_active_user(user_id: int) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise UnauthorizedError("Unknown or inactive user")
    return user


# ── Issue ────────────────────────────────────────────────────────────────


def issue_invite(workspace_id: int, email: str, role: str, invited_by: int) -> Invite:
    """Create (or refresh) a pending invite and mail its link.

    Raises:
        ForbiddenError: inviter lacks the invite capability.
        ValidationError: bad email or role.
        DuplicateError: the address already belongs to a member.
    """
    ws = workspace_service.get_workspace_or_404(workspace_id)
    resolved = perms.authorize(invited_by, Capability.INVITE, workspace_id)
    workspace_service.ensure_not_archived(ws)

    email = _normalize_email(email)
    role = role or "member"
    if role not in INVITE_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {list(INVITE_ROLES)}", details={"role": role},
        )
    if role == "admin" and resolved.role < EffectiveRole.OWNER:
        raise ForbiddenError("Only the owner can invite admins",
                             capability=Capability.PROMOTE_TO_ADMIN.value)

    target = User.query.filter(db.func.lower(User.email) == email).first()
    if target is not None and workspace_service.get_member(workspace_id, target.id) is not None:
        raise DuplicateError("User is already a member of this workspace", resource="WorkspaceMember")

    now = utcnow()
    invite = (
        Invite.query
        .filter_by(workspace_id=workspace_id, email=email, status="pending")
        .order_by(Invite.created_at.desc())
        .first()
    )
    if invite is not None and is_expired(invite, now):
        invite.status = "expired"
        invite = None

    if invite is None:
        invite = Invite(workspace_id=workspace_id, email=email, token=_new_token())
        db.session.add(invite)
    invite.role = role
    invite.invited_by = invited_by
    invite.expires_at = now + _ttl()
    db.session.flush()

    if target is not None:
        NotificationService.emit(
            "workspace_invite", target.id,
            title=f"Invitation to {ws.name}",
            message=f"You have been invited to join {ws.name} as {role}.",
            sender_id=invited_by,
            data={"invite_id": invite.id},
        )
    db.session.commit()
    logger.info("Invite %s issued ws=%s email=%s role=%s", invite.id, workspace_id, email, role)

    inviter = db.session.get(User, invited_by)
    try:
        EmailService.send_invite(
            email, invite.token, ws.name,
            inviter_name=inviter.name if inviter else None, role=role,
        )
    except Exception:
        logger.exception("Invite mail delivery failed invite=%s", invite.id)
    return invite


def list_workspace_invites(workspace_id: int, user_id: int) -> list[dict]:
    workspace_service.get_workspace_or_404(workspace_id)
    perms.authorize(user_id, Capability.INVITE, workspace_id)
    now = utcnow()
    invites = (
        Invite.query
        .filter_by(workspace_id=workspace_id, status="pending")
        .order_by(Invite.created_at.desc())
        .all()
    )
    return [i.to_dict() for i in invites if not is_expired(i, now)]


def get_invite_preview(token: str) -> dict:
    """Read-only summary for the accept screen."""
    invite = _get_by_token(token)
    status = invite.status
    if status == "pending" and is_expired(invite):
        status = "expired"
    inviter = invite.inviter
    return {
        "workspace": {"id": invite.workspace.id, "name": invite.workspace.name},
        "email": invite.email,
        "role": invite.role,
        "status": status,
        "invited_by": {"id": inviter.id, "name": inviter.name} if inviter else None,
        "expires_at": invite.expires_at.isoformat() if invite.expires_at else None,
    }


# ── Accept / decline ─────────────────────────────────────────────────────


def accept_invite(token: str, user_id: int) -> WorkspaceMember:
    """Consume a pending invite and create the membership.

    Raises (in this order):
        NotFoundError: no invite with this token.
        ExpiredError: ``now > expires_at``, whatever the stored status.
        AlreadyConsumedError: status is not pending, or a concurrent accept won.
        ForbiddenError: the caller's email differs from the invite's.
        ConflictError: the workspace is archived.
        DuplicateError: the caller is already a member.

    The membership check follows the swap: a race loser gets AlreadyConsumedError.
    """
    user = _get_active_user(user_id)
    invite = _get_by_token(token)
    _check_consumable(invite, user)
    workspace_service.ensure_not_archived(invite.workspace)

    workspace_id = invite.workspace_id
    try:
        _compare_and_set(invite.id, "accept", {"accepted_at": utcnow(), "accepted_by": user.id})
        if workspace_service.get_member(workspace_id, user.id) is not None:
            raise DuplicateError("User is already a member of this workspace", resource="WorkspaceMember")
        member = workspace_service.add_member(workspace_id, user.id, invite.role)
        ws_name = invite.workspace.name
        NotificationService.emit_many(
            "member_joined",
            [rid for rid in workspace_service.admin_recipient_ids(workspace_id) if rid != user.id],
            title=f"{user.name} joined {ws_name}",
            message=f"{user.name} ({user.email}) accepted the invitation as {invite.role}.",
            sender_id=user.id,
            data={"workspace_id": workspace_id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.refresh(invite)
    logger.info("Invite %s accepted by user=%s ws=%s", invite.id, user.id, workspace_id)
    return member


def decline_invite(token: str, user_id: int) -> Invite:
    user = _get_active_user(user_id)
    invite = _get_by_token(token)
    _check_consumable(invite, user)
    _compare_and_set(invite.id, "decline", {"declined_at": utcnow()})
    db.session.commit()
    db.session.refresh(invite)
    logger.info("Invite %s declined by user=%s", invite.id, user.id)
    return invite


# ── Housekeeping ─────────────────────────────────────────────────────────


def purge_expired_invites(now=None) -> int:
    """Mark every past-expiry pending invite as expired."""
    now = now or utcnow()
    pending = Invite.query.filter_by(status="pending").all()
    expired_ids = [i.id for i in pending if is_expired(i, now)]
    if not expired_ids:
        return 0
    count = (
        Invite.query
        .filter(Invite.id.in_(expired_ids), Invite.status == "pending")
        .update({"status": "expired"}, synchronize_session=False)
    )
    db.session.commit()
    logger.info("Expired %d stale invites", count)
    return count
