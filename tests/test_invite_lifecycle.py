"""Invite lifecycle: issue, accept, decline, expiry and the accept race."""

import smtplib
from datetime import timedelta

import pytest

from workhub.core.exceptions import (
    AlreadyConsumedError,
    ConflictError,
    DuplicateError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from workhub.models import db
from workhub.models.invite import Invite
from workhub.models.notification import Notification
from workhub.models.workspace import WorkspaceMember
from workhub.services import invite_lifecycle, workspace_service
from workhub.services.email_service import EmailService
from workhub.utils.helpers import utcnow


def _expire(invite):
    invite.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()


# ── Issue ────────────────────────────────────────────────────────────────


def test_owner_issues_pending_invite(workspace, owner):
    invite = invite_lifecycle.issue_invite(workspace.id, "Alice@Example.com", "lead", owner.id)
    assert invite.status == "pending"
    assert invite.email == "alice@example.com"
    assert invite.role == "lead"
    assert len(invite.token) == 64
    assert invite.expires_at is not None


def test_invalid_email_and_role_rejected(workspace, owner):
    with pytest.raises(ValidationError):
        invite_lifecycle.issue_invite(workspace.id, "not-an-email", "member", owner.id)
    with pytest.raises(ValidationError):
        invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "owner", owner.id)


def test_lead_cannot_invite(workspace, add_member):
    lead = add_member("lena", "lead")
    with pytest.raises(ForbiddenError):
        invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", lead.id)


def test_only_owner_invites_admins(workspace, owner, add_member):
    admin = add_member("adam", "admin")
    with pytest.raises(ForbiddenError):
        invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "admin", admin.id)
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "admin", owner.id)
    assert invite.role == "admin"


def test_inviting_existing_member_is_duplicate(workspace, owner, add_member):
    add_member("bob", "member")
    with pytest.raises(DuplicateError):
        invite_lifecycle.issue_invite(workspace.id, "bob@example.com", "member", owner.id)


def test_reissue_refreshes_pending_invite(workspace, owner):
    first = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    second = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "lead", owner.id)
    assert first.id == second.id
    assert second.role == "lead"
    assert Invite.query.filter_by(workspace_id=workspace.id).count() == 1


def test_reissue_after_expiry_creates_new_invite(workspace, owner):
    first = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    _expire(first)
    second = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    assert second.id != first.id
    assert db.session.get(Invite, first.id).status == "expired"


@pytest.mark.parametrize("error", [smtplib.SMTPException("relay refused"), ValueError("bad header")])
def test_mail_failure_does_not_fail_issuance(app, monkeypatch, workspace, owner, error):
    def _fail(**kwargs):
        raise error

    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.com")
    monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(_fail))

    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)

    assert invite.status == "pending"
    stored = Invite.query.filter_by(workspace_id=workspace.id, email="alice@example.com").one()
    assert stored.id == invite.id


def test_registered_invitee_is_notified(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    notif = Notification.query.filter_by(recipient_id=alice.id, type="workspace_invite").one()
    assert notif.entity_type == "invite"
    assert notif.entity_id == invite.id


# ── Accept ───────────────────────────────────────────────────────────────


def test_accept_creates_membership_and_notifies_owner(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "lead", owner.id)

    member = invite_lifecycle.accept_invite(invite.token, alice.id)

    assert member.role == "lead"
    assert member.workspace_id == workspace.id
    invite = db.session.get(Invite, invite.id)
    assert invite.status == "accepted"
    assert invite.accepted_by == alice.id
    joined = Notification.query.filter_by(recipient_id=owner.id, type="member_joined").one()
    assert joined.entity_type == "workspace"
    assert joined.entity_id == workspace.id
    assert any(w["workspace_id"] == workspace.id and w["role"] == "lead" for w in alice.workspaces)


def test_double_accept_yields_single_membership(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    invite_lifecycle.accept_invite(invite.token, alice.id)

    with pytest.raises(AlreadyConsumedError):
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert WorkspaceMember.query.filter_by(workspace_id=workspace.id, user_id=alice.id).count() == 1


def test_compare_and_set_lets_only_one_writer_win(workspace, owner):
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    invite_lifecycle._compare_and_set(invite.id, "accept", {})
    db.session.commit()
    with pytest.raises(AlreadyConsumedError) as exc:
        invite_lifecycle._compare_and_set(invite.id, "accept", {})
    assert exc.value.status == "accepted"


def test_race_loser_sees_already_consumed(monkeypatch, workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    invite_lifecycle.accept_invite(invite.token, alice.id)

    # Second request read the invite as pending before the first one committed
    monkeypatch.setattr(invite_lifecycle, "_check_consumable", lambda invite, user: None)
    with pytest.raises(AlreadyConsumedError) as exc:
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert exc.value.status == "accepted"
    assert WorkspaceMember.query.filter_by(workspace_id=workspace.id, user_id=alice.id).count() == 1


def test_accept_by_existing_member_keeps_invite_pending(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "lead", owner.id)
    workspace_service.add_member(workspace.id, alice.id, "member")
    db.session.commit()

    with pytest.raises(DuplicateError):
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert db.session.get(Invite, invite.id).status == "pending"
    assert workspace_service.get_member(workspace.id, alice.id).role == "member"


def test_accept_on_archived_workspace_conflicts(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    workspace_service.archive_workspace(workspace.id, owner.id)

    with pytest.raises(ConflictError):
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert db.session.get(Invite, invite.id).status == "pending"
    assert workspace_service.get_member(workspace.id, alice.id) is None


def test_expired_invite_fails_regardless_of_stored_status(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    _expire(invite)
    assert db.session.get(Invite, invite.id).status == "pending"

    with pytest.raises(ExpiredError):
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert db.session.get(Invite, invite.id).status == "expired"
    with pytest.raises(ExpiredError):
        invite_lifecycle.accept_invite(invite.token, alice.id)
    assert WorkspaceMember.query.filter_by(user_id=alice.id).count() == 0


def test_accept_with_other_email_is_forbidden(workspace, owner, make_user):
    mallory = make_user("mallory")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    with pytest.raises(ForbiddenError):
        invite_lifecycle.accept_invite(invite.token, mallory.id)
    assert db.session.get(Invite, invite.id).status == "pending"


def test_unknown_token_not_found(make_user):
    alice = make_user("alice")
    with pytest.raises(NotFoundError):
        invite_lifecycle.accept_invite("nope", alice.id)


# ── Decline / preview / purge ────────────────────────────────────────────


def test_decline_then_accept_is_consumed(workspace, owner, make_user):
    alice = make_user("alice")
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    declined = invite_lifecycle.decline_invite(invite.token, alice.id)
    assert declined.status == "declined"
    assert declined.declined_at is not None
    with pytest.raises(AlreadyConsumedError):
        invite_lifecycle.accept_invite(invite.token, alice.id)


def test_preview_reports_lazy_expiry(workspace, owner):
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "viewer", owner.id)
    preview = invite_lifecycle.get_invite_preview(invite.token)
    assert preview["status"] == "pending"
    assert preview["workspace"]["name"] == "Acme"
    _expire(invite)
    assert invite_lifecycle.get_invite_preview(invite.token)["status"] == "expired"


def test_list_hides_expired_invites(workspace, owner):
    live = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    stale = invite_lifecycle.issue_invite(workspace.id, "carol@example.com", "member", owner.id)
    _expire(stale)
    ids = [i["id"] for i in invite_lifecycle.list_workspace_invites(workspace.id, owner.id)]
    assert ids == [live.id]


def test_purge_marks_expired(workspace, owner):
    invite = invite_lifecycle.issue_invite(workspace.id, "alice@example.com", "member", owner.id)
    _expire(invite)
    assert invite_lifecycle.purge_expired_invites() == 1
    assert db.session.get(Invite, invite.id).status == "expired"
    assert invite_lifecycle.purge_expired_invites() == 0
