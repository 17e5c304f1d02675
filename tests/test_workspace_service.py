"""Workspace lifecycle and membership invariants."""

from datetime import timedelta

import pytest

from workhub.core.exceptions import (
    ConflictError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from workhub.models import db
from workhub.models.notification import Notification
from workhub.models.project import CategoryMember
from workhub.models.workspace import Workspace, WorkspaceMember
from workhub.services import project_service, workspace_service
from workhub.utils.helpers import utcnow


def _owners(workspace_id):
    return WorkspaceMember.query.filter_by(workspace_id=workspace_id, role="owner").all()


# ── Create / read ────────────────────────────────────────────────────────


def test_creator_becomes_single_owner(workspace, owner):
    owners = _owners(workspace.id)
    assert [m.user_id for m in owners] == [owner.id]
    assert workspace.created_by == owner.id


def test_name_required(owner):
    with pytest.raises(ValidationError):
        workspace_service.create_workspace(owner.id, {"name": "  "})


def test_list_user_workspaces_includes_role(workspace, owner, add_member):
    bob = add_member("bob", "viewer")
    items = workspace_service.list_user_workspaces(bob.id)
    assert [(w["id"], w["my_role"]) for w in items] == [(workspace.id, "viewer")]
    assert workspace_service.list_user_workspaces(owner.id)[0]["my_role"] == "owner"


def test_get_workspace_requires_membership(workspace, make_user):
    stranger = make_user("stranger")
    with pytest.raises(ForbiddenError):
        workspace_service.get_workspace(workspace.id, stranger.id)


def test_add_member_twice_is_duplicate(workspace, add_member):
    bob = add_member("bob")
    with pytest.raises(DuplicateError):
        workspace_service.add_member(workspace.id, bob.id, "viewer")


# ── Update / archive ─────────────────────────────────────────────────────


def test_admin_updates_member_cannot(workspace, add_member):
    admin = add_member("adam", "admin")
    member = add_member("mike", "member")
    workspace_service.update_workspace(workspace.id, admin.id, {"name": "Renamed"})
    assert db.session.get(Workspace, workspace.id).name == "Renamed"
    with pytest.raises(ForbiddenError):
        workspace_service.update_workspace(workspace.id, member.id, {"name": "Nope"})


def test_archive_blocks_mutation_and_restore_reopens(workspace, owner):
    ws = workspace_service.archive_workspace(workspace.id, owner.id)
    assert ws.is_archived is True
    assert ws.delete_scheduled_at is not None
    with pytest.raises(ConflictError):
        workspace_service.update_workspace(workspace.id, owner.id, {"name": "X"})

    ws = workspace_service.restore_workspace(workspace.id, owner.id)
    assert ws.is_archived is False
    assert ws.delete_scheduled_at is None


def test_only_owner_archives(workspace, add_member):
    admin = add_member("adam", "admin")
    with pytest.raises(ForbiddenError):
        workspace_service.archive_workspace(workspace.id, admin.id)


def test_restore_after_window_conflicts(workspace, owner):
    ws = workspace_service.archive_workspace(workspace.id, owner.id)
    ws.delete_scheduled_at = utcnow() - timedelta(seconds=1)
    db.session.commit()
    with pytest.raises(ConflictError):
        workspace_service.restore_workspace(workspace.id, owner.id)


def test_purge_removes_elapsed_archives_only(workspace, owner):
    other = workspace_service.create_workspace(owner.id, {"name": "Other"})
    workspace_service.archive_workspace(workspace.id, owner.id)
    workspace_service.archive_workspace(other.id, owner.id)
    ws = db.session.get(Workspace, workspace.id)
    ws.delete_scheduled_at = utcnow() - timedelta(days=1)
    db.session.commit()
    workspace_id, other_id = workspace.id, other.id

    assert workspace_service.purge_archived_workspaces() == 1
    assert db.session.get(Workspace, workspace_id) is None
    assert db.session.get(Workspace, other_id) is not None
    assert WorkspaceMember.query.filter_by(workspace_id=workspace_id).count() == 0


# ── Ownership ────────────────────────────────────────────────────────────


def test_owner_cannot_be_removed_or_demoted(workspace, owner, add_member):
    admin = add_member("adam", "admin")
    with pytest.raises(ConflictError):
        workspace_service.remove_member(workspace.id, admin.id, owner.id)
    with pytest.raises(ConflictError):
        workspace_service.change_member_role(workspace.id, owner.id, owner.id, "admin")
    with pytest.raises(ConflictError):
        workspace_service.leave_workspace(workspace.id, owner.id)
    assert [m.user_id for m in _owners(workspace.id)] == [owner.id]


def test_transfer_leaves_exactly_one_owner(workspace, owner, add_member):
    bob = add_member("bob", "member")
    workspace_service.transfer_ownership(workspace.id, owner.id, bob.id)

    assert [m.user_id for m in _owners(workspace.id)] == [bob.id]
    assert workspace_service.get_member(workspace.id, owner.id).role == "admin"


def test_transfer_requires_owner_and_member_target(workspace, owner, add_member, make_user):
    admin = add_member("adam", "admin")
    stranger = make_user("stranger")
    with pytest.raises(ForbiddenError):
        workspace_service.transfer_ownership(workspace.id, admin.id, admin.id)
    with pytest.raises(ValidationError):
        workspace_service.transfer_ownership(workspace.id, owner.id, stranger.id)
    with pytest.raises(ConflictError):
        workspace_service.transfer_ownership(workspace.id, owner.id, owner.id)
    with pytest.raises(ValidationError):
        workspace_service.transfer_ownership(workspace.id, owner.id, admin.id, demote_to="viewer")


# ── Members ──────────────────────────────────────────────────────────────


def test_remove_member_drops_category_memberships(workspace, owner, add_member):
    bob = add_member("bob", "member")
    project_service.create_project(workspace.id, owner.id, {
        "title": "P", "categories": [{"name": "Design", "members": [{"user_id": bob.id, "role": "lead"}]}],
    })
    workspace_service.remove_member(workspace.id, owner.id, bob.id)

    assert workspace_service.get_member(workspace.id, bob.id) is None
    assert CategoryMember.query.filter_by(user_id=bob.id).count() == 0
    assert Notification.query.filter_by(recipient_id=bob.id, type="member_left").count() == 1


def test_admin_cannot_remove_admin(workspace, owner, add_member):
    admin = add_member("adam", "admin")
    other = add_member("ada", "admin")
    with pytest.raises(ForbiddenError):
        workspace_service.remove_member(workspace.id, admin.id, other.id)
    workspace_service.remove_member(workspace.id, owner.id, other.id)
    assert workspace_service.get_member(workspace.id, other.id) is None


def test_remove_unknown_member_not_found(workspace, owner):
    with pytest.raises(NotFoundError):
        workspace_service.remove_member(workspace.id, owner.id, 4242)


def test_change_role_rules(workspace, owner, add_member):
    admin = add_member("adam", "admin")
    bob = add_member("bob", "member")

    member = workspace_service.change_member_role(workspace.id, admin.id, bob.id, "lead")
    assert member.role == "lead"
    with pytest.raises(ForbiddenError):
        workspace_service.change_member_role(workspace.id, admin.id, bob.id, "admin")
    with pytest.raises(ForbiddenError):
        workspace_service.change_member_role(workspace.id, admin.id, admin.id, "viewer")
    with pytest.raises(ValidationError):
        workspace_service.change_member_role(workspace.id, owner.id, bob.id, "owner")

    promoted = workspace_service.change_member_role(workspace.id, owner.id, bob.id, "admin")
    assert promoted.role == "admin"


def test_leave_notifies_admins(workspace, owner, add_member):
    bob = add_member("bob", "member")
    workspace_service.leave_workspace(workspace.id, bob.id)
    assert workspace_service.get_member(workspace.id, bob.id) is None
    notif = Notification.query.filter_by(recipient_id=owner.id, type="member_left").one()
    assert notif.sender_id == bob.id
