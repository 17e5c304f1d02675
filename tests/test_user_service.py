"""User profile creation and the account deletion policy."""

import pytest

from workhub.core.exceptions import ConflictError, DuplicateError, ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.project import CategoryMember
from workhub.models.task import Task
from workhub.models.user import User
from workhub.models.workspace import WorkspaceMember
from workhub.services import project_service, task_service, user_service, workspace_service


def test_create_user_normalizes_email():
    user = user_service.create_user("  Alice@Example.COM ", "Alice")
    assert user.email == "alice@example.com"
    assert user.global_role == "user"
    with pytest.raises(DuplicateError):
        user_service.create_user("alice@example.com", "Other Alice")


@pytest.mark.parametrize("email,name,role", [
    ("not-an-email", "Bob", "user"),
    ("bob@example.com", "", "user"),
    ("bob@example.com", "Bob", "root"),
])
def test_create_user_validation(email, name, role):
    with pytest.raises(ValidationError):
        user_service.create_user(email, name, role)


def test_owner_cannot_be_deleted(workspace, owner):
    with pytest.raises(ConflictError):
        user_service.delete_user(owner.id, owner.id)


def test_only_self_or_platform_admin_deletes(make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    admin = make_user("platform", global_role="admin")
    with pytest.raises(ForbiddenError):
        user_service.delete_user(alice.id, bob.id)
    user_service.delete_user(alice.id, admin.id)
    assert db.session.get(User, alice.id) is None


def test_open_assignment_blocks_deletion(workspace, owner, add_member):
    mike = add_member("mike", "member")
    project = project_service.create_project(workspace.id, owner.id, {
        "title": "P", "categories": [{"name": "Design", "members": [{"user_id": mike.id}]}],
    })
    task = task_service.create_task(project.id, owner.id, {
        "title": "T", "category": "Design", "assignee_id": mike.id,
        "start_date": "2026-01-01", "due_date": "2026-01-02",
    })
    with pytest.raises(ConflictError):
        user_service.delete_user(mike.id, mike.id)

    task_service.update_task_status(task.id, owner.id, "done")
    user_service.delete_user(mike.id, mike.id)

    assert WorkspaceMember.query.filter_by(user_id=mike.id).count() == 0
    assert CategoryMember.query.filter_by(user_id=mike.id).count() == 0
    assert db.session.get(Task, task.id).assignee_id is None
    # Workspace keeps exactly one owner
    assert workspace_service.get_member(workspace.id, owner.id).role == "owner"


def test_get_user_or_404(make_user):
    alice = make_user("alice")
    assert user_service.get_user_or_404(alice.id) is alice
    with pytest.raises(NotFoundError):
        user_service.get_user_or_404(99999)
