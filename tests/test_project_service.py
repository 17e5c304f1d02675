"""Project, category and category-membership service tests."""

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
from workhub.models.project import STATUS_PROGRESS, Project
from workhub.services import project_service, workspace_service


@pytest.fixture()
def project(workspace, owner):
    return project_service.create_project(workspace.id, owner.id, {
        "title": "Website",
        "start_date": "2026-01-01",
        "end_date": "2026-03-31",
        "categories": [{"name": "Design"}, {"name": "Backend"}],
    })


def test_create_project_defaults(project, owner):
    assert project.status == "Planning"
    assert project.progress == STATUS_PROGRESS["Planning"]
    assert project.created_by == owner.id
    assert [c.name for c in project.categories] == ["Design", "Backend"]
    assert project.total_tasks == 0


def test_only_admins_create_projects(workspace, add_member):
    lead = add_member("lena", "lead")
    with pytest.raises(ForbiddenError):
        project_service.create_project(workspace.id, lead.id, {"title": "X"})


def test_create_rejects_duplicate_categories_and_outsiders(workspace, owner, make_user):
    with pytest.raises(ValidationError):
        project_service.create_project(workspace.id, owner.id, {
            "title": "X", "categories": [{"name": "A"}, {"name": "A"}],
        })
    outsider = make_user("outsider")
    with pytest.raises(ValidationError):
        project_service.create_project(workspace.id, owner.id, {
            "title": "X", "categories": [{"name": "A", "members": [{"user_id": outsider.id}]}],
        })
    assert Project.query.count() == 0


def test_create_rejects_inverted_dates(workspace, owner):
    with pytest.raises(ValidationError):
        project_service.create_project(workspace.id, owner.id, {
            "title": "X", "start_date": "2026-05-01", "end_date": "2026-04-01",
        })


def test_create_on_archived_workspace_conflicts(workspace, owner):
    workspace_service.archive_workspace(workspace.id, owner.id)
    with pytest.raises(ConflictError):
        project_service.create_project(workspace.id, owner.id, {"title": "X"})


def test_archived_workspace_freezes_projects_and_categories(workspace, project, owner, add_member):
    bob = add_member("bob", "member")
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": bob.id})
    workspace_service.archive_workspace(workspace.id, owner.id)

    writes = [
        lambda: project_service.update_project(project.id, owner.id, {"title": "Renamed"}),
        lambda: project_service.update_project_status(project.id, owner.id, "Completed"),
        lambda: project_service.add_category(project.id, owner.id, "QA"),
        lambda: project_service.update_category_status(project.id, owner.id, "Design", "Completed"),
        lambda: project_service.add_category_member(project.id, owner.id, "Backend", {"user_id": bob.id}),
        lambda: project_service.change_category_member_role(project.id, owner.id, "Design", bob.id, "lead"),
        lambda: project_service.remove_category_member(project.id, owner.id, "Design", bob.id),
        lambda: project_service.delete_project(project.id, owner.id),
    ]
    for write in writes:
        with pytest.raises(ConflictError):
            write()
        db.session.rollback()

    fresh = project_service.get_project_or_404(project.id)
    assert fresh.title == "Website"
    assert fresh.status == "Planning"
    assert [c.name for c in fresh.categories] == ["Design", "Backend"]
    assert fresh.get_category("Design").member_role(bob.id) == "member"


def test_category_members_by_email_are_notified(workspace, owner, add_member):
    bob = add_member("bob", "member")
    project = project_service.create_project(workspace.id, owner.id, {
        "title": "Mobile",
        "categories": [{"name": "QA", "members": [{"email": "BOB@example.com", "role": "lead"}]}],
    })
    assert project.get_category("QA").member_role(bob.id) == "lead"
    notif = Notification.query.filter_by(recipient_id=bob.id, type="project_created").one()
    assert notif.entity_id == project.id


@pytest.mark.parametrize("status", list(STATUS_PROGRESS))
def test_progress_follows_status(project, owner, status):
    updated = project_service.update_project_status(project.id, owner.id, status)
    assert updated.progress == STATUS_PROGRESS[status]


def test_progress_cannot_be_written(project, owner):
    with pytest.raises(ValidationError):
        project_service.update_project(project.id, owner.id, {"progress": 99})
    assert db.session.get(Project, project.id).progress == STATUS_PROGRESS["Planning"]


def test_invalid_status_rejected(project, owner):
    with pytest.raises(ValidationError):
        project_service.update_project_status(project.id, owner.id, "Done-ish")


def test_category_lead_may_edit_member_may_not(project, owner, add_member):
    lead = add_member("lena", "viewer")
    member = add_member("mike", "member")
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": lead.id, "role": "lead"})
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": member.id})

    updated = project_service.update_project(project.id, lead.id, {"title": "Website v2"})
    assert updated.title == "Website v2"
    with pytest.raises(ForbiddenError):
        project_service.update_project(project.id, member.id, {"title": "Nope"})


def test_delete_is_soft_and_admin_only(project, owner, add_member):
    lead = add_member("lena", "lead")
    with pytest.raises(ForbiddenError):
        project_service.delete_project(project.id, lead.id)
    project_service.delete_project(project.id, owner.id)
    with pytest.raises(NotFoundError):
        project_service.get_project(project.id, owner.id)
    assert db.session.get(Project, project.id).is_active is False


def test_list_projects_visibility(workspace, project, owner, add_member):
    bob = add_member("bob", "member")
    assert project_service.list_projects(workspace.id, bob.id) == []
    project_service.add_category_member(project.id, owner.id, "Backend", {"user_id": bob.id})
    assert [p["id"] for p in project_service.list_projects(workspace.id, bob.id)] == [project.id]
    assert len(project_service.list_projects(workspace.id, owner.id)) == 1


# ── Categories ───────────────────────────────────────────────────────────


def test_add_category_duplicate(project, owner):
    category = project_service.add_category(project.id, owner.id, "Ops")
    assert category.position == 2
    with pytest.raises(DuplicateError):
        project_service.add_category(project.id, owner.id, "Ops")


def test_category_status_couples_completed_at(project, owner):
    category = project_service.update_category_status(project.id, owner.id, "Design", "Completed")
    assert category.completed_at is not None
    category = project_service.update_category_status(project.id, owner.id, "Design", "In Progress")
    assert category.completed_at is None


def test_add_member_to_missing_category(project, owner, add_member):
    bob = add_member("bob")
    with pytest.raises(ValidationError):
        project_service.add_category_member(project.id, owner.id, "Nope", {"user_id": bob.id})


def test_add_category_member_upserts_role(project, owner, add_member):
    bob = add_member("bob")
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": bob.id, "role": "viewer"})
    member = project_service.add_category_member(project.id, owner.id, "Design",
                                                 {"user_id": bob.id, "role": "lead"})
    assert member.role == "lead"
    assert len(project.get_category("Design").members) == 1


def test_change_and_remove_category_member(project, owner, add_member):
    lead = add_member("lena", "member")
    bob = add_member("bob", "member")
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": lead.id, "role": "lead"})
    project_service.add_category_member(project.id, owner.id, "Design", {"user_id": bob.id})

    changed = project_service.change_category_member_role(project.id, lead.id, "Design", bob.id, "viewer")
    assert changed.role == "viewer"
    with pytest.raises(ForbiddenError):
        project_service.change_category_member_role(project.id, lead.id, "Design", lead.id, "member")
    with pytest.raises(ForbiddenError):
        project_service.change_category_member_role(project.id, bob.id, "Design", lead.id, "viewer")

    project_service.remove_category_member(project.id, owner.id, "Design", bob.id)
    assert project.get_category("Design").member_role(bob.id) is None
    with pytest.raises(NotFoundError):
        project_service.remove_category_member(project.id, owner.id, "Design", bob.id)


def test_user_project_role(project, owner, add_member):
    bob = add_member("bob", "viewer")
    project_service.add_category_member(project.id, owner.id, "Backend", {"user_id": bob.id, "role": "lead"})
    role = project_service.get_user_project_role(project.id, bob.id)
    assert role["effective_role"] == "lead"
    assert role["workspace_role"] == "viewer"
    assert role["categories"] == [{"name": "Backend", "role": "lead"}]
