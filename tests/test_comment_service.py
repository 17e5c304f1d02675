"""Task comment threads."""

import pytest

from workhub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from workhub.models.notification import Notification
from workhub.services import comment_service, project_service, task_service


@pytest.fixture()
def task_ctx(workspace, owner, add_member):
    mike = add_member("mike", "member")
    vera = add_member("vera", "member")
    project = project_service.create_project(workspace.id, owner.id, {
        "title": "Website",
        "categories": [{"name": "Design", "members": [
            {"user_id": mike.id, "role": "member"},
            {"user_id": vera.id, "role": "member"},
        ]}],
    })
    task = task_service.create_task(project.id, owner.id, {
        "title": "Wireframes", "category": "Design", "assignee_id": mike.id,
        "start_date": "2026-02-01", "due_date": "2026-02-03",
    })
    return {"task": task, "owner": owner, "mike": mike, "vera": vera}


def test_assignee_posts_first_comment(task_ctx):
    task, owner, mike = task_ctx["task"], task_ctx["owner"], task_ctx["mike"]
    with pytest.raises(ForbiddenError):
        comment_service.create_comment(task.id, owner.id, "Any news?")

    comment = comment_service.create_comment(task.id, mike.id, "Started", attachments=[
        {"file_name": "sketch.png", "file_url": "https://files.example.com/s.png", "mime_type": "image/png"},
    ])
    assert comment.attachments[0].file_type == "image"
    assert Notification.query.filter_by(recipient_id=owner.id, type="task_comment").count() == 1

    # Once the thread exists the creator may comment
    comment_service.create_comment(task.id, owner.id, "Thanks")


def test_reply_notifies_parent_author(task_ctx):
    task, owner, mike = task_ctx["task"], task_ctx["owner"], task_ctx["mike"]
    parent = comment_service.create_comment(task.id, mike.id, "Question on layout")
    reply = comment_service.create_comment(task.id, owner.id, "Go with grid", parent_id=parent.id)
    assert reply.parent_id == parent.id
    assert Notification.query.filter_by(recipient_id=mike.id, type="comment_reply").count() == 1

    threads = comment_service.list_task_comments(task.id, owner.id)
    assert len(threads) == 1
    assert threads[0]["reply_count"] == 1


def test_unrelated_member_cannot_comment(task_ctx):
    task, mike, vera = task_ctx["task"], task_ctx["mike"], task_ctx["vera"]
    parent = comment_service.create_comment(task.id, mike.id, "Started")
    with pytest.raises(ForbiddenError):
        comment_service.create_comment(task.id, vera.id, "Me too")
    with pytest.raises(ForbiddenError):
        comment_service.create_comment(task.id, vera.id, "Reply", parent_id=parent.id)


def test_content_and_attachment_limits(task_ctx):
    task, mike = task_ctx["task"], task_ctx["mike"]
    with pytest.raises(ValidationError):
        comment_service.create_comment(task.id, mike.id, "   ")
    with pytest.raises(ValidationError):
        comment_service.create_comment(task.id, mike.id, "x" * 2001)
    too_many = [{"file_name": f"f{i}", "file_url": f"https://files.example.com/{i}"} for i in range(4)]
    with pytest.raises(ValidationError):
        comment_service.create_comment(task.id, mike.id, "files", attachments=too_many)


def test_edit_and_delete(task_ctx):
    task, owner, mike = task_ctx["task"], task_ctx["owner"], task_ctx["mike"]
    comment = comment_service.create_comment(task.id, mike.id, "Draft")
    with pytest.raises(ForbiddenError):
        comment_service.update_comment(comment.id, owner.id, "Edited by owner")
    edited = comment_service.update_comment(comment.id, mike.id, "Final")
    assert edited.is_edited is True
    assert edited.content == "Final"

    comment_service.delete_comment(comment.id, owner.id)
    assert comment_service.list_task_comments(task.id, owner.id) == []
    with pytest.raises(NotFoundError):
        comment_service.update_comment(comment.id, mike.id, "Again")
