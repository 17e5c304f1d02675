"""NotificationService: emit semantics, inbox queries and read state."""

import pytest

from workhub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.notification import Notification
from workhub.services.notification import NotificationService


@pytest.fixture()
def alice(make_user):
    return make_user("alice")


def _emit(recipient_id, title="Hello", **kwargs):
    notif = NotificationService.emit("task_updated", recipient_id, title, **kwargs)
    db.session.commit()
    return notif


def test_emit_stores_entity_reference(alice, owner):
    notif = _emit(alice.id, sender_id=owner.id, data={"task_id": 12})
    assert notif.entity_type == "task"
    assert notif.entity_id == 12
    assert notif.is_read is False
    assert notif.to_dict()["data"] == {"task_id": 12}


def test_emit_without_data(alice):
    notif = _emit(alice.id)
    assert notif.entity_type is None
    assert notif.to_dict()["data"] == {}


@pytest.mark.parametrize("data", [
    {"task_id": 1, "project_id": 2},
    {"comment_id": 3},
])
def test_emit_rejects_bad_payload(alice, data):
    with pytest.raises(ValidationError):
        NotificationService.emit("task_updated", alice.id, "x", data=data)


def test_emit_rejects_unknown_type(alice):
    with pytest.raises(ValidationError):
        NotificationService.emit("party_invite", alice.id, "x")


def test_emit_does_not_commit(alice):
    NotificationService.emit("task_updated", alice.id, "pending")
    db.session.rollback()
    assert Notification.query.filter_by(recipient_id=alice.id).count() == 0


def test_emit_many_collapses_duplicates(alice, owner):
    created = NotificationService.emit_many(
        "project_created", [alice.id, owner.id, alice.id, None], "Added",
        data={"project_id": 1},
    )
    db.session.commit()
    assert len(created) == 2
    assert Notification.query.count() == 2


def test_list_newest_first_with_unread_filter(alice):
    first = _emit(alice.id, title="first")
    second = _emit(alice.id, title="second")
    NotificationService.mark_read(first.id, alice.id)

    items, total = NotificationService.list_for_user(alice.id)
    assert total == 2
    assert [n.id for n in items] == [second.id, first.id]

    items, total = NotificationService.list_for_user(alice.id, unread_only=True)
    assert [n.id for n in items] == [second.id]
    assert NotificationService.unread_count(alice.id) == 1


def test_mark_read_only_by_recipient(alice, owner):
    notif = _emit(alice.id)
    with pytest.raises(ForbiddenError):
        NotificationService.mark_read(notif.id, owner.id)
    with pytest.raises(NotFoundError):
        NotificationService.mark_read(9999, alice.id)
    marked = NotificationService.mark_read(notif.id, alice.id)
    assert marked.is_read is True
    assert marked.read_at is not None


def test_mark_all_read_then_new_event_stays_unread(alice, owner):
    for i in range(3):
        _emit(alice.id, title=f"n{i}")
    other = _emit(owner.id, title="someone else's")

    assert NotificationService.mark_all_read(alice.id) == 3
    assert NotificationService.unread_count(alice.id) == 0

    fresh = _emit(alice.id, title="after")
    assert NotificationService.unread_count(alice.id) == 1
    assert db.session.get(Notification, fresh.id).is_read is False
    assert db.session.get(Notification, other.id).is_read is False
