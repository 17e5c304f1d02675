"""
Workhub
Notification Service.

Records typed events for users and manages their read state.

``emit`` / ``emit_many`` add records to the caller's session without
committing, so an event is persisted together with the change that caused
it (e.g. invite acceptance and its ``member_joined`` records).
"""

import logging
from datetime import datetime, timezone

from workhub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from workhub.models import db
from workhub.models.notification import ENTITY_KEYS, NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)


def _entity_ref(data):
    """Reduce a payload dict to (entity_type, entity_id); at most one entity."""
    if not data:
        return None, None
    refs = [(key, data[key]) for key in ENTITY_KEYS if data.get(key) is not None]
    unknown = set(data) - set(ENTITY_KEYS)
    if unknown:
        raise ValidationError(
            f"Unsupported notification data keys: {sorted(unknown)}",
            details={"data": sorted(unknown)},
        )
    if len(refs) > 1:
        raise ValidationError(
            "Notification data may reference at most one entity",
            details={"data": [k for k, _ in refs]},
        )
    if not refs:
        return None, None
    key, value = refs[0]
    return ENTITY_KEYS[key], value


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def emit(type, recipient_id, title, message="", sender_id=None, data=None):
        """
        Add one notification record to the current session.

        Args:
            type: One of ``NOTIFICATION_TYPES``.
            recipient_id: User receiving the notification.
            data: Optional dict with at most one of workspace_id, project_id,
                  task_id, invite_id.

        Returns:
            The pending Notification instance (flushed, not committed).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {type}", details={"type": type})
        entity_type, entity_id = _entity_ref(data)
        notif = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        logger.debug("Notification %s queued type=%s recipient=%s", notif.id, type, recipient_id)
        return notif

    @staticmethod
    def emit_many(type, recipient_ids, title, message="", sender_id=None, data=None):
        """Fan one event out to several recipients; duplicates are collapsed."""
        seen = set()
        notifications = []
        for rid in recipient_ids:
            if rid is None or rid in seen:
                continue
            seen.add(rid)
            notifications.append(
                NotificationService.emit(type, rid, title, message, sender_id=sender_id, data=data)
            )
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Return (notifications, total) for a user, newest first."""
        q = Notification.query.filter_by(recipient_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(recipient_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read; only its recipient may do so."""
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        if notif.recipient_id != user_id:
            raise ForbiddenError("Only the recipient can mark a notification as read")
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark every unread notification of ``user_id`` as read in one statement."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(recipient_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        logger.info("Marked %d notifications read for user=%s", count, user_id)
        return count
