"""
Notification domain model.

One record per recipient per event. Records are immutable apart from the
read flag.
"""

from datetime import datetime, timezone

from workhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "workspace_invite",
    "task_assigned",
    "task_updated",
    "task_deleted",
    "task_comment",
    "comment_reply",
    "project_created",
    "project_updated",
    "member_joined",
    "member_left",
}

# Payload key -> entity_type stored on the record.
ENTITY_KEYS = {
    "workspace_id": "workspace",
    "project_id": "project",
    "task_id": "task",
    "invite_id": "invite",
}


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sender_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    # Link to source entity
    entity_type = db.Column(db.String(30), nullable=True, comment="workspace/project/task/invite")
    entity_id = db.Column(db.Integer, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
    )

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        data = {}
        if self.entity_type:
            data[f"{self.entity_type}_id"] = self.entity_id
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "sender_id": self.sender_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": data,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} -> {self.recipient_id}>"
