"""
Task domain model.

A task lives in exactly one category of its project (referenced by name).
``completed_at`` is set exactly while ``status == "done"``. Soft-deleted
tasks (``is_active = False``) drop out of the live set and the rollups.
"""

import math
from datetime import datetime, timezone

from workhub.models import db


TASK_STATUSES = ("to-do", "in-progress", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


def inclusive_duration_days(start_date, due_date):
    """Inclusive day count between two dates, at least 1."""
    days = (due_date - start_date).total_seconds() / 86400
    return max(1, math.ceil(days) + 1)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    category = db.Column(db.String(100), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="to-do")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    start_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    duration_days = db.Column(db.Integer, nullable=False, default=1)
    completed_at = db.Column(db.DateTime, nullable=True)
    handover_notes = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_tasks_project_category", "project_id", "category"),
    )

    project = db.relationship("Project")
    assignee = db.relationship("User", foreign_keys=[assignee_id])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "category": self.category,
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "assignee": {
                "id": self.assignee.id,
                "name": self.assignee.name,
                "email": self.assignee.email,
            } if self.assignee else None,
            "created_by": self.created_by,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "duration_days": self.duration_days,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "handover_notes": self.handover_notes or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"
