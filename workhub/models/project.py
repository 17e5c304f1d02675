"""
Project domain model.

Models:
    - Project: belongs to a workspace; progress is derived from status
    - ProjectCategory: ordered, uniquely named sub-area of a project
    - CategoryMember: per-category role (lead / member / viewer)

``total_tasks`` and ``completed_tasks`` are rollup counters maintained by
the task service and must always equal a recount of the live task set.
"""

from datetime import datetime, timezone

from workhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("Planning", "In Progress", "On Hold", "Completed", "Cancelled")

STATUS_PROGRESS = {
    "Planning": 10,
    "In Progress": 50,
    "On Hold": 30,
    "Completed": 100,
    "Cancelled": 0,
}

CATEGORY_STATUSES = ("Not Started", "In Progress", "Completed")
CATEGORY_ROLES = ("lead", "member", "viewer")


def progress_for_status(status):
    return STATUS_PROGRESS[status]


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="Planning")
    progress = db.Column(db.Integer, nullable=False, default=10)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    total_tasks = db.Column(db.Integer, nullable=False, default=0)
    completed_tasks = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    categories = db.relationship(
        "ProjectCategory",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectCategory.position",
    )

    def set_status(self, status):
        self.status = status
        self.progress = progress_for_status(status)

    def get_category(self, name):
        return next((c for c in self.categories if c.name == name), None)

    def to_dict(self, include_categories=True):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
            "progress": self.progress,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_by": self.created_by,
            "is_active": self.is_active,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_categories:
            d["categories"] = [c.to_dict() for c in self.categories]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.title}>"


class ProjectCategory(db.Model):
    __tablename__ = "project_categories"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="Not Started")
    completed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("project_id", "name", name="uq_project_category_name"),
    )

    project = db.relationship("Project", back_populates="categories")
    members = db.relationship(
        "CategoryMember",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def set_status(self, status):
        """Apply a status change, keeping ``completed_at`` in step."""
        if status == "Completed" and self.status != "Completed":
            self.completed_at = datetime.now(timezone.utc)
        elif status != "Completed":
            self.completed_at = None
        self.status = status

    def member_role(self, user_id):
        m = next((m for m in self.members if m.user_id == user_id), None)
        return m.role if m else None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "status": self.status,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "members": [m.to_dict() for m in self.members],
        }

    def __repr__(self):
        return f"<ProjectCategory {self.id}: {self.name}>"


class CategoryMember(db.Model):
    __tablename__ = "category_members"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("project_categories.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="member")

    __table_args__ = (
        db.UniqueConstraint("category_id", "user_id", name="uq_category_member"),
    )

    category = db.relationship("ProjectCategory", back_populates="members")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "role": self.role,
            "name": self.user.name if self.user else None,
            "email": self.user.email if self.user else None,
        }

    def __repr__(self):
        return f"<CategoryMember cat={self.category_id} user={self.user_id} role={self.role}>"
