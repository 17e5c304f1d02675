"""
Workspace domain model.

Models:
    - Workspace: tenant boundary with archive / scheduled-deletion state
    - WorkspaceMember: the single record of who belongs to a workspace and
      with which role. Exactly one row per workspace has role ``owner``.
"""

from datetime import datetime, timezone

from workhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

WORKSPACE_ROLES = ("owner", "admin", "lead", "member", "viewer")
ASSIGNABLE_WORKSPACE_ROLES = ("admin", "lead", "member", "viewer")


class Workspace(db.Model):
    __tablename__ = "workspaces"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    archived_at = db.Column(db.DateTime, nullable=True)
    archived_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    delete_scheduled_at = db.Column(db.DateTime, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship(
        "WorkspaceMember",
        back_populates="workspace",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkspaceMember.joined_at",
    )

    def owner_member(self):
        return next((m for m in self.members if m.role == "owner"), None)

    def to_dict(self, include_members=False):
        owner = self.owner_member()
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "created_by": self.created_by,
            "owner_id": owner.user_id if owner else None,
            "member_count": len(self.members),
            "is_archived": self.is_archived,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "archived_by": self.archived_by,
            "delete_scheduled_at": (
                self.delete_scheduled_at.isoformat() if self.delete_scheduled_at else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_members:
            d["members"] = [m.to_dict() for m in self.members]
        return d

    def __repr__(self):
        return f"<Workspace {self.id}: {self.name}>"


class WorkspaceMember(db.Model):
    __tablename__ = "workspace_members"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    role = db.Column(db.String(20), nullable=False, default="member")
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
        db.Index("ix_workspace_members_user", "user_id"),
    )

    workspace = db.relationship("Workspace", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    def to_dict(self):
        return {
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "user": {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
            } if self.user else None,
        }

    def __repr__(self):
        return f"<WorkspaceMember ws={self.workspace_id} user={self.user_id} role={self.role}>"
