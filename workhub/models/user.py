"""
Identity model.

Users carry a platform-wide ``global_role``; their per-workspace roles live
only in ``workspace_members``. ``User.workspaces`` is a read-only view over
that table.
"""

from datetime import datetime, timezone

from workhub.models import db


GLOBAL_ROLES = ("user", "admin", "super_admin")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    global_role = db.Column(db.String(20), nullable=False, default="user")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    memberships = db.relationship(
        "WorkspaceMember",
        back_populates="user",
        lazy="select",
    )

    @property
    def workspaces(self):
        """Derived list of (workspace_id, role, joined_at) entries."""
        return [
            {"workspace_id": m.workspace_id, "role": m.role, "joined_at": m.joined_at}
            for m in self.memberships
        ]

    def to_dict(self, include_workspaces=False):
        d = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "global_role": self.global_role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_workspaces:
            d["workspaces"] = [
                {
                    "workspace_id": w["workspace_id"],
                    "role": w["role"],
                    "joined_at": w["joined_at"].isoformat() if w["joined_at"] else None,
                }
                for w in self.workspaces
            ]
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
