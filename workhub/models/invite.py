"""
Workspace invitation model.

Status transitions are one-way out of ``pending``; the service layer owns
them (see ``workhub.services.invite_lifecycle``).
"""

from datetime import datetime, timezone

from workhub.models import db


INVITE_STATUSES = ("pending", "accepted", "declined", "expired")
INVITE_ROLES = ("admin", "lead", "member", "viewer")


class Invite(db.Model):
    __tablename__ = "invites"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="member")
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    invited_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    accepted_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    declined_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    workspace = db.relationship("Workspace")
    inviter = db.relationship("User", foreign_keys=[invited_by])

    def to_dict(self, include_token=False):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "invited_by": self.invited_by,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "accepted_by": self.accepted_by,
            "declined_at": self.declined_at.isoformat() if self.declined_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_token:
            d["token"] = self.token
        return d

    def __repr__(self):
        return f"<Invite {self.id}: {self.email} -> ws={self.workspace_id} [{self.status}]>"
