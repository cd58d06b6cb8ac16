"""
Formula Contract PM
Identity records consumed by the drawing workflow.

Models:
    - User: actor identity with a single platform role
    - ProjectAssignment: which users work on which project

Authentication (passwords, sessions, invites) lives outside this service;
these tables only carry what the workflow needs to authorise an actor and
to find the client users of a project.
"""

from datetime import datetime, timezone

from fcpm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = frozenset({
    "admin",
    "pm",
    "production",
    "procurement",
    "management",
    "client",
})


class User(db.Model):
    """Platform user.  ``role`` is trusted as-is by the approval service."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    role = db.Column(
        db.String(20), nullable=False, default="pm",
        comment="admin | pm | production | procurement | management | client",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.name} ({self.role})>"


class ProjectAssignment(db.Model):
    """N:M link between users and the projects they are assigned to."""

    __tablename__ = "project_assignments"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_assignment"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assigned_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", lazy="joined")

    def __repr__(self):
        return f"<ProjectAssignment project={self.project_id} user={self.user_id}>"
