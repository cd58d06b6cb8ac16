"""
Formula Contract PM
Project domain model.

Models:
    - Project: a client contract (one fit-out job)
    - ScopeItem: a unit of work inside a project (a cabinet, a reception desk)

Only the fields the drawing workflow reads or writes are modelled here;
production progress, procurement and installation tracking live elsewhere.
"""

from datetime import datetime, timezone

from fcpm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

# Stages reached after drawing approval; the drawing workflow never writes them.
DOWNSTREAM_SCOPE_STATUSES = frozenset({"in_production", "complete"})


class Project(db.Model):
    """Client project that owns scope items."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    project_code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    scope_items = db.relationship(
        "ScopeItem", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_code": self.project_code,
            "name": self.name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.project_code}>"


class ScopeItem(db.Model):
    """
    A unit of project work that may need an approved drawing before production.

    ``status`` follows the paired Drawing through the scope projection while a
    drawing exists; see ``fcpm.services.scope_projection``.
    """

    __tablename__ = "scope_items"
    __table_args__ = (
        db.UniqueConstraint("project_id", "item_code", name="uq_scope_item_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    item_code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.String(30), nullable=False, default="pending",
        comment="pending | in_design | awaiting_approval | approved | in_production | complete | on_hold | cancelled",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "item_code": self.item_code,
            "name": self.name,
            "status": self.status,
        }

    def __repr__(self):
        return f"<ScopeItem {self.id}: {self.item_code} [{self.status}]>"
