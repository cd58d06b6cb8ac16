"""
Formula Contract PM
Audit domain model.

Models:
    - AuditLog: immutable, append-only activity trail for drawing lifecycle events.

The table is the activity-log sink of the drawing workflow: one row per
committed transition, keyed by (entity_type, entity_id, project_id).
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event

from fcpm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

class AuditAction:
    """Drawing lifecycle actions written to ``audit_logs.action``."""

    UPLOADED = "drawing.uploaded"
    SENT_TO_CLIENT = "drawing.sent_to_client"
    APPROVED = "drawing.approved"
    REJECTED = "drawing.rejected"
    PM_OVERRIDE = "drawing.pm_override"
    MARKED_NOT_REQUIRED = "drawing.marked_not_required"


AUDIT_ACTIONS = frozenset({
    AuditAction.UPLOADED,
    AuditAction.SENT_TO_CLIENT,
    AuditAction.APPROVED,
    AuditAction.REJECTED,
    AuditAction.PM_OVERRIDE,
    AuditAction.MARKED_NOT_REQUIRED,
})

AUDIT_ENTITY_TYPES = frozenset({"drawing"})


class AuditLogImmutableError(RuntimeError):
    """Raised when code tries to update or delete an audit row."""


class AuditLog(db.Model):
    """
    Immutable audit trail for every drawing transition.

    One row per action.  ``details_json`` carries the item code, revision
    letter and the reason or comments supplied with the transition.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False, comment="drawing")
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="drawing.uploaded | drawing.sent_to_client | drawing.approved | …",
    )
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Acting user (null for system entries)",
    )

    details_json = db.Column(db.Text, default="{}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def details(self) -> dict:
        """Deserialise *details_json* to a Python dict."""
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor_id: int | None = None,
    project_id: int | None = None,
    details: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")

    log = AuditLog(
        project_id=project_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        details_json=json.dumps(details or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
