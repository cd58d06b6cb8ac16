"""
Read side of the drawing audit trail.

Rows are written by ``fcpm.models.audit.write_audit`` inside each approval
transaction; this module only queries them.
"""

from sqlalchemy import select

from fcpm.core.exceptions import NotFoundError
from fcpm.models import db
from fcpm.models.audit import AuditLog
from fcpm.models.drawing import Drawing

MAX_ACTIVITY_LIMIT = 500


def get_activity(
    project_id: int | None = None,
    entity_type: str | None = None,
    entity_id=None,
    limit: int = 50,
) -> list[AuditLog]:
    """Audit rows matching the filters, newest first."""
    limit = max(1, min(int(limit), MAX_ACTIVITY_LIMIT))
    stmt = select(AuditLog)
    if project_id is not None:
        stmt = stmt.where(AuditLog.project_id == project_id)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == str(entity_id))
    stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)
    return list(db.session.execute(stmt).scalars())


def get_drawing_history(drawing_id: int) -> list[AuditLog]:
    """Every audit row of one drawing, oldest first."""
    if db.session.get(Drawing, drawing_id) is None:
        raise NotFoundError("Drawing", drawing_id)
    return list(
        db.session.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == "drawing", AuditLog.entity_id == str(drawing_id))
            .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        ).scalars()
    )
