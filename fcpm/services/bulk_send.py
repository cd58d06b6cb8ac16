"""
Bulk Send Coordinator

Sends many uploaded drawings of one project to the client.  Each drawing is
an independent approval-service transaction: one drawing failing never
undoes or blocks the others.  Client users get a single batched
notification for everything that was sent.

Usage:
    from fcpm.services.bulk_send import send_all_uploaded_to_client

    result = send_all_uploaded_to_client(actor, project_id, [11, 12, 13])
    result.sent_count, result.failures
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from fcpm.core.exceptions import DrawingWorkflowError, NotFoundError, ValidationError
from fcpm.models import db
from fcpm.models.drawing import Drawing
from fcpm.models.project import Project
from fcpm.services import approval_service
from fcpm.services.approval_service import Actor, authorize
from fcpm.services.drawing_state_machine import DrawingEvent
from fcpm.services.email_service import EmailDelivery

logger = logging.getLogger(__name__)


@dataclass
class BulkSendResult:
    sent_count: int = 0
    failures: list[dict] = field(default_factory=list)
    sent_ids: list[int] = field(default_factory=list)
    emails: EmailDelivery = field(default_factory=EmailDelivery)

    def to_dict(self) -> dict:
        return {
            "sent_count": self.sent_count,
            "sent_ids": list(self.sent_ids),
            "failures": list(self.failures),
            "emails_sent": self.emails.sent,
            "emails_failed": self.emails.failed,
            "emails_queued": self.emails.queued,
        }


def _failure(drawing_id, exc: Exception) -> dict:
    if not _is_drawing_id(drawing_id):
        drawing_id = repr(drawing_id)
    return {"drawing_id": drawing_id, "reason": str(exc), "error_type": type(exc).__name__}


def _is_drawing_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def send_all_uploaded_to_client(actor: Actor, project_id: int, drawing_ids) -> BulkSendResult:
    """
    Send each of *drawing_ids* to the client, collecting per-drawing failures.

    Raises:
        NotFoundError: *project_id* does not exist (nothing is attempted).
        AuthorizationError: the actor may not send drawings at all.
    """
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)
    authorize(actor, DrawingEvent.SEND_TO_CLIENT)

    result = BulkSendResult()
    sent: list[Drawing] = []
    seen = set()

    for drawing_id in drawing_ids or []:
        try:
            if not _is_drawing_id(drawing_id):
                raise ValidationError(
                    f"Invalid drawing id: {drawing_id!r}", details={"drawing_ids": "invalid"},
                )
            if drawing_id in seen:
                continue
            seen.add(drawing_id)

            drawing = db.session.get(Drawing, drawing_id)
            if drawing is None or drawing.project_id != project_id:
                raise NotFoundError("Drawing", drawing_id)

            drawing = approval_service.send_to_client(actor, drawing_id, notify=False)
        except DrawingWorkflowError as exc:
            result.failures.append(_failure(drawing_id, exc))
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            result.failures.append(_failure(drawing_id, exc))
            continue

        sent.append(drawing)
        result.sent_ids.append(drawing.id)

    result.sent_count = len(sent)

    logger.info(
        "Bulk send finished",
        extra={
            "project_id": project_id,
            "sent_count": result.sent_count,
            "failure_count": len(result.failures),
            "actor_id": actor.id,
        },
    )

    for outcome in approval_service.run_post_commit_hooks(DrawingEvent.SEND_TO_CLIENT, actor, sent):
        if isinstance(outcome, EmailDelivery):
            result.emails.merge(outcome)
    return result
