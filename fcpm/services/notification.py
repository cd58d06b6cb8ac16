"""
Formula Contract PM
Notification Service.

Tells a project's client users that drawings are waiting for their review.
One in-app notification and at most one email per client user per batch,
however many drawings the batch contains.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import select

from fcpm.models import db
from fcpm.models.auth import ProjectAssignment, User
from fcpm.models.notification import Notification
from fcpm.models.project import Project
from fcpm.services.email_service import EmailDelivery, EmailService

logger = logging.getLogger(__name__)


@dataclass
class DrawingsSentNotice:
    """In-app rows created for one batch and what happened to its email."""

    notifications: list = field(default_factory=list)
    emails: EmailDelivery = field(default_factory=EmailDelivery)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Recipients ────────────────────────────────────────────────────────

    @staticmethod
    def client_users(project_id: int) -> list[User]:
        """Active users with the client role assigned to *project_id*."""
        return list(
            db.session.execute(
                select(User)
                .join(ProjectAssignment, ProjectAssignment.user_id == User.id)
                .where(
                    ProjectAssignment.project_id == project_id,
                    User.role == "client",
                    User.is_active.is_(True),
                )
                .order_by(User.id)
            ).scalars()
        )

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify_drawings_sent(project_id: int, drawings: list, sender: User | None = None) -> DrawingsSentNotice:
        """
        Notify every client user of *project_id* about a batch of sent drawings.

        Returns:
            The committed Notification rows and the email delivery counts.
            Email never blocks or fails the caller; see
            ``EmailService.dispatch_drawings_sent``.
        """
        notice = DrawingsSentNotice()
        if not drawings:
            return notice

        project = db.session.get(Project, project_id)
        if project is None:
            logger.warning("Notification skipped: project missing", extra={"project_id": project_id})
            return notice

        recipients = NotificationService.client_users(project_id)
        if not recipients:
            return notice

        item_codes = [d.scope_item.item_code for d in drawings if d.scope_item is not None]
        count = len(drawings)
        title = f"{count} drawing{'s' if count != 1 else ''} awaiting your approval"
        message = f"{project.name}: {', '.join(item_codes)}" if item_codes else project.name
        single_drawing_id = drawings[0].id if count == 1 else None

        notifications = notice.notifications
        for user in recipients:
            notif = Notification(
                user_id=user.id,
                project_id=project_id,
                drawing_id=single_drawing_id,
                type="drawing_sent",
                title=title,
                message=message,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()

        site_url = (current_app.config.get("SITE_URL") or "").rstrip("/")
        sender_name = sender.name if sender is not None else "Your project manager"
        messages = [
            {
                "to_email": user.email,
                "user_name": user.name,
                "project_name": project.name,
                "project_code": project.project_code,
                "item_codes": item_codes,
                "sender_name": sender_name,
                "drawings_url": f"{site_url}/projects/{project_id}?tab=drawings",
            }
            for user in recipients
            if user.email
        ]
        notice.emails = EmailService.dispatch_drawings_sent(messages)

        logger.info(
            "Drawing notifications created",
            extra={
                "project_id": project_id,
                "count": len(notifications),
                "sent_count": notice.emails.sent,
                "failure_count": notice.emails.failed,
            },
        )
        return notice


def notify_drawings_sent_hook(actor, drawings: list) -> EmailDelivery:
    """Post-commit hook for ``send_to_client``: one batch per project."""
    delivery = EmailDelivery()
    by_project = defaultdict(list)
    for drawing in drawings:
        by_project[drawing.project_id].append(drawing)

    sender = db.session.get(User, actor.id) if actor is not None and actor.id is not None else None
    for project_id, batch in by_project.items():
        notice = NotificationService.notify_drawings_sent(project_id, batch, sender=sender)
        delivery.merge(notice.emails)
    return delivery
