"""
Formula Contract PM
Email Service.

Sends templated HTML email.  When SMTP is not configured the email is
logged instead of sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_ASYNC      Deliver SMTP mail on a background thread (default: true)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import html
import logging
import smtplib
import threading
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)

MAX_LISTED_ITEM_CODES = 10


_TEMPLATES: dict[str, dict[str, str]] = {
    "drawings_sent_to_client": {
        "subject": "[Formula Contract] {drawing_count} drawing(s) awaiting your approval: {project_name}",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #111827;">Drawings awaiting your approval</h2>
            <p style="color: #4b5563;">
                Hi {user_name}, {sender_name} has sent {drawing_count} drawing(s)
                for your review on project {project_name}.
            </p>
            <p style="color: #6b7280; font-size: 12px; text-transform: uppercase;">Project Code</p>
            <p><code>{project_code}</code></p>
            <p style="color: #6b7280; font-size: 12px; text-transform: uppercase;">Items</p>
            {item_list}
            <p><a href="{drawings_url}">Review drawings</a></p>
        </div>
        """,
    },
}


@dataclass
class EmailDelivery:
    """Outcome counts of one dispatch.  ``queued`` mail is still in flight."""

    sent: int = 0
    failed: int = 0
    queued: int = 0

    def merge(self, other: EmailDelivery) -> EmailDelivery:
        self.sent += other.sent
        self.failed += other.failed
        self.queued += other.queued
        return self


class EmailService:
    """Stateless email sender; log-only when ``MAIL_SERVER`` is unset."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
    ) -> bool:
        """
        Send an email.

        Returns True when the message was handed to SMTP (or logged in
        dev mode) and False when delivery failed.  Delivery failures are
        logged, never raised: email is a best-effort side channel.
        """
        if not cls.is_configured():
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return True

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return False
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
    ) -> bool:
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return False

        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
        )

    @classmethod
    def send_drawings_sent_to_client(
        cls,
        *,
        to_email: str,
        user_name: str,
        project_name: str,
        project_code: str,
        item_codes: list[str],
        sender_name: str,
        drawings_url: str,
    ) -> bool:
        """Batched "drawings awaiting your approval" email for one client user."""
        shown = item_codes[:MAX_LISTED_ITEM_CODES]
        item_list = "".join(f"<p><code>{html.escape(code)}</code></p>" for code in shown)
        if len(item_codes) > len(shown):
            item_list += f"<p>+ {len(item_codes) - len(shown)} more</p>"

        return cls.send_from_template(
            to_email=to_email,
            to_name=user_name,
            template_name="drawings_sent_to_client",
            context={
                "user_name": html.escape(user_name or ""),
                "sender_name": html.escape(sender_name or ""),
                "project_name": html.escape(project_name or ""),
                "project_code": html.escape(project_code or ""),
                "drawing_count": len(item_codes),
                "item_list": item_list,
                "drawings_url": drawings_url,
            },
        )

    @classmethod
    def dispatch_drawings_sent(cls, messages: list[dict]) -> EmailDelivery:
        """
        Deliver a batch of ``send_drawings_sent_to_client`` keyword sets.

        Log-only mode, or ``MAIL_ASYNC = False``, delivers inline and counts
        each outcome.  Otherwise the whole batch goes to one daemon thread
        with its own app context, so a slow relay never holds the request;
        those messages are reported as queued.
        """
        delivery = EmailDelivery()
        if not messages:
            return delivery

        if not cls.is_configured() or not current_app.config.get("MAIL_ASYNC", True):
            for message in messages:
                if cls.send_drawings_sent_to_client(**message):
                    delivery.sent += 1
                else:
                    delivery.failed += 1
            return delivery

        app = current_app._get_current_object()
        thread = threading.Thread(
            target=_deliver_in_background,
            args=(app, list(messages)),
            name="fcpm-mail",
            daemon=True,
        )
        thread.start()
        delivery.queued = len(messages)
        return delivery

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


def _deliver_in_background(app, messages: list[dict]) -> None:
    sent = failed = 0
    with app.app_context():
        for message in messages:
            try:
                ok = EmailService.send_drawings_sent_to_client(**message)
            except Exception:
                # Nothing above this thread can report it.
                logger.exception("Background email crashed: to=%s", message.get("to_email"))
                ok = False
            if ok:
                sent += 1
            else:
                failed += 1
        logger.info(
            "Background email batch finished",
            extra={"sent_count": sent, "failure_count": failed},
        )


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
