"""
Tests: client notifications and the email hand-off.

MAIL_SERVER is unset under TestingConfig, so EmailService runs in
log-only mode; SMTP delivery is exercised with a patched ``smtplib.SMTP``.
"""

import smtplib
import threading

from fcpm.models import db as _db
from fcpm.models.auth import ProjectAssignment
from fcpm.models.notification import Notification
from fcpm.services import approval_service as svc
from fcpm.services.email_service import EmailService
from fcpm.services.notification import NotificationService


def test_send_notifies_active_assigned_clients_only(pm, client_user, project, scope_item, make_user):
    inactive = make_user("Old Client", "client", email="old@hotel.test", is_active=False)
    unassigned = make_user("Other Client", "client", email="other@hotel.test")
    colleague = make_user("Second PM", "pm", email="pm2@formula.test")
    for user in (inactive, colleague):
        _db.session.add(ProjectAssignment(project_id=project.id, user_id=user.id))
    _db.session.commit()

    drawing = svc.upload_first_revision(pm, scope_item.id, "https://files/a.pdf")
    svc.send_to_client(pm, drawing.id)

    notes = Notification.query.all()
    assert [n.user_id for n in notes] == [client_user.id]
    assert notes[0].drawing_id == drawing.id
    assert notes[0].title == "1 drawing awaiting your approval"
    assert unassigned.id not in {n.user_id for n in notes}


def test_notify_skips_empty_batch(project):
    notice = NotificationService.notify_drawings_sent(project.id, [])
    assert notice.notifications == []
    assert notice.emails.sent == 0


def test_email_log_only_without_mail_server(app, caplog):
    with caplog.at_level("INFO", logger="fcpm.services.email_service"):
        ok = EmailService.send_drawings_sent_to_client(
            to_email="client@hotel.test",
            user_name="Cem",
            project_name="Hilton Ankara",
            project_code="FC-001",
            item_codes=[f"CAB-{i:02d}" for i in range(12)],
            sender_name="Pelin",
            drawings_url="http://localhost:3000/projects/1?tab=drawings",
        )
    assert ok is True
    assert "Email (dev mode)" in caplog.text


def test_email_via_smtp(app, monkeypatch):
    sent = []

    class _FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, user, password):
            pass

        def send_message(self, msg):
            sent.append(msg)

    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.formula.test")

    ok = EmailService.send_drawings_sent_to_client(
        to_email="client@hotel.test",
        user_name="Cem",
        project_name="Hilton Ankara",
        project_code="FC-001",
        item_codes=["CAB-01", "CAB-02"],
        sender_name="Pelin",
        drawings_url="http://localhost:3000/projects/1?tab=drawings",
    )

    assert ok is True
    assert len(sent) == 1
    assert "2 drawing(s) awaiting your approval" in sent[0]["Subject"]
    assert sent[0]["To"] == "Cem <client@hotel.test>"


def test_smtp_failure_is_reported_not_raised(app, monkeypatch):
    def _refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "busy")

    monkeypatch.setattr(smtplib, "SMTP", _refuse)
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.formula.test")

    assert EmailService.send(to_email="x@y.test", subject="s", html_body="<p>b</p>") is False


def test_smtp_delivery_runs_off_the_request_path(app, pm, client_user, scope_item, monkeypatch):
    entered = threading.Event()
    release = threading.Event()
    delivered = threading.Event()

    def _slow_relay(*, to_email, to_name, subject, html_body):
        entered.set()
        release.wait(timeout=5)
        delivered.set()

    monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(_slow_relay))
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.formula.test")
    monkeypatch.setitem(app.config, "MAIL_ASYNC", True)

    drawing = svc.upload_first_revision(pm, scope_item.id, "https://files/a.pdf")
    try:
        drawing = svc.send_to_client(pm, drawing.id)

        # The transition has returned while the relay is still holding the mail.
        assert drawing.status == "sent_to_client"
        assert Notification.query.filter_by(user_id=client_user.id).count() == 1
        assert entered.wait(timeout=5)
        assert not delivered.is_set()
    finally:
        release.set()
    assert delivered.wait(timeout=5)


def test_async_dispatch_reports_mail_as_queued(app, project, client_user, scope_item, pm, monkeypatch):
    release = threading.Event()
    monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(lambda **kw: release.wait(timeout=5)))
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.formula.test")
    monkeypatch.setitem(app.config, "MAIL_ASYNC", True)

    drawing = svc.upload_first_revision(pm, scope_item.id, "https://files/a.pdf")
    try:
        notice = NotificationService.notify_drawings_sent(project.id, [drawing])
    finally:
        release.set()

    assert len(notice.notifications) == 1
    assert (notice.emails.sent, notice.emails.failed, notice.emails.queued) == (0, 0, 1)
