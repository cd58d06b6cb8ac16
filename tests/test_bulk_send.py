"""
Tests: Bulk send coordinator: per-item isolation and batched notification.
"""

import smtplib

import pytest

from fcpm.core.exceptions import AuthorizationError, NotFoundError
from fcpm.models import db as _db
from fcpm.models.audit import AuditAction, AuditLog
from fcpm.models.drawing import Drawing
from fcpm.models.notification import Notification
from fcpm.models.project import Project
from fcpm.services import approval_service as svc
from fcpm.services.bulk_send import send_all_uploaded_to_client


def _make_project(code, name):
    project = Project(project_code=code, name=name)
    _db.session.add(project)
    _db.session.commit()
    return project


def _uploaded_drawings(pm, make_scope_item, count):
    return [
        svc.upload_first_revision(pm, make_scope_item(f"CAB-{i:02d}").id, f"https://files/cab{i}.pdf")
        for i in range(1, count + 1)
    ]


def test_five_drawings_two_moved_on(pm, client_actor, make_scope_item):
    drawings = _uploaded_drawings(pm, make_scope_item, 5)
    ids = [d.id for d in drawings]

    # Two drawings leave "uploaded" before the batch runs.
    svc.send_to_client(pm, ids[1])
    svc.record_client_response(client_actor, ids[1], "rejected", "wrong veneer")
    svc.send_to_client(pm, ids[3])

    result = send_all_uploaded_to_client(pm, drawings[0].project_id, ids)

    assert result.sent_count == 3
    assert result.sent_ids == [ids[0], ids[2], ids[4]]
    assert len(result.failures) == 2
    assert {f["drawing_id"] for f in result.failures} == {ids[1], ids[3]}
    assert all(f["error_type"] == "InvalidTransitionError" for f in result.failures)
    assert all(f["reason"] for f in result.failures)

    for did in (ids[0], ids[2], ids[4]):
        assert _db.session.get(Drawing, did).status == "sent_to_client"
    assert _db.session.get(Drawing, ids[1]).status == "rejected"


def test_one_batched_notification_per_client(pm, client_user, make_scope_item):
    drawings = _uploaded_drawings(pm, make_scope_item, 3)

    result = send_all_uploaded_to_client(pm, drawings[0].project_id, [d.id for d in drawings])

    assert result.sent_count == 3
    notes = Notification.query.filter_by(user_id=client_user.id).all()
    assert len(notes) == 1
    assert notes[0].type == "drawing_sent"
    assert notes[0].title == "3 drawings awaiting your approval"
    assert notes[0].drawing_id is None
    for code in ("CAB-01", "CAB-02", "CAB-03"):
        assert code in notes[0].message


def test_each_sent_drawing_is_audited(pm, make_scope_item):
    drawings = _uploaded_drawings(pm, make_scope_item, 2)
    send_all_uploaded_to_client(pm, drawings[0].project_id, [d.id for d in drawings])

    rows = AuditLog.query.filter_by(action=AuditAction.SENT_TO_CLIENT).all()
    assert sorted(int(r.entity_id) for r in rows) == sorted(d.id for d in drawings)


def test_drawing_from_other_project_is_not_found(pm, make_scope_item):
    mine = _uploaded_drawings(pm, make_scope_item, 1)[0]
    other_project = _make_project("FC-002", "Other job")
    theirs = svc.upload_first_revision(
        pm, make_scope_item("OTHER-01", project_id=other_project.id).id, "https://files/o.pdf",
    )

    result = send_all_uploaded_to_client(pm, mine.project_id, [mine.id, theirs.id, 424242])

    assert result.sent_ids == [mine.id]
    assert [f["drawing_id"] for f in result.failures] == [theirs.id, 424242]
    assert all(f["error_type"] == "NotFoundError" for f in result.failures)
    assert _db.session.get(Drawing, theirs.id).status == "uploaded"


def test_missing_project_raises(pm):
    with pytest.raises(NotFoundError):
        send_all_uploaded_to_client(pm, 9999, [1, 2])


def test_unauthorised_actor_raises(production_actor, project):
    with pytest.raises(AuthorizationError):
        send_all_uploaded_to_client(production_actor, project.id, [1])


def test_nothing_sent_means_no_notification(pm, client_actor, make_scope_item):
    drawing = _uploaded_drawings(pm, make_scope_item, 1)[0]
    svc.send_to_client(pm, drawing.id)
    before = Notification.query.count()

    result = send_all_uploaded_to_client(pm, drawing.project_id, [drawing.id])

    assert result.sent_count == 0
    assert Notification.query.count() == before


def test_duplicate_ids_are_sent_once(pm, make_scope_item):
    drawing = _uploaded_drawings(pm, make_scope_item, 1)[0]
    result = send_all_uploaded_to_client(pm, drawing.project_id, [drawing.id, drawing.id])
    assert result.sent_count == 1
    assert result.failures == []


def test_malformed_ids_fail_alone_and_batch_still_notifies(pm, client_user, make_scope_item):
    drawings = _uploaded_drawings(pm, make_scope_item, 2)
    ids = [drawings[0].id, [7], "x", True, drawings[1].id]

    result = send_all_uploaded_to_client(pm, drawings[0].project_id, ids)

    assert result.sent_ids == [drawings[0].id, drawings[1].id]
    assert [f["error_type"] for f in result.failures] == ["ValidationError"] * 3
    assert [f["drawing_id"] for f in result.failures] == ["[7]", "'x'", "True"]
    assert Notification.query.filter_by(user_id=client_user.id).count() == 1


# ── Email counts ─────────────────────────────────────────────────────────────


def test_email_counts_in_log_only_mode(pm, client_user, make_scope_item):
    drawings = _uploaded_drawings(pm, make_scope_item, 2)

    result = send_all_uploaded_to_client(pm, drawings[0].project_id, [d.id for d in drawings])

    body = result.to_dict()
    assert (body["emails_sent"], body["emails_failed"], body["emails_queued"]) == (1, 0, 0)


def test_email_failure_is_counted_not_raised(app, pm, client_user, make_scope_item, monkeypatch):
    drawings = _uploaded_drawings(pm, make_scope_item, 1)

    def _refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "busy")

    monkeypatch.setattr(smtplib, "SMTP", _refuse)
    monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.formula.test")

    result = send_all_uploaded_to_client(pm, drawings[0].project_id, [drawings[0].id])

    assert result.sent_count == 1
    assert result.emails.sent == 0
    assert result.emails.failed == 1
    assert _db.session.get(Drawing, drawings[0].id).status == "sent_to_client"
