"""
Tests: Drawing HTTP API: routes, actor header, error mapping.
"""

import pytest


def _headers(user):
    return {"X-User-Id": str(user.id)}


def _upload(client, user, scope_item_id, **extra):
    body = {"file_ref": "https://files/cab01-A.pdf", "file_name": "cab01-A.pdf", "file_size": 20480}
    body.update(extra)
    return client.post(f"/api/v1/scope-items/{scope_item_id}/drawing/upload", json=body, headers=_headers(user))


# ── Happy path ───────────────────────────────────────────────────────────────


def test_full_lifecycle_over_http(client, pm_user, client_user, scope_item):
    res = _upload(client, pm_user, scope_item.id)
    assert res.status_code == 201
    body = res.get_json()
    did = body["id"]
    assert body["status"] == "uploaded"
    assert body["current_revision"] == "A"
    assert body["revisions"][0]["file_name"] == "cab01-A.pdf"
    assert "send_to_client" in body["available_events"]

    res = client.post(f"/api/v1/drawings/{did}/send", json={"expected_status": "uploaded"},
                      headers=_headers(pm_user))
    assert res.status_code == 200
    assert res.get_json()["status"] == "sent_to_client"

    res = client.post(f"/api/v1/drawings/{did}/response",
                      json={"outcome": "approved", "comments": "looks good"},
                      headers=_headers(client_user))
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "approved"
    assert body["approved_by"] == client_user.id

    res = client.get(f"/api/v1/drawings/{did}/history")
    assert [row["action"] for row in res.get_json()] == [
        "drawing.uploaded", "drawing.sent_to_client", "drawing.approved",
    ]

    res = client.get(f"/api/v1/projects/{scope_item.project_id}/activity?limit=1")
    assert [row["action"] for row in res.get_json()] == ["drawing.approved"]


def test_scope_item_without_drawing_reports_not_uploaded(client, scope_item):
    res = client.get(f"/api/v1/scope-items/{scope_item.id}/drawing")
    assert res.status_code == 200
    body = res.get_json()
    assert body["id"] is None
    assert body["status"] == "not_uploaded"
    assert set(body["available_events"]) == {"upload_first_revision", "mark_not_required"}


def test_new_revision_and_revision_list(client, pm_user, scope_item):
    did = _upload(client, pm_user, scope_item.id).get_json()["id"]

    res = client.post(f"/api/v1/drawings/{did}/revisions",
                      json={"file_ref": "https://files/cab01-B.pdf", "notes": "deeper drawers"},
                      headers=_headers(pm_user))
    assert res.status_code == 201
    assert res.get_json()["current_revision"] == "B"

    res = client.get(f"/api/v1/drawings/{did}/revisions")
    assert [r["revision"] for r in res.get_json()] == ["A", "B"]


def test_bulk_send_endpoint(client, pm_user, make_scope_item):
    ids = [_upload(client, pm_user, make_scope_item(f"CAB-{i}").id).get_json()["id"] for i in range(3)]
    client.post(f"/api/v1/drawings/{ids[0]}/send", headers=_headers(pm_user))
    project_id = client.get(f"/api/v1/drawings/{ids[0]}").get_json()["project_id"]

    res = client.post(f"/api/v1/projects/{project_id}/drawings/send",
                      json={"drawing_ids": ids}, headers=_headers(pm_user))

    assert res.status_code == 200
    body = res.get_json()
    assert body["sent_count"] == 2
    assert body["sent_ids"] == ids[1:]
    assert body["failures"][0]["drawing_id"] == ids[0]
    assert body["failures"][0]["error_type"] == "InvalidTransitionError"
    assert body["emails_sent"] == 1


# ── Error mapping ────────────────────────────────────────────────────────────


def test_missing_actor_header_is_401(client, scope_item):
    res = client.post(f"/api/v1/scope-items/{scope_item.id}/drawing/upload",
                      json={"file_ref": "https://files/a.pdf"})
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_unknown_actor_is_401(client, scope_item):
    res = client.post(f"/api/v1/scope-items/{scope_item.id}/drawing/upload",
                      json={"file_ref": "https://files/a.pdf"}, headers={"X-User-Id": "777"})
    assert res.status_code == 401


def test_forbidden_role_is_403(client, production_user, scope_item):
    res = _upload(client, production_user, scope_item.id)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_inactive_user_is_403(client, make_user, scope_item):
    former = make_user("Former PM", "pm", is_active=False)
    assert _upload(client, former, scope_item.id).status_code == 403


def test_missing_reason_is_422(client, pm_user, scope_item):
    res = client.post(f"/api/v1/scope-items/{scope_item.id}/drawing/not-required",
                      json={"reason": ""}, headers=_headers(pm_user))
    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_REQUIRED"
    assert body["details"] == {"reason": "required"}


def test_invalid_transition_is_409(client, pm_user, scope_item):
    did = _upload(client, pm_user, scope_item.id).get_json()["id"]
    res = client.post(f"/api/v1/drawings/{did}/override", json={"reason": "skip"},
                      headers=_headers(pm_user))
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_STATE"
    assert res.get_json()["details"]["current_status"] == "uploaded"


def test_confirmation_required_is_428(client, pm_user, scope_item):
    did = _upload(client, pm_user, scope_item.id).get_json()["id"]
    client.post(f"/api/v1/drawings/{did}/send", headers=_headers(pm_user))
    client.post(f"/api/v1/drawings/{did}/override", json={"reason": "verified"}, headers=_headers(pm_user))

    res = client.post(f"/api/v1/drawings/{did}/replace", json={"file_ref": "https://files/late.pdf"},
                      headers=_headers(pm_user))
    assert res.status_code == 428
    assert res.get_json()["code"] == "ERR_CONFIRMATION_REQUIRED"

    res = client.post(f"/api/v1/drawings/{did}/replace",
                      json={"file_ref": "https://files/late.pdf", "confirmed": True},
                      headers=_headers(pm_user))
    assert res.status_code == 200
    assert res.get_json()["status"] == "uploaded"


def test_stale_expected_status_is_409(client, pm_user, scope_item):
    did = _upload(client, pm_user, scope_item.id).get_json()["id"]
    first = client.post(f"/api/v1/drawings/{did}/send", json={"expected_status": "uploaded"},
                        headers=_headers(pm_user))
    second = client.post(f"/api/v1/drawings/{did}/send", json={"expected_status": "uploaded"},
                         headers=_headers(pm_user))
    assert first.status_code == 200
    assert second.status_code == 409
    assert second.get_json()["code"] == "ERR_CONFLICT_CONCURRENT"


@pytest.mark.parametrize("path", [
    "/api/v1/drawings/999",
    "/api/v1/drawings/999/revisions",
    "/api/v1/drawings/999/history",
    "/api/v1/scope-items/999/drawing",
    "/api/v1/projects/999/activity",
])
def test_missing_resources_are_404(client, path):
    res = client.get(path)
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_bulk_send_requires_ids(client, pm_user, project):
    res = client.post(f"/api/v1/projects/{project.id}/drawings/send", json={}, headers=_headers(pm_user))
    assert res.status_code == 422


def test_bulk_send_rejects_non_integer_ids(client, pm_user, scope_item):
    did = _upload(client, pm_user, scope_item.id).get_json()["id"]

    res = client.post(f"/api/v1/projects/{scope_item.project_id}/drawings/send",
                      json={"drawing_ids": [did, [7]]}, headers=_headers(pm_user))

    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
    assert client.get(f"/api/v1/drawings/{did}").get_json()["status"] == "uploaded"


def test_bulk_send_missing_project_is_404(client, pm_user):
    res = client.post("/api/v1/projects/999/drawings/send", json={"drawing_ids": [1]},
                      headers=_headers(pm_user))
    assert res.status_code == 404


# ── Health ───────────────────────────────────────────────────────────────────


def test_health_ready(client):
    res = client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_health_live(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    body = res.get_json()
    assert body["checks"]["database"]["status"] == "ok"
    assert body["checks"]["mail"]["status"] == "log_only"


def test_request_id_and_duration_headers(client):
    res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "req-42"})
    assert res.headers["X-Request-ID"] == "req-42"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0
