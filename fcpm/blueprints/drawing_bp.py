"""
Drawing Approval Blueprint.

The acting user is identified by the ``X-User-Id`` header; authentication
happens upstream.

Routes:
  GET    /drawings/<did>                         – drawing + revisions + legal events
  GET    /scope-items/<sid>/drawing              – drawing of a scope item
  GET    /drawings/<did>/revisions               – revisions A, B, C…
  GET    /drawings/<did>/history                 – audit trail, oldest first
  POST   /scope-items/<sid>/drawing/upload       – first revision (creates drawing)
  POST   /scope-items/<sid>/drawing/not-required – exempt the scope item
  POST   /drawings/<did>/send                    – send to client
  POST   /drawings/<did>/response                – record client decision
  POST   /drawings/<did>/override                – PM override approval
  POST   /drawings/<did>/replace                 – replace files of current revision
  POST   /drawings/<did>/revisions               – upload next revision
  POST   /projects/<pid>/drawings/send           – bulk send
  GET    /projects/<pid>/activity                – project activity feed
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from fcpm.core.exceptions import (
    AuthorizationError,
    ConfirmationRequiredError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fcpm.models import db
from fcpm.models.drawing import Drawing
from fcpm.models.project import Project, ScopeItem
from fcpm.services import activity_log, approval_service
from fcpm.services.bulk_send import send_all_uploaded_to_client
from fcpm.services.drawing_state_machine import available_events
from fcpm.services.identity import resolve_actor
from fcpm.services.revision_store import list_revisions
from fcpm.utils.errors import E, api_error

logger = logging.getLogger(__name__)

drawing_bp = Blueprint("drawing", __name__, url_prefix="/api/v1")


# ── Error handlers ───────────────────────────────────────────────────────

@drawing_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error),
                     details={"resource": error.resource, "id": error.resource_id})


@drawing_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_REQUIRED, str(error), details=error.details)


@drawing_bp.errorhandler(InvalidTransitionError)
def _handle_invalid_transition(error: InvalidTransitionError):
    return api_error(E.CONFLICT_STATE, str(error),
                     details={"event": error.event, "current_status": error.current_status})


@drawing_bp.errorhandler(ConfirmationRequiredError)
def _handle_confirmation_required(error: ConfirmationRequiredError):
    return api_error(E.CONFIRMATION_REQUIRED, str(error),
                     details={"event": error.event, "current_status": error.current_status,
                              "confirm_with": {"confirmed": True}})


@drawing_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_CONCURRENT, str(error),
                     details={"resource": error.resource, "id": error.resource_id})


@drawing_bp.errorhandler(AuthorizationError)
def _handle_forbidden(error: AuthorizationError):
    return api_error(E.FORBIDDEN, str(error),
                     details={"role": error.role, "event": error.event})


@drawing_bp.errorhandler(SQLAlchemyError)
def _handle_database(error: SQLAlchemyError):
    db.session.rollback()
    logger.exception("Database error in drawing_bp endpoint=%s", request.endpoint)
    return api_error(E.DATABASE, "Database error")


# ── helpers ──────────────────────────────────────────────────────────────

def _current_actor():
    """Resolve the X-User-Id header.  Returns (actor, None) or (None, error_response)."""
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw:
        return None, api_error(E.UNAUTHENTICATED, "X-User-Id header is required")
    try:
        return resolve_actor(raw), None
    except NotFoundError:
        return None, api_error(E.UNAUTHENTICATED, f"Unknown user: {raw}")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _file_payload(data: dict) -> dict:
    return {
        "file_ref": data.get("file_ref"),
        "cad_file_ref": data.get("cad_file_ref"),
        "file_name": data.get("file_name"),
        "file_size": data.get("file_size"),
        "cad_file_name": data.get("cad_file_name"),
    }


def _drawing_response(drawing: Drawing, status: int = 200):
    result = drawing.to_dict(include_revisions=True)
    result["available_events"] = available_events(drawing.status)
    return jsonify(result), status


def _get_drawing(did: int) -> Drawing:
    drawing = db.session.get(Drawing, did)
    if drawing is None:
        raise NotFoundError("Drawing", did)
    return drawing


# ═════════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════════

@drawing_bp.route("/drawings/<int:did>", methods=["GET"])
def get_drawing(did):
    return _drawing_response(_get_drawing(did))


@drawing_bp.route("/scope-items/<int:sid>/drawing", methods=["GET"])
def get_scope_item_drawing(sid):
    """Drawing of a scope item; a scope item without one reports ``not_uploaded``."""
    item = db.session.get(ScopeItem, sid)
    if item is None:
        raise NotFoundError("ScopeItem", sid)
    drawing = db.session.execute(
        select(Drawing).where(Drawing.scope_item_id == sid)
    ).scalar_one_or_none()
    if drawing is None:
        return jsonify({
            "id": None,
            "scope_item_id": sid,
            "project_id": item.project_id,
            "item_code": item.item_code,
            "status": "not_uploaded",
            "current_revision": None,
            "revisions": [],
            "available_events": available_events(None),
        })
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/revisions", methods=["GET"])
def get_revisions(did):
    _get_drawing(did)
    return jsonify([r.to_dict() for r in list_revisions(did)])


@drawing_bp.route("/drawings/<int:did>/history", methods=["GET"])
def get_history(did):
    return jsonify([row.to_dict() for row in activity_log.get_drawing_history(did)])


@drawing_bp.route("/projects/<int:pid>/activity", methods=["GET"])
def get_project_activity(pid):
    if db.session.get(Project, pid) is None:
        raise NotFoundError("Project", pid)
    limit = request.args.get("limit", 50, type=int)
    rows = activity_log.get_activity(
        project_id=pid,
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        limit=limit,
    )
    return jsonify([row.to_dict() for row in rows])


# ═════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════

@drawing_bp.route("/scope-items/<int:sid>/drawing/upload", methods=["POST"])
def upload_first_revision(sid):
    """Body: { file_ref, cad_file_ref?, file_name?, file_size?, cad_file_name?, notes? }"""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, None, "upload_first_revision",
        {**_file_payload(data), "notes": data.get("notes")},
        scope_item_id=sid,
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing, 201)


@drawing_bp.route("/scope-items/<int:sid>/drawing/not-required", methods=["POST"])
def mark_not_required(sid):
    """Body: { reason }"""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, None, "mark_not_required",
        {"reason": data.get("reason")},
        scope_item_id=sid,
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/send", methods=["POST"])
def send_to_client(did):
    actor, err = _current_actor()
    if err:
        return err
    drawing = approval_service.send_to_client(
        actor, did, expected_status=_body().get("expected_status"),
    )
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/response", methods=["POST"])
def record_client_response(did):
    """Body: { outcome: approved|approved_with_comments|rejected, comments?, markup_ref? }"""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, did, "record_client_response",
        {
            "outcome": data.get("outcome"),
            "comments": data.get("comments"),
            "markup_ref": data.get("markup_ref"),
        },
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/override", methods=["POST"])
def pm_override(did):
    """Body: { reason }"""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, did, "pm_override",
        {"reason": data.get("reason")},
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/replace", methods=["POST"])
def replace_file(did):
    """Body: { file_ref?, cad_file_ref?, confirmed? }; at least one reference."""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, did, "replace_file",
        {**_file_payload(data), "confirmed": data.get("confirmed") is True},
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing)


@drawing_bp.route("/drawings/<int:did>/revisions", methods=["POST"])
def upload_new_revision(did):
    """Body: { file_ref, cad_file_ref?, notes?, confirmed? }"""
    actor, err = _current_actor()
    if err:
        return err
    data = _body()
    drawing = approval_service.apply_transition(
        actor, did, "upload_new_revision",
        {**_file_payload(data), "notes": data.get("notes"), "confirmed": data.get("confirmed") is True},
        expected_status=data.get("expected_status"),
    )
    return _drawing_response(drawing, 201)


@drawing_bp.route("/projects/<int:pid>/drawings/send", methods=["POST"])
def bulk_send(pid):
    """Body: { drawing_ids: [int, …] }"""
    actor, err = _current_actor()
    if err:
        return err
    drawing_ids = _body().get("drawing_ids")
    if not isinstance(drawing_ids, list) or not drawing_ids:
        return api_error(E.VALIDATION_REQUIRED, "drawing_ids must be a non-empty array",
                         details={"drawing_ids": "required"})
    if any(not isinstance(i, int) or isinstance(i, bool) for i in drawing_ids):
        return api_error(E.VALIDATION_INVALID, "drawing_ids must contain integer ids only",
                         details={"drawing_ids": "invalid"})
    result = send_all_uploaded_to_client(actor, pid, drawing_ids)
    return jsonify(result.to_dict()), 200
