"""
Drawing Approval Service

The only writer of ``Drawing.status``.  Every event runs the same pipeline
inside one database transaction:

    1. load the drawing (by id, or by scope item for events that may create it)
    2. authorise the actor's role for the event
    3. validate the payload
    4. resolve the transition through the state machine
    5. mutate drawing + revision + scope item (projection)
    6. append exactly one audit row
    7. commit, then run post-commit hooks (notifications)

Any failure before the commit rolls the whole unit back: no partial drawing,
scope item, revision or audit state survives.  Post-commit hook failures are
logged and never undo the committed transition.

Optimistic concurrency:
    ``expected_status`` is what the caller last saw; a mismatch with the
    loaded status raises ``ConflictError``.  The flush itself is guarded by
    the drawing's ``version_id`` counter, so a writer that committed between
    our read and our write also surfaces as ``ConflictError``.

Usage:
    from fcpm.services import approval_service as svc

    drawing = svc.send_to_client(actor, drawing_id, expected_status="uploaded")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from fcpm.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DrawingWorkflowError,
    NotFoundError,
    ValidationError,
)
from fcpm.models import db
from fcpm.models.audit import AuditAction, write_audit
from fcpm.models.drawing import Drawing, DrawingStatus
from fcpm.models.project import ScopeItem
from fcpm.services import revision_store
from fcpm.services.drawing_state_machine import (
    DrawingEvent,
    as_event,
    as_status,
    is_approved_like,
    resolve_outcome,
    resolve_transition,
)
from fcpm.services.scope_projection import project_scope_status

logger = logging.getLogger(__name__)


# ── Actor & authorisation ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Actor:
    """Authenticated caller: user id and platform role."""

    id: int | None
    role: str


PM_ROLES = frozenset({"admin", "pm"})
CLIENT_RESPONSE_ROLES = frozenset({"admin", "pm", "client"})

EVENT_ROLES: dict[DrawingEvent, frozenset] = {
    DrawingEvent.UPLOAD_FIRST_REVISION: PM_ROLES,
    DrawingEvent.SEND_TO_CLIENT: PM_ROLES,
    DrawingEvent.RECORD_CLIENT_RESPONSE: CLIENT_RESPONSE_ROLES,
    DrawingEvent.PM_OVERRIDE: PM_ROLES,
    DrawingEvent.REPLACE_FILE: PM_ROLES,
    DrawingEvent.UPLOAD_NEW_REVISION: PM_ROLES,
    DrawingEvent.MARK_NOT_REQUIRED: PM_ROLES,
}

# Events that may run against a scope item that has no drawing row yet.
_CREATING_EVENTS = frozenset({DrawingEvent.UPLOAD_FIRST_REVISION, DrawingEvent.MARK_NOT_REQUIRED})


def authorize(actor: Actor, event: DrawingEvent) -> None:
    if actor is None or actor.role not in EVENT_ROLES[event]:
        raise AuthorizationError(
            getattr(actor, "id", None), getattr(actor, "role", None), event.value,
        )


# ── Post-commit hooks ────────────────────────────────────────────────────────

PostCommitHook = Callable[[Actor, list], object]

_post_commit_hooks: dict[DrawingEvent, list[PostCommitHook]] = {}


def register_post_commit_hook(event: str | DrawingEvent, hook: PostCommitHook) -> None:
    """Run *hook(actor, drawings)* after every committed *event*."""
    hooks = _post_commit_hooks.setdefault(as_event(event), [])
    if hook not in hooks:
        hooks.append(hook)


def run_post_commit_hooks(event: str | DrawingEvent, actor: Actor, drawings: list[Drawing]) -> list:
    """
    Invoke the hooks for *event* and return their non-None results.
    Failures are logged, never raised.
    """
    results: list = []
    if not drawings:
        return results
    for hook in _post_commit_hooks.get(as_event(event), []):
        try:
            outcome = hook(actor, drawings)
        except Exception:
            db.session.rollback()
            logger.exception(
                "Post-commit hook failed",
                extra={"event": as_event(event).value, "hook": getattr(hook, "__name__", repr(hook))},
            )
            continue
        if outcome is not None:
            results.append(outcome)
    return results


# ── Payload validation ───────────────────────────────────────────────────────

def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _validate_payload(event: DrawingEvent, payload: dict) -> dict:
    """Return a normalised copy of *payload* or raise ``ValidationError``."""
    data = dict(payload)
    for key in ("file_ref", "cad_file_ref", "reason", "comments", "markup_ref", "notes"):
        data[key] = _clean(data.get(key))
    data["confirmed"] = bool(data.get("confirmed", False))

    if event in (DrawingEvent.UPLOAD_FIRST_REVISION, DrawingEvent.UPLOAD_NEW_REVISION):
        if not data["file_ref"]:
            raise ValidationError("file_ref is required", details={"file_ref": "required"})

    elif event is DrawingEvent.REPLACE_FILE:
        if not data["file_ref"] and not data["cad_file_ref"]:
            raise ValidationError(
                "At least one of file_ref or cad_file_ref is required",
                details={"file_ref": "required", "cad_file_ref": "required"},
            )

    elif event in (DrawingEvent.PM_OVERRIDE, DrawingEvent.MARK_NOT_REQUIRED):
        if not data["reason"]:
            raise ValidationError("reason is required", details={"reason": "required"})

    elif event is DrawingEvent.RECORD_CLIENT_RESPONSE:
        data["outcome"] = resolve_outcome(data.get("outcome"))
        if data["outcome"] is DrawingStatus.APPROVED_WITH_COMMENTS and not data["comments"]:
            raise ValidationError(
                "comments are required for approved_with_comments",
                details={"comments": "required"},
            )

    return data


def _expected(value) -> DrawingStatus:
    try:
        return as_status(value)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown drawing status: {value}", details={"expected_status": "invalid"},
        ) from exc


# ── Loading ──────────────────────────────────────────────────────────────────

def _drawing_for_scope_item(scope_item_id: int) -> Drawing | None:
    return db.session.execute(
        select(Drawing).where(Drawing.scope_item_id == scope_item_id)
    ).scalar_one_or_none()


def _load(event: DrawingEvent, drawing_id, scope_item_id) -> tuple[Drawing | None, ScopeItem]:
    """Locate the drawing and its scope item for *event*."""
    if drawing_id is not None:
        drawing = db.session.get(Drawing, drawing_id)
        if drawing is None:
            raise NotFoundError("Drawing", drawing_id)
        if scope_item_id is not None and drawing.scope_item_id != scope_item_id:
            raise NotFoundError("Drawing", drawing_id)
        return drawing, drawing.scope_item

    if scope_item_id is None:
        raise ValidationError(
            "drawing_id or scope_item_id is required",
            details={"drawing_id": "required"},
        )

    scope_item = db.session.get(ScopeItem, scope_item_id)
    if scope_item is None:
        raise NotFoundError("ScopeItem", scope_item_id)

    drawing = _drawing_for_scope_item(scope_item_id)
    if drawing is None and event not in _CREATING_EVENTS:
        raise NotFoundError("Drawing", f"scope_item={scope_item_id}")
    return drawing, scope_item


# ── Mutation ─────────────────────────────────────────────────────────────────

def _clear_approval(drawing: Drawing) -> None:
    drawing.approved_by = None
    drawing.client_response_at = None
    drawing.client_comments = None
    drawing.pm_override = False
    drawing.pm_override_reason = None
    drawing.pm_override_at = None
    drawing.pm_override_by = None


def _apply_side_effects(
    event: DrawingEvent,
    drawing: Drawing,
    previous: DrawingStatus,
    target: DrawingStatus,
    data: dict,
    actor: Actor,
    now: datetime,
) -> tuple[str, dict]:
    """Mutate *drawing* for *event*; return the audit action and details."""
    details: dict = {}

    if is_approved_like(previous) and not is_approved_like(target):
        _clear_approval(drawing)

    if event in (DrawingEvent.UPLOAD_FIRST_REVISION, DrawingEvent.UPLOAD_NEW_REVISION):
        revision = revision_store.create_revision(
            drawing.id,
            data["file_ref"],
            data["cad_file_ref"],
            file_name=data.get("file_name"),
            file_size=data.get("file_size"),
            cad_file_name=data.get("cad_file_name"),
            notes=data["notes"],
            uploaded_by=actor.id,
        )
        drawing.current_revision = revision.revision
        action = AuditAction.UPLOADED

    elif event is DrawingEvent.REPLACE_FILE:
        revision_store.replace_current_revision_files(
            drawing.id,
            drawing.current_revision,
            data["file_ref"],
            data["cad_file_ref"],
            file_name=data.get("file_name"),
            file_size=data.get("file_size"),
            cad_file_name=data.get("cad_file_name"),
        )
        details["replaced"] = True
        action = AuditAction.UPLOADED

    elif event is DrawingEvent.SEND_TO_CLIENT:
        drawing.sent_to_client_at = now
        action = AuditAction.SENT_TO_CLIENT

    elif event is DrawingEvent.RECORD_CLIENT_RESPONSE:
        drawing.client_response_at = now
        drawing.client_comments = data["comments"]
        drawing.approved_by = actor.id if is_approved_like(target) else None
        if data["markup_ref"]:
            revision_store.attach_client_markup(drawing.id, drawing.current_revision, data["markup_ref"])
        details.update({
            "status": target.value,
            "comments": data["comments"],
            "has_markup": bool(data["markup_ref"]),
        })
        action = AuditAction.APPROVED if is_approved_like(target) else AuditAction.REJECTED

    elif event is DrawingEvent.PM_OVERRIDE:
        drawing.pm_override = True
        drawing.pm_override_reason = data["reason"]
        drawing.pm_override_at = now
        drawing.pm_override_by = actor.id
        drawing.approved_by = actor.id
        details["reason"] = data["reason"]
        action = AuditAction.PM_OVERRIDE

    else:  # MARK_NOT_REQUIRED
        drawing.not_required_reason = data["reason"]
        drawing.not_required_at = now
        drawing.not_required_by = actor.id
        details["reason"] = data["reason"]
        action = AuditAction.MARKED_NOT_REQUIRED

    # Always dirty the row: a same-status transition (replace from uploaded)
    # must still emit an UPDATE so the version_id check runs.
    drawing.status = target.value
    drawing.updated_at = now
    return action, details


# ── Pipeline ─────────────────────────────────────────────────────────────────

def apply_transition(
    actor: Actor,
    drawing_id: int | None,
    event: str | DrawingEvent,
    payload: dict | None = None,
    *,
    scope_item_id: int | None = None,
    expected_status: str | None = None,
    notify: bool = True,
) -> Drawing:
    """
    Apply *event* to a drawing as one atomic unit of work.

    Args:
        actor: Calling user.
        drawing_id: Target drawing; may be ``None`` for ``upload_first_revision``
            and ``mark_not_required`` when *scope_item_id* is given.
        event: A ``DrawingEvent`` or its string value.
        payload: Event data (``file_ref``, ``cad_file_ref``, ``outcome``,
            ``comments``, ``markup_ref``, ``reason``, ``confirmed``, …).
        scope_item_id: Scope item that owns (or will own) the drawing.
        expected_status: Status the caller last saw; checked before writing.
        notify: Run post-commit hooks.  Bulk callers pass ``False`` and
            notify once for the whole batch.

    Returns:
        The committed Drawing.

    Raises:
        NotFoundError, AuthorizationError, ValidationError,
        InvalidTransitionError, ConfirmationRequiredError, ConflictError
    """
    event = as_event(event)
    now = datetime.now(timezone.utc)

    try:
        drawing, scope_item = _load(event, drawing_id, scope_item_id)
        authorize(actor, event)
        data = _validate_payload(event, payload or {})

        previous = as_status(drawing.status if drawing is not None else None)
        if expected_status is not None:
            expected = _expected(expected_status)
            if expected is not previous:
                raise ConflictError(
                    "Drawing", drawing.id if drawing is not None else None,
                    message=(
                        f"Drawing status is '{previous.value}', expected '{expected.value}'; "
                        "reload and retry"
                    ),
                )

        target = resolve_transition(
            event, previous, outcome=data.get("outcome"), confirmed=data["confirmed"],
        )

        if drawing is None:
            drawing = Drawing(scope_item_id=scope_item.id, status=DrawingStatus.NOT_UPLOADED.value)
            db.session.add(drawing)
            db.session.flush()

        action, details = _apply_side_effects(event, drawing, previous, target, data, actor, now)

        new_scope_status = project_scope_status(event, previous, target, scope_item.status)
        if new_scope_status is not None and new_scope_status != scope_item.status:
            scope_item.status = new_scope_status

        db.session.flush()

        write_audit(
            entity_type="drawing",
            entity_id=drawing.id,
            action=action,
            actor_id=actor.id,
            project_id=scope_item.project_id,
            details={
                "item_code": scope_item.item_code,
                "revision": drawing.current_revision,
                "previous_status": previous.value,
                "new_status": target.value,
                **details,
            },
        )
        db.session.commit()

    except DrawingWorkflowError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning(
            "Drawing modified concurrently",
            extra={"drawing_id": drawing_id, "event": event.value},
        )
        raise ConflictError("Drawing", drawing_id) from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning(
            "Integrity violation during drawing transition",
            extra={"drawing_id": drawing_id, "event": event.value},
        )
        raise ConflictError("Drawing", drawing_id) from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Drawing transition failed",
            extra={"drawing_id": drawing_id, "event": event.value},
        )
        raise

    logger.info(
        "Drawing transition applied",
        extra={
            "drawing_id": drawing.id,
            "event": event.value,
            "from_status": previous.value,
            "to_status": target.value,
            "actor_id": actor.id,
        },
    )

    if notify:
        run_post_commit_hooks(event, actor, [drawing])
    return drawing


# ── Per-event wrappers ───────────────────────────────────────────────────────

def upload_first_revision(
    actor: Actor,
    scope_item_id: int,
    file_ref: str,
    cad_file_ref: str | None = None,
    *,
    file_name: str | None = None,
    file_size: int | None = None,
    cad_file_name: str | None = None,
    notes: str | None = None,
    expected_status: str | None = None,
) -> Drawing:
    """Create the drawing (if needed) and its revision "A"."""
    return apply_transition(
        actor, None, DrawingEvent.UPLOAD_FIRST_REVISION,
        {
            "file_ref": file_ref,
            "cad_file_ref": cad_file_ref,
            "file_name": file_name,
            "file_size": file_size,
            "cad_file_name": cad_file_name,
            "notes": notes,
        },
        scope_item_id=scope_item_id,
        expected_status=expected_status,
    )


def send_to_client(
    actor: Actor, drawing_id: int, *, expected_status: str | None = None, notify: bool = True,
) -> Drawing:
    return apply_transition(
        actor, drawing_id, DrawingEvent.SEND_TO_CLIENT,
        expected_status=expected_status, notify=notify,
    )


def record_client_response(
    actor: Actor,
    drawing_id: int,
    outcome: str,
    comments: str | None = None,
    markup_ref: str | None = None,
    *,
    expected_status: str | None = None,
) -> Drawing:
    return apply_transition(
        actor, drawing_id, DrawingEvent.RECORD_CLIENT_RESPONSE,
        {"outcome": outcome, "comments": comments, "markup_ref": markup_ref},
        expected_status=expected_status,
    )


def pm_override(
    actor: Actor, drawing_id: int, reason: str, *, expected_status: str | None = None,
) -> Drawing:
    """Approve without the client, recording who did it and why."""
    return apply_transition(
        actor, drawing_id, DrawingEvent.PM_OVERRIDE,
        {"reason": reason},
        expected_status=expected_status,
    )


def replace_file(
    actor: Actor,
    drawing_id: int,
    file_ref: str | None = None,
    cad_file_ref: str | None = None,
    *,
    confirmed: bool = False,
    file_name: str | None = None,
    file_size: int | None = None,
    cad_file_name: str | None = None,
    expected_status: str | None = None,
) -> Drawing:
    """Swap the files of the current revision without allocating a letter."""
    return apply_transition(
        actor, drawing_id, DrawingEvent.REPLACE_FILE,
        {
            "file_ref": file_ref,
            "cad_file_ref": cad_file_ref,
            "file_name": file_name,
            "file_size": file_size,
            "cad_file_name": cad_file_name,
            "confirmed": confirmed,
        },
        expected_status=expected_status,
    )


def upload_new_revision(
    actor: Actor,
    drawing_id: int,
    file_ref: str,
    cad_file_ref: str | None = None,
    *,
    confirmed: bool = False,
    file_name: str | None = None,
    file_size: int | None = None,
    cad_file_name: str | None = None,
    notes: str | None = None,
    expected_status: str | None = None,
) -> Drawing:
    return apply_transition(
        actor, drawing_id, DrawingEvent.UPLOAD_NEW_REVISION,
        {
            "file_ref": file_ref,
            "cad_file_ref": cad_file_ref,
            "file_name": file_name,
            "file_size": file_size,
            "cad_file_name": cad_file_name,
            "notes": notes,
            "confirmed": confirmed,
        },
        expected_status=expected_status,
    )


def mark_not_required(
    actor: Actor, scope_item_id: int, reason: str, *, expected_status: str | None = None,
) -> Drawing:
    """Exempt a scope item from drawing approval (terminal)."""
    return apply_transition(
        actor, None, DrawingEvent.MARK_NOT_REQUIRED,
        {"reason": reason},
        scope_item_id=scope_item_id,
        expected_status=expected_status,
    )
