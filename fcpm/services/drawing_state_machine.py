"""
Drawing State Machine

Owns the legal ``Drawing.status`` transitions, independent of any caller.

States:
    not_uploaded → uploaded → sent_to_client → approved | approved_with_comments | rejected
    rejected → uploaded (replace / new revision) | approved (PM override)
    sent_to_client → uploaded (replace, withdraws the pending review) | approved (PM override)
    approved* → uploaded (replace / new revision, confirmation required)
    not_uploaded → not_required (terminal)

A scope item with no drawing row is treated as ``not_uploaded``.

Usage:
    from fcpm.services.drawing_state_machine import DrawingEvent, resolve_transition

    target = resolve_transition(DrawingEvent.SEND_TO_CLIENT, drawing.status)
"""

from __future__ import annotations

from enum import Enum

from fcpm.core.exceptions import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    ValidationError,
)
from fcpm.models.drawing import DrawingStatus


class DrawingEvent(str, Enum):
    UPLOAD_FIRST_REVISION = "upload_first_revision"
    SEND_TO_CLIENT = "send_to_client"
    RECORD_CLIENT_RESPONSE = "record_client_response"
    PM_OVERRIDE = "pm_override"
    REPLACE_FILE = "replace_file"
    UPLOAD_NEW_REVISION = "upload_new_revision"
    MARK_NOT_REQUIRED = "mark_not_required"


APPROVED_LIKE = frozenset({DrawingStatus.APPROVED, DrawingStatus.APPROVED_WITH_COMMENTS})

CLIENT_RESPONSE_OUTCOMES = frozenset({
    DrawingStatus.APPROVED,
    DrawingStatus.APPROVED_WITH_COMMENTS,
    DrawingStatus.REJECTED,
})

# event → {"from": statuses the event is legal in, "to": target (None = outcome-driven)}
DRAWING_TRANSITIONS: dict[DrawingEvent, dict] = {
    DrawingEvent.UPLOAD_FIRST_REVISION: {
        "from": frozenset({DrawingStatus.NOT_UPLOADED}),
        "to": DrawingStatus.UPLOADED,
    },
    DrawingEvent.SEND_TO_CLIENT: {
        "from": frozenset({DrawingStatus.UPLOADED}),
        "to": DrawingStatus.SENT_TO_CLIENT,
    },
    DrawingEvent.RECORD_CLIENT_RESPONSE: {
        "from": frozenset({DrawingStatus.SENT_TO_CLIENT}),
        "to": None,
    },
    DrawingEvent.PM_OVERRIDE: {
        "from": frozenset({DrawingStatus.SENT_TO_CLIENT, DrawingStatus.REJECTED}),
        "to": DrawingStatus.APPROVED,
    },
    DrawingEvent.REPLACE_FILE: {
        "from": frozenset({
            DrawingStatus.UPLOADED,
            DrawingStatus.SENT_TO_CLIENT,
            DrawingStatus.REJECTED,
            *APPROVED_LIKE,
        }),
        "to": DrawingStatus.UPLOADED,
    },
    DrawingEvent.UPLOAD_NEW_REVISION: {
        "from": frozenset({DrawingStatus.UPLOADED, DrawingStatus.REJECTED, *APPROVED_LIKE}),
        "to": DrawingStatus.UPLOADED,
    },
    DrawingEvent.MARK_NOT_REQUIRED: {
        "from": frozenset({DrawingStatus.NOT_UPLOADED}),
        "to": DrawingStatus.NOT_REQUIRED,
    },
}

# Events that need the caller's explicit confirmation when leaving an approved status.
_CONFIRM_ON_APPROVED = frozenset({DrawingEvent.REPLACE_FILE, DrawingEvent.UPLOAD_NEW_REVISION})


def as_status(value: str | DrawingStatus | None) -> DrawingStatus:
    """Coerce a stored status string to ``DrawingStatus`` (``None`` → not_uploaded)."""
    if value is None:
        return DrawingStatus.NOT_UPLOADED
    return DrawingStatus(value)


def as_event(value: str | DrawingEvent) -> DrawingEvent:
    try:
        return DrawingEvent(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown drawing event: {value}", details={"event": "unknown"}) from exc


def is_approved_like(status: str | DrawingStatus | None) -> bool:
    """True for ``approved`` and ``approved_with_comments``."""
    return status is not None and as_status(status) in APPROVED_LIKE


def requires_confirmation(event: str | DrawingEvent, current: str | DrawingStatus | None) -> bool:
    """True when *event* would discard an existing client approval."""
    return as_event(event) in _CONFIRM_ON_APPROVED and is_approved_like(current)


def resolve_transition(
    event: str | DrawingEvent,
    current: str | DrawingStatus | None,
    *,
    outcome: str | DrawingStatus | None = None,
    confirmed: bool = False,
) -> DrawingStatus:
    """Return the status *event* moves a drawing in *current* status to.

    Args:
        event: The requested event.
        current: Current drawing status (``None`` when no drawing row exists).
        outcome: Client decision for ``record_client_response``.
        confirmed: Caller confirmed discarding an existing approval.

    Raises:
        InvalidTransitionError: *event* is not legal from *current*.
        ConfirmationRequiredError: leaving an approved status without *confirmed*.
        ValidationError: missing or unknown client-response outcome.
    """
    event = as_event(event)
    current = as_status(current)
    rule = DRAWING_TRANSITIONS[event]

    if current not in rule["from"]:
        raise InvalidTransitionError(
            event.value, current.value,
            f"allowed from: {', '.join(sorted(s.value for s in rule['from']))}",
        )

    if event in _CONFIRM_ON_APPROVED and current in APPROVED_LIKE and not confirmed:
        raise ConfirmationRequiredError(event.value, current.value)

    if event is DrawingEvent.RECORD_CLIENT_RESPONSE:
        return resolve_outcome(outcome)

    return rule["to"]


def resolve_outcome(outcome: str | DrawingStatus | None) -> DrawingStatus:
    """Validate a client-response outcome."""
    try:
        status = DrawingStatus(outcome) if outcome else None
    except ValueError:
        status = None
    if status not in CLIENT_RESPONSE_OUTCOMES:
        raise ValidationError(
            "outcome must be one of: approved, approved_with_comments, rejected",
            details={"outcome": outcome},
        )
    return status


def available_events(current: str | DrawingStatus | None) -> list[str]:
    """Events that are legal from *current* (confirmation not considered)."""
    current = as_status(current)
    return [
        event.value
        for event, rule in DRAWING_TRANSITIONS.items()
        if current in rule["from"]
    ]
