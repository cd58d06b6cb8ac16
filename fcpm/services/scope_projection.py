"""
Scope Item Projection

Derives ``ScopeItem.status`` from ``Drawing.status``.  Pure functions, no
session access: the approval service applies the result inside its own
transaction.

    uploaded | not_uploaded | rejected              → in_design
    sent_to_client                                  → awaiting_approval
    approved | approved_with_comments | not_required → approved

A cancelled scope item stays cancelled.  Items already in production or
complete are not pulled back to ``approved``.
"""

from fcpm.models.drawing import DrawingStatus
from fcpm.models.project import DOWNSTREAM_SCOPE_STATUSES

DRAWING_TO_SCOPE_STATUS = {
    DrawingStatus.NOT_UPLOADED.value: "in_design",
    DrawingStatus.UPLOADED.value: "in_design",
    DrawingStatus.REJECTED.value: "in_design",
    DrawingStatus.SENT_TO_CLIENT.value: "awaiting_approval",
    DrawingStatus.APPROVED.value: "approved",
    DrawingStatus.APPROVED_WITH_COMMENTS.value: "approved",
    DrawingStatus.NOT_REQUIRED.value: "approved",
}

PRESERVED_SCOPE_STATUSES = frozenset({"cancelled"})


def _value(status) -> str:
    return status.value if isinstance(status, DrawingStatus) else status


def derive_scope_item_status(drawing_status, prior_scope_status: str | None = None) -> str:
    """Scope item status implied by *drawing_status*.

    Raises ``ValueError`` for an unknown drawing status.
    """
    key = _value(drawing_status)
    if key not in DRAWING_TO_SCOPE_STATUS:
        raise ValueError(f"Unknown drawing status: {drawing_status}")
    mapped = DRAWING_TO_SCOPE_STATUS[key]

    if prior_scope_status in PRESERVED_SCOPE_STATUSES:
        return prior_scope_status
    if mapped == "approved" and prior_scope_status in DOWNSTREAM_SCOPE_STATUSES:
        return prior_scope_status
    return mapped


def project_scope_status(
    event,
    previous_drawing_status,
    new_drawing_status,
    prior_scope_status: str | None,
) -> str | None:
    """Scope item status after *event* moved a drawing between two statuses.

    Returns ``None`` when the scope item must not be touched.  Replacing the
    files of a drawing that was already ``uploaded`` is the only such case;
    replacing out of ``sent_to_client`` or ``rejected`` forces ``in_design``.
    """
    event = getattr(event, "value", event)
    previous = _value(previous_drawing_status)

    if event == "replace_file":
        if previous == DrawingStatus.UPLOADED.value:
            return None
        if prior_scope_status in PRESERVED_SCOPE_STATUSES:
            return prior_scope_status
        if previous in (DrawingStatus.SENT_TO_CLIENT.value, DrawingStatus.REJECTED.value):
            return "in_design"

    return derive_scope_item_status(new_drawing_status, prior_scope_status)
