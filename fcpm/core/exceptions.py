"""
Platform-wide exception hierarchy.

Every error the drawing workflow can raise derives from
``DrawingWorkflowError``.  Services raise these types after rolling back;
blueprints register handlers against them once and get consistent HTTP
status codes everywhere.

Usage:
    from fcpm.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Drawing", resource_id=42)
    raise ValidationError("reason is required", details={"reason": "required"})
"""


class DrawingWorkflowError(Exception):
    """Base class for every typed error the workflow returns to callers."""


class NotFoundError(DrawingWorkflowError):
    """Raised when a referenced Drawing, Revision, ScopeItem or Project is absent.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model/entity name (e.g. "Drawing", "Revision").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(DrawingWorkflowError):
    """Raised when a payload is well-formed but misses a required value.

    Typical cases: an empty override reason, an empty not-required reason,
    an unknown client-response outcome.  Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(DrawingWorkflowError):
    """Raised when an event is not legal from the drawing's current status.

    Maps to HTTP 409.
    """

    def __init__(self, event: str, current_status: str, reason: str | None = None) -> None:
        self.event = event
        self.current_status = current_status
        self.reason = reason
        msg = f"Cannot '{event}' drawing (status={current_status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConfirmationRequiredError(DrawingWorkflowError):
    """Raised when a destructive transition is attempted without ``confirmed=True``.

    Leaving an approved status discards a client approval; the caller must
    say so explicitly.  Maps to HTTP 428.
    """

    def __init__(self, event: str, current_status: str) -> None:
        self.event = event
        self.current_status = current_status
        super().__init__(
            f"'{event}' on a drawing in status '{current_status}' discards the "
            "existing approval and requires confirmation"
        )


class ConflictError(DrawingWorkflowError):
    """Raised when a write loses an optimistic-concurrency race.

    The caller should re-read current state and retry rather than resubmit
    the stale request.  Maps to HTTP 409.

    Args:
        resource: Model name.
        resource_id: Key of the contested row.
        message: Optional override of the default message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            message or f"{resource} id={resource_id} was modified concurrently; reload and retry"
        )


class AuthorizationError(DrawingWorkflowError):
    """Raised when the actor's role does not permit the event.  Maps to HTTP 403."""

    def __init__(self, actor_id: int | None, role: str | None, event: str) -> None:
        self.actor_id = actor_id
        self.role = role
        self.event = event
        super().__init__(f"User {actor_id} (role={role}) may not '{event}'")
