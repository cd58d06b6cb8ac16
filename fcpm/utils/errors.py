"""Standardised API error responses.

Usage
-----
    from fcpm.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Drawing not found")
    return api_error(E.VALIDATION_REQUIRED, "reason is required", details={"reason": "required"})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Malformed request – HTTP 400
    BAD_REQUEST = "ERR_BAD_REQUEST"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"

    # Destructive transition without confirmation – HTTP 428
    CONFIRMATION_REQUIRED = "ERR_CONFIRMATION_REQUIRED"

    # Identity / permissions
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 422,
    E.VALIDATION_INVALID: 422,
    E.BAD_REQUEST: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.CONFIRMATION_REQUIRED: 428,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current status, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
        "details": details or {},
    }
    return jsonify(body), http_status
