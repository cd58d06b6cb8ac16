"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.  The Limiter
instance is created in fcpm/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from fcpm.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

logger = logging.getLogger(__name__)

BULK_SEND_LIMIT = "10/minute"
DRAWING_LIMIT = "120/minute"


def rate_limit_key():
    """Key requests by acting user when known, else by remote IP."""
    user_id = flask_request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per acting user):
        - Bulk send:        10/minute (fans out to many transitions + emails)
        - Drawing routes:   120/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bulk_view = app.view_functions.get("drawing.bulk_send")
    if bulk_view:
        app.view_functions["drawing.bulk_send"] = limiter.limit(BULK_SEND_LIMIT)(bulk_view)

    bp = app.blueprints.get("drawing")
    if bp:
        limiter.limit(DRAWING_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: bulk send %s, drawing routes %s",
        BULK_SEND_LIMIT, DRAWING_LIMIT,
    )
