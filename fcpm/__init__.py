"""
Formula Contract PM
Flask Application Factory.

Usage:
    from fcpm import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from fcpm.config import config
from fcpm.middleware.logging_config import configure_logging
from fcpm.middleware.rate_limiter import init_rate_limits, rate_limit_key
from fcpm.middleware.timing import init_request_timing
from fcpm.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],                     # limits are applied per blueprint
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    init_request_timing(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from fcpm.models import audit as _audit_models              # noqa: F401
    from fcpm.models import auth as _auth_models                # noqa: F401
    from fcpm.models import drawing as _drawing_models          # noqa: F401
    from fcpm.models import notification as _notification_models  # noqa: F401
    from fcpm.models import project as _project_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.testing:
            os.makedirs(app.instance_path, exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from fcpm.blueprints.drawing_bp import drawing_bp
    from fcpm.blueprints.health_bp import health_bp

    app.register_blueprint(drawing_bp)
    app.register_blueprint(health_bp)

    # ── Post-commit hooks ────────────────────────────────────────────────
    from fcpm.services.approval_service import register_post_commit_hook
    from fcpm.services.drawing_state_machine import DrawingEvent
    from fcpm.services.notification import notify_drawings_sent_hook

    register_post_commit_hook(DrawingEvent.SEND_TO_CLIENT, notify_drawings_sent_hook)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "details": {"path": request.path}}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED", "details": {}}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED",
                "details": {"retry_after": e.description}}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL", "details": {}}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
