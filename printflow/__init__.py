"""
PrintFlow Workflow Engine
Flask Application Factory.

Usage:
    from printflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from printflow.auth import init_auth
from printflow.config import config
from printflow.middleware.logging_config import configure_logging
from printflow.middleware.rate_limiter import init_rate_limits
from printflow.middleware.timing import init_request_timing
from printflow.models import db
from printflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing, then actor resolution ────────────────────────────
    init_request_timing(app)
    init_auth(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from printflow.models import forms as _forms_models      # noqa: F401
    from printflow.models import project as _project_models  # noqa: F401

    if app.config.get("SQLALCHEMY_DATABASE_URI", "").startswith("sqlite") and not app.config.get("TESTING"):
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from printflow.blueprints.admin_bp import admin_bp
    from printflow.blueprints.forms_bp import forms_bp
    from printflow.blueprints.health_bp import health_bp
    from printflow.blueprints.tasks_bp import tasks_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(forms_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(admin_bp)

    init_rate_limits(app, limiter)

    # ── App-level error handlers ─────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Resource not found")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Rate limit exceeded", "code": "ERR_RATE_LIMIT"}), 429

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return api_error(E.INTERNAL, "Internal server error")

    logger.debug("Application created config=%s", config_name)
    return app
