"""
Workhub
Flask Application Factory.

Usage:
    from workhub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from workhub.config import config
from workhub.middleware.jwt_auth import init_jwt_middleware
from workhub.middleware.logging_config import configure_logging
from workhub.middleware.rate_limiter import init_rate_limits
from workhub.middleware.timing import init_request_timing
from workhub.models import db
from workhub.utils.errors import register_error_handlers

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
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins == "*":
        CORS(app)
    elif cors_origins:
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Models (register tables on the metadata) ─────────────────────────
    from workhub.models import comment as _comment_models            # noqa: F401
    from workhub.models import invite as _invite_models              # noqa: F401
    from workhub.models import notification as _notification_models  # noqa: F401
    from workhub.models import project as _project_models            # noqa: F401
    from workhub.models import task as _task_models                  # noqa: F401
    from workhub.models import user as _user_models                  # noqa: F401
    from workhub.models import workspace as _workspace_models        # noqa: F401

    if not app.config.get("TESTING"):
        with app.app_context():
            if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and \
                    ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from workhub.blueprints.comment_bp import comment_bp
    from workhub.blueprints.health_bp import health_bp
    from workhub.blueprints.invite_bp import invite_bp
    from workhub.blueprints.notification_bp import notification_bp
    from workhub.blueprints.project_bp import project_bp
    from workhub.blueprints.task_bp import task_bp
    from workhub.blueprints.user_bp import user_bp
    from workhub.blueprints.workspace_bp import workspace_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(workspace_bp)
    app.register_blueprint(invite_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(comment_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(user_bp)

    # ── Rate limits ──────────────────────────────────────────────────────
    init_rate_limits(app, limiter)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("purge-expired-invites")
    def purge_expired_invites_cmd():
        """Mark past-expiry pending invites as expired."""
        from workhub.services.invite_lifecycle import purge_expired_invites
        count = purge_expired_invites()
        logger.info("Expired %s invites.", count)

    @app.cli.command("purge-archived-workspaces")
    def purge_archived_workspaces_cmd():
        """Delete archived workspaces whose retention window has elapsed."""
        from workhub.services.workspace_service import purge_archived_workspaces
        count = purge_archived_workspaces()
        logger.info("Purged %s archived workspaces.", count)

    @app.cli.command("rebuild-task-counters")
    def rebuild_task_counters_cmd():
        """Recount project task rollups from the live task set."""
        from workhub.services.task_service import rebuild_task_counters
        fixed = rebuild_task_counters()
        logger.info("Rebuilt task counters; %s project(s) corrected.", fixed)

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("name")
    @click.option("--global-role", default="user", show_default=True)
    def create_user_cmd(email, name, global_role):
        """Register a user profile (development helper)."""
        from workhub.services.user_service import create_user
        user = create_user(email, name, global_role)
        logger.info("Created user id=%s email=%s", user.id, user.email)

    return app
