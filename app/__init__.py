"""
Content Operations Dashboard
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
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
    # Instantiating runs ProductionConfig's required-variable checks
    app.config.from_object(config[config_name]())

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import project as _project_models        # noqa: F401
    from app.models import production as _production_models  # noqa: F401
    from app.models import content as _content_models        # noqa: F401
    from app.models import topics as _topics_models          # noqa: F401

    # ── Auto-create tables for SQLite dev/test (production uses migrations) ──
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        if config_name == "development":
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.workflow_template_bp import workflow_template_bp
    from app.blueprints.episode_bp import episode_bp
    from app.blueprints.content_bp import content_bp
    from app.blueprints.topic_bp import topic_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(workflow_template_bp)
    app.register_blueprint(episode_bp)
    app.register_blueprint(content_bp)
    app.register_blueprint(topic_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-workflow-templates")
    @click.argument("project_id", type=int)
    def seed_workflow_templates_cmd(project_id):
        """Seed the built-in normal / breaking_news / emergency templates."""
        from app.services.workflow_template_service import seed_default_templates
        count = seed_default_templates(project_id)
        click.echo(f"Seeded {count} workflow templates for project {project_id}.")

    @app.cli.command("auto-generate-topics")
    def auto_generate_topics_cmd():
        """Daily job: draft topic proposals for every project with fresh stories."""
        from app.services.topic_proposal_service import auto_generate_topics
        result = auto_generate_topics()
        click.echo(
            f"Projects processed: {result['projects']}, proposals: {result['proposals']}, "
            f"skipped: {result['skipped']}, failed: {result['failed']}"
        )

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description, "code": "ERR_VALIDATION_INVALID"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
