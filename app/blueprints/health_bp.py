"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  simple 200 for load balancers
    GET /api/v1/health/live   detailed system health (DB, cache, AI provider)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check: 200 whenever the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Cache (Redis or in-memory); optional, never fails overall health ──
    checks["cache"] = cache_service.health_check()

    # ── AI provider ──────────────────────────────────────────────────
    provider = current_app.config.get("AI_PROVIDER", "local")
    checks["ai_provider"] = {
        "provider": provider,
        "configured": provider != "anthropic" or bool(current_app.config.get("ANTHROPIC_API_KEY")),
    }

    checks["app"] = {
        "name": "Content Operations Dashboard",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
