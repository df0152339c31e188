"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprint name → limit string
BLUEPRINT_LIMITS = {
    "topics": "30/minute",               # clustering / generation call the AI provider
    "workflow_templates": "60/minute",
    "episodes": "120/minute",
    "content": "120/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Topic endpoints:     30/minute  (AI provider calls)
        - Template endpoints:  60/minute
        - Episode / content:   120/minute (editors autosave drafts)
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: %s",
        ", ".join(f"{name}={limit}" for name, limit in BLUEPRINT_LIMITS.items()),
    )
