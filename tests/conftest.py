"""
Shared pytest fixtures for the Content Operations Dashboard test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / other_project: Pre-created Project rows
    - audience: AudienceProfile on ``project``
    - editor / viewer / client_user: AuthorizationContext fixtures
    - editor_headers / viewer_headers: request headers for API tests
"""

import os

import pytest

# Tests always run against the in-memory cache backend.
os.environ["REDIS_URL"] = ""

from app import create_app  # noqa: E402
from app.core.authorization import AuthorizationContext  # noqa: E402
from app.models import db as _db  # noqa: E402
from app.models.project import AudienceProfile, Project  # noqa: E402
from app.services import cache_service  # noqa: E402


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.reset_backend()
        cache_service.clear_all()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.clear_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    p = Project(name="Morning Explainer")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def other_project():
    p = Project(name="Weekend Long-form")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def audience(project):
    profile = AudienceProfile(
        project_id=project.id,
        name="Young professionals",
        description="Urban 25-35, news-curious, time-poor",
        preferred_tone="educational",
        market_region="UK",
        values=["fairness", "opportunity"],
        fears=["rising costs"],
        interests=["housing", "technology"],
    )
    _db.session.add(profile)
    _db.session.commit()
    return profile


@pytest.fixture()
def editor():
    return AuthorizationContext(user_id="editor-1", role="editor")


@pytest.fixture()
def viewer():
    return AuthorizationContext(user_id="viewer-1", role="viewer")


@pytest.fixture()
def client_user():
    """Client-side reviewer: may comment, nothing else."""
    return AuthorizationContext(user_id="client-1", role="viewer", is_client=True)


@pytest.fixture()
def editor_headers():
    return {"X-User-Id": "editor-1", "X-User-Role": "editor"}


@pytest.fixture()
def viewer_headers():
    return {"X-User-Id": "viewer-1", "X-User-Role": "viewer"}
