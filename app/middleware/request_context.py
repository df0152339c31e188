"""
Authorization context for API requests.

Session handling lives upstream (gateway / SSO proxy); it forwards the acting
user as headers:

    X-User-Id      user identifier (default "anonymous")
    X-User-Role    owner | editor | viewer (default viewer; unknown → viewer)
    X-Client-User  "true" when the user belongs to the client side

Usage:
    from app.middleware.request_context import current_auth
    episode_service.schedule_episode(data, current_auth())
"""

from flask import g, request

from app.core.authorization import ROLES, AuthorizationContext
from app.utils.helpers import parse_bool


def current_auth() -> AuthorizationContext:
    """Build (once per request) the AuthorizationContext from request headers."""
    ctx = getattr(g, "auth_context", None)
    if ctx is not None:
        return ctx

    user_id = (request.headers.get("X-User-Id") or "").strip() or "anonymous"
    role = (request.headers.get("X-User-Role") or "viewer").strip().lower()
    if role not in ROLES:
        role = "viewer"
    ctx = AuthorizationContext(
        user_id=user_id[:100],
        role=role,
        is_client=parse_bool(request.headers.get("X-Client-User")),
    )
    g.auth_context = ctx
    return ctx
