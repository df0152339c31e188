"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Episode not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.CONTENT_LOCKED, "Content is locked", details={"content_id": 4})
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    ConflictError,
    ContentLocked,
    InvalidTransition,
    NoTemplateAvailable,
    NotFoundError,
    PermissionDenied,
    ResolveNotApplicable,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # Business rule – HTTP 422
    BUSINESS_RULE = "ERR_BUSINESS_RULE"
    NO_TEMPLATE = "ERR_NO_TEMPLATE"
    RESOLVE_NOT_APPLICABLE = "ERR_RESOLVE_NOT_APPLICABLE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / state – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONTENT_LOCKED = "ERR_CONTENT_LOCKED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.BUSINESS_RULE: 422,
    E.NO_TEMPLATE: 422,
    E.RESOLVE_NOT_APPLICABLE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONTENT_LOCKED: 409,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

_HTTP_CODES: dict[int, str] = {
    400: E.VALIDATION_INVALID,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    409: E.CONFLICT_STATE,
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
        Extra structured payload (field errors, current state, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_from_exception(exc: Exception):
    """Map a domain exception onto ``api_error``. Returns None for unknown types."""
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, ValidationError):
        return api_error(E.BUSINESS_RULE, str(exc), details=exc.details)
    if isinstance(exc, NoTemplateAvailable):
        return api_error(E.NO_TEMPLATE, str(exc), details={"timeline_type": exc.timeline_type})
    if isinstance(exc, ResolveNotApplicable):
        return api_error(E.RESOLVE_NOT_APPLICABLE, str(exc),
                         details={"feedback_type": exc.feedback_type})
    if isinstance(exc, ContentLocked):
        return api_error(E.CONTENT_LOCKED, str(exc))
    if isinstance(exc, InvalidTransition):
        return api_error(E.CONFLICT_STATE, str(exc),
                         details={"current": exc.current, "target": exc.target})
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})
    if isinstance(exc, PermissionDenied):
        return api_error(E.FORBIDDEN, str(exc), details={"capability": exc.capability})
    return None


def register_error_handlers(bp, label: str) -> None:
    """
    Map domain exceptions raised by services to JSON responses on ``bp``.

    Every handler rolls the session back so a failed request never leaves
    half-applied changes for the next one.
    """
    from app.models import db

    log = logging.getLogger(f"app.blueprints.{label}")

    @bp.errorhandler(NotFoundError)
    @bp.errorhandler(ValidationError)
    @bp.errorhandler(ConflictError)
    @bp.errorhandler(InvalidTransition)
    @bp.errorhandler(ContentLocked)
    @bp.errorhandler(NoTemplateAvailable)
    @bp.errorhandler(ResolveNotApplicable)
    @bp.errorhandler(PermissionDenied)
    def _handle_domain_error(error):
        db.session.rollback()
        log.info("%s: %s", type(error).__name__, error)
        return error_from_exception(error)

    @bp.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        code = _HTTP_CODES.get(error.code, E.INTERNAL)
        return api_error(code, error.description or error.name, status=error.code)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        log.exception("Unexpected error in %s endpoint=%s", label, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
