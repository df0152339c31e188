"""Episode content and feedback blueprint.

Endpoint groups:
  Content           GET  /api/v1/episodes/<episode_id>/content/<content_type>
  Versions          GET  /api/v1/episodes/<episode_id>/content/<content_type>/versions
                    GET  /api/v1/episodes/<episode_id>/content/<content_type>/versions/<n>
  Save / workflow   POST /api/v1/episodes/<episode_id>/content/<content_type>/save
                    POST .../submit | request-revisions | approve | lock
  Feedback          GET/POST /api/v1/episodes/<episode_id>/content/<content_type>/feedback
                    POST /api/v1/feedback/<feedback_id>/resolve | unresolve

content_type is one of video_script, article.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.content_service as cs
import app.services.feedback_service as fs
from app.middleware.request_context import current_auth
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import first_non_int, parse_bool, request_json

logger = logging.getLogger(__name__)

content_bp = Blueprint("content", __name__, url_prefix="/api/v1")
register_error_handlers(content_bp, "content_bp")

_PREFIX = "/episodes/<int:episode_id>/content/<content_type>"


# ═════════════════════════════════════════════════════════════════════════
# Content & versions
# ═════════════════════════════════════════════════════════════════════════


@content_bp.route(_PREFIX, methods=["GET"])
def get_content(episode_id, content_type):
    """Latest version, version list and unresolved feedback count."""
    return jsonify(cs.get_episode_content(episode_id, content_type)), 200


@content_bp.route(f"{_PREFIX}/versions", methods=["GET"])
def list_versions(episode_id, content_type):
    content = cs.require_content(episode_id, content_type)
    return jsonify([v.to_dict(include_body=False) for v in cs.list_versions(content)]), 200


@content_bp.route(f"{_PREFIX}/versions/<int:version_number>", methods=["GET"])
def get_version(episode_id, content_type, version_number):
    version = cs.get_content_version(episode_id, content_type, version_number)
    return jsonify(version.to_dict()), 200


@content_bp.route(f"{_PREFIX}/save", methods=["POST"])
def save_content(episode_id, content_type):
    """Append a version.

    Body: {body, title?, change_summary?, expected_version?}
    Returns: {content, version} (201).
    """
    data = request_json()
    if not isinstance(data.get("body"), str):
        return api_error(E.VALIDATION_REQUIRED, "body (string) is required")
    if first_non_int(data, "expected_version"):
        return api_error(E.VALIDATION_INVALID, "expected_version must be an integer")
    content, version = cs.save_content_version(episode_id, content_type, data, current_auth())
    return jsonify({"content": content.to_dict(), "version": version.to_dict()}), 201


@content_bp.route(f"{_PREFIX}/submit", methods=["POST"])
def submit_content(episode_id, content_type):
    """Body (optional): {body, title?, change_summary?, expected_version?} saved before submitting."""
    data = request_json()
    if first_non_int(data, "expected_version"):
        return api_error(E.VALIDATION_INVALID, "expected_version must be an integer")
    pending = data if isinstance(data.get("body"), str) else None
    content = cs.submit_for_review(episode_id, content_type, current_auth(), pending_edit=pending)
    return jsonify(content.to_dict()), 200


@content_bp.route(f"{_PREFIX}/request-revisions", methods=["POST"])
def request_revisions(episode_id, content_type):
    content = cs.request_revisions(episode_id, content_type, current_auth())
    return jsonify(content.to_dict()), 200


@content_bp.route(f"{_PREFIX}/approve", methods=["POST"])
def approve_content(episode_id, content_type):
    content = cs.approve_content(episode_id, content_type, current_auth())
    return jsonify(content.to_dict()), 200


@content_bp.route(f"{_PREFIX}/lock", methods=["POST"])
def lock_content(episode_id, content_type):
    content = cs.lock_content(episode_id, content_type, current_auth())
    return jsonify(content.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Feedback
# ═════════════════════════════════════════════════════════════════════════


@content_bp.route(f"{_PREFIX}/feedback", methods=["GET"])
def list_feedback(episode_id, content_type):
    """Query params: version_id, unresolved (bool)."""
    content = cs.require_content(episode_id, content_type)
    items = fs.list_feedback(
        content.id,
        version_id=request.args.get("version_id", type=int),
        unresolved_only=parse_bool(request.args.get("unresolved")),
    )
    return jsonify(items), 200


@content_bp.route(f"{_PREFIX}/feedback", methods=["POST"])
def add_feedback(episode_id, content_type):
    """Body: {version_id, comment, feedback_type?, highlight_start?, highlight_end?, parent_feedback_id?}"""
    data = request_json()
    if not (data.get("comment") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "comment is required")
    if not data.get("version_id"):
        return api_error(E.VALIDATION_REQUIRED, "version_id is required")
    content = cs.require_content(episode_id, content_type)
    fb = fs.add_feedback(content.id, data, current_auth())
    return jsonify(fb.to_dict()), 201


@content_bp.route("/feedback/<int:feedback_id>/resolve", methods=["POST"])
def resolve_feedback(feedback_id):
    return jsonify(fs.resolve_feedback(feedback_id, current_auth()).to_dict()), 200


@content_bp.route("/feedback/<int:feedback_id>/unresolve", methods=["POST"])
def unresolve_feedback(feedback_id):
    return jsonify(fs.unresolve_feedback(feedback_id, current_auth()).to_dict()), 200
