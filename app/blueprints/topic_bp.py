"""Topic proposal blueprint.

Endpoint groups:
  Flagged stories     GET/POST /api/v1/projects/<project_id>/flagged-stories
  Clustering          POST /api/v1/projects/<project_id>/topics/preview-clusters
  Generation          POST /api/v1/projects/<project_id>/topics/generate
  Proposals           GET  /api/v1/projects/<project_id>/topics/proposals
                      GET/PUT /api/v1/topics/proposals/<proposal_id>
                      POST /api/v1/topics/proposals/<proposal_id>/status
                      POST /api/v1/topics/proposals/<proposal_id>/schedule
                      POST /api/v1/topics/proposals/<proposal_id>/resynthesize
  Comments            GET/POST /api/v1/topics/proposals/<proposal_id>/comments
                      GET  /api/v1/topics/proposals/<proposal_id>/comments/count
                      PUT/DELETE /api/v1/topics/proposal-comments/<comment_id>
                      POST /api/v1/topics/proposal-comments/<comment_id>/resolve|unresolve
  Settings            GET/PUT /api/v1/projects/<project_id>/topics/settings

Clustering, generation and re-synthesis call the configured AI provider
(AI_PROVIDER).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.proposal_comment_service as pcs
import app.services.topic_proposal_service as tps
import app.services.topic_settings_service as tss
from app.middleware.request_context import current_auth
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import first_non_int, is_int, parse_bool, request_json

logger = logging.getLogger(__name__)

topic_bp = Blueprint("topics", __name__, url_prefix="/api/v1")
register_error_handlers(topic_bp, "topic_bp")


def _int_list(value) -> list[int] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(
        is_int(v) for v in value
    ):
        raise ValueError
    return value


# ═════════════════════════════════════════════════════════════════════════
# Flagged stories
# ═════════════════════════════════════════════════════════════════════════


@topic_bp.route("/projects/<int:project_id>/flagged-stories", methods=["GET"])
def list_flagged_stories(project_id):
    return jsonify([s.to_dict() for s in tps.list_flagged_stories(project_id)]), 200


@topic_bp.route("/projects/<int:project_id>/flagged-stories", methods=["POST"])
def flag_story(project_id):
    """Body: {title, summary?, category?, source?, url?, published_at?}"""
    data = request_json()
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    story = tps.flag_story(project_id, data, current_auth())
    return jsonify(story.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Clustering & generation
# ═════════════════════════════════════════════════════════════════════════


@topic_bp.route("/projects/<int:project_id>/topics/preview-clusters", methods=["POST"])
def preview_clusters(project_id):
    """Body: {audience_profile_id, force_refresh?, categories?[]}"""
    data = request_json()
    if not is_int(data.get("audience_profile_id")):
        return api_error(E.VALIDATION_REQUIRED, "audience_profile_id (integer) is required")
    categories = data.get("categories")
    if categories is not None and not isinstance(categories, list):
        return api_error(E.VALIDATION_INVALID, "categories must be a list")
    result = tps.preview_clusters(
        project_id,
        data["audience_profile_id"],
        force_refresh=parse_bool(data.get("force_refresh")),
        categories=categories,
    )
    return jsonify(result), 200


@topic_bp.route("/projects/<int:project_id>/topics/generate", methods=["POST"])
def generate_proposals(project_id):
    """Generate draft proposals.

    Body: {
        audience_profile_id, duration_type?, duration_seconds?,
        comparison_regions?[], cluster_ids?[], max_proposals?
    }
    Returns: {proposals: [...], count} (201).
    """
    data = request_json()
    if not data.get("audience_profile_id"):
        return api_error(E.VALIDATION_REQUIRED, "audience_profile_id is required")
    bad = first_non_int(data, "audience_profile_id", "max_proposals", "duration_seconds")
    if bad:
        return api_error(E.VALIDATION_INVALID, f"{bad} must be an integer")
    try:
        data["cluster_ids"] = _int_list(data.get("cluster_ids"))
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "cluster_ids must be a list of integers")
    data["project_id"] = project_id
    data.pop("generated_by", None)
    proposals = tps.generate_proposals(data, current_auth())
    return jsonify({"proposals": [p.to_dict() for p in proposals], "count": len(proposals)}), 201


# ═════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════


@topic_bp.route("/projects/<int:project_id>/topics/proposals", methods=["GET"])
def list_proposals(project_id):
    """Query params: status."""
    proposals = tps.list_proposals(project_id, status=request.args.get("status"))
    return jsonify([p.to_dict() for p in proposals]), 200


@topic_bp.route("/topics/proposals/<int:proposal_id>", methods=["GET"])
def get_proposal(proposal_id):
    return jsonify(tps.get_proposal(proposal_id).to_dict()), 200


@topic_bp.route("/topics/proposals/<int:proposal_id>", methods=["PUT"])
def update_proposal(proposal_id):
    proposal = tps.update_proposal(proposal_id, request_json(), current_auth())
    return jsonify(proposal.to_dict()), 200


@topic_bp.route("/topics/proposals/<int:proposal_id>/status", methods=["POST"])
def set_status(proposal_id):
    """Body: {status}"""
    status = request_json().get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    proposal = tps.set_proposal_status(proposal_id, status, current_auth())
    return jsonify(proposal.to_dict()), 200


@topic_bp.route("/topics/proposals/<int:proposal_id>/schedule", methods=["POST"])
def schedule_proposal(proposal_id):
    """Body: {tx_date, tx_time?, timeline_type?, template_id?, title?}"""
    data = request_json()
    if not data.get("tx_date"):
        return api_error(E.VALIDATION_REQUIRED, "tx_date is required")
    if first_non_int(data, "template_id"):
        return api_error(E.VALIDATION_INVALID, "template_id must be an integer")
    episode = tps.schedule_proposal(proposal_id, data, current_auth())
    return jsonify(episode.to_dict(include_milestones=True)), 201


@topic_bp.route("/topics/proposals/<int:proposal_id>/resynthesize", methods=["POST"])
def resynthesize_proposal(proposal_id):
    """Redraft the proposal's copy from its source stories."""
    proposal = tps.resynthesize_proposal(proposal_id, current_auth())
    return jsonify(proposal.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Proposal comments
# ═════════════════════════════════════════════════════════════════════════


@topic_bp.route("/topics/proposals/<int:proposal_id>/comments", methods=["GET"])
def list_comments(proposal_id):
    """Query params: unresolved (bool)."""
    comments = pcs.list_comments(proposal_id, unresolved_only=parse_bool(request.args.get("unresolved")))
    return jsonify(comments), 200


@topic_bp.route("/topics/proposals/<int:proposal_id>/comments", methods=["POST"])
def add_comment(proposal_id):
    """Body: {content, comment_type?, parent_comment_id?}"""
    data = request_json()
    if not isinstance(data.get("content"), str) or not data["content"].strip():
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    if first_non_int(data, "parent_comment_id"):
        return api_error(E.VALIDATION_INVALID, "parent_comment_id must be an integer")
    comment = pcs.add_comment(proposal_id, data, current_auth())
    return jsonify(comment.to_dict()), 201


@topic_bp.route("/topics/proposals/<int:proposal_id>/comments/count", methods=["GET"])
def count_comments(proposal_id):
    return jsonify(pcs.count_comments(proposal_id)), 200


@topic_bp.route("/topics/proposal-comments/<int:comment_id>", methods=["PUT"])
def update_comment(comment_id):
    """Body: {content?, comment_type?}"""
    comment = pcs.update_comment(comment_id, request_json(), current_auth())
    return jsonify(comment.to_dict()), 200


@topic_bp.route("/topics/proposal-comments/<int:comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    pcs.delete_comment(comment_id, current_auth())
    return jsonify({"deleted": True, "id": comment_id}), 200


@topic_bp.route("/topics/proposal-comments/<int:comment_id>/resolve", methods=["POST"])
def resolve_comment(comment_id):
    return jsonify(pcs.resolve_comment(comment_id, current_auth()).to_dict()), 200


@topic_bp.route("/topics/proposal-comments/<int:comment_id>/unresolve", methods=["POST"])
def unresolve_comment(comment_id):
    return jsonify(pcs.unresolve_comment(comment_id, current_auth()).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Generator settings
# ═════════════════════════════════════════════════════════════════════════


@topic_bp.route("/projects/<int:project_id>/topics/settings", methods=["GET"])
def get_settings(project_id):
    """Returns: {settings, stats, is_default}."""
    return jsonify(tss.get_settings(project_id)), 200


@topic_bp.route("/projects/<int:project_id>/topics/settings", methods=["PUT"])
def update_settings(project_id):
    """Body: any subset of the settings fields."""
    settings = tss.update_settings(project_id, request_json(), current_auth())
    return jsonify({"settings": settings.to_dict(), "is_default": False}), 200
