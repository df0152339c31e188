"""Episode scheduling and milestone blueprint.

Endpoint groups:
  Episodes            GET/POST /api/v1/projects/<project_id>/episodes
                      GET      /api/v1/projects/<project_id>/episodes/summary
                      GET/DELETE /api/v1/episodes/<episode_id>
  Episode actions     POST /api/v1/episodes/<episode_id>/reschedule
                      POST /api/v1/episodes/<episode_id>/cancel
                      POST /api/v1/episodes/<episode_id>/regenerate-milestones
  Milestones          GET  /api/v1/episodes/<episode_id>/milestones
                      PUT  /api/v1/milestones/<milestone_id>
                      POST /api/v1/milestones/<milestone_id>/start|complete|skip
  Dashboards          GET  /api/v1/projects/<project_id>/milestones/upcoming
                      GET  /api/v1/projects/<project_id>/milestones/overdue

Milestone payloads carry read-time ``is_overdue`` and ``urgency`` fields.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, current_app, jsonify, request

import app.services.episode_service as eps
import app.services.milestone_service as ms
from app.middleware.request_context import current_auth
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import first_non_int, is_int, parse_date, request_json

logger = logging.getLogger(__name__)

episode_bp = Blueprint("episodes", __name__, url_prefix="/api/v1")
register_error_handlers(episode_bp, "episode_bp")


def _milestone_list(milestones):
    today = date.today()
    return jsonify([m.to_dict(today=today) for m in milestones]), 200


# ═════════════════════════════════════════════════════════════════════════
# Episodes
# ═════════════════════════════════════════════════════════════════════════


@episode_bp.route("/projects/<int:project_id>/episodes", methods=["GET"])
def list_episodes(project_id):
    """Query params: status, from (YYYY-MM-DD), to (YYYY-MM-DD)."""
    episodes = eps.list_episodes(
        project_id,
        status=request.args.get("status"),
        from_date=parse_date(request.args.get("from")),
        to_date=parse_date(request.args.get("to")),
    )
    return jsonify([ep.to_dict() for ep in episodes]), 200


@episode_bp.route("/projects/<int:project_id>/episodes", methods=["POST"])
def schedule_episode(project_id):
    """Schedule an episode and materialise its milestones.

    Body: {
        title, tx_date, tx_time?, timeline_type?, template_id?,
        topic_proposal_id?, episode_number?, internal_notes?
    }
    Returns: episode with milestones (201).
    """
    data = request_json()
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    if not data.get("tx_date"):
        return api_error(E.VALIDATION_REQUIRED, "tx_date is required")
    bad = first_non_int(data, "template_id", "topic_proposal_id", "episode_number")
    if bad:
        return api_error(E.VALIDATION_INVALID, f"{bad} must be an integer")
    data["project_id"] = project_id
    episode = eps.schedule_episode(data, current_auth())
    return jsonify(episode.to_dict(include_milestones=True, today=date.today())), 201


@episode_bp.route("/projects/<int:project_id>/episodes/summary", methods=["GET"])
def episode_summary(project_id):
    return jsonify(eps.get_episode_summary(project_id)), 200


@episode_bp.route("/episodes/<int:episode_id>", methods=["GET"])
def get_episode(episode_id):
    episode = eps.get_episode(episode_id)
    return jsonify(episode.to_dict(include_milestones=True, today=date.today())), 200


@episode_bp.route("/episodes/<int:episode_id>", methods=["DELETE"])
def delete_episode(episode_id):
    eps.delete_episode(episode_id, current_auth())
    return jsonify({"deleted": True, "id": episode_id}), 200


@episode_bp.route("/episodes/<int:episode_id>/reschedule", methods=["POST"])
def reschedule_episode(episode_id):
    """Body: {new_tx_date, new_tx_time?}"""
    data = request_json()
    if not data.get("new_tx_date"):
        return api_error(E.VALIDATION_REQUIRED, "new_tx_date is required")
    episode = eps.reschedule_episode(
        episode_id, data["new_tx_date"], current_auth(), new_tx_time=data.get("new_tx_time"),
    )
    return jsonify(episode.to_dict(include_milestones=True, today=date.today())), 200


@episode_bp.route("/episodes/<int:episode_id>/cancel", methods=["POST"])
def cancel_episode(episode_id):
    episode = eps.cancel_episode(episode_id, current_auth())
    return jsonify(episode.to_dict(include_milestones=True, today=date.today())), 200


@episode_bp.route("/episodes/<int:episode_id>/regenerate-milestones", methods=["POST"])
def regenerate_milestones(episode_id):
    """Body: {template_id}"""
    data = request_json()
    template_id = data.get("template_id")
    if not is_int(template_id):
        return api_error(E.VALIDATION_REQUIRED, "template_id (integer) is required")
    return _milestone_list(eps.regenerate_milestones(episode_id, template_id, current_auth()))


# ═════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════


@episode_bp.route("/episodes/<int:episode_id>/milestones", methods=["GET"])
def list_milestones(episode_id):
    return _milestone_list(ms.list_episode_milestones(episode_id))


@episode_bp.route("/milestones/<int:milestone_id>", methods=["PUT"])
def update_milestone(milestone_id):
    """Body: {notes?, deadline_time?, label?, status?}"""
    milestone = ms.update_milestone(milestone_id, request_json(), current_auth())
    return jsonify(milestone.to_dict(today=date.today())), 200


@episode_bp.route("/milestones/<int:milestone_id>/start", methods=["POST"])
def start_milestone(milestone_id):
    milestone = ms.start_milestone(milestone_id, current_auth())
    return jsonify(milestone.to_dict(today=date.today())), 200


@episode_bp.route("/milestones/<int:milestone_id>/complete", methods=["POST"])
def complete_milestone(milestone_id):
    """Body: {notes?}"""
    milestone = ms.complete_milestone(milestone_id, current_auth(), notes=request_json().get("notes"))
    return jsonify(milestone.to_dict(today=date.today())), 200


@episode_bp.route("/milestones/<int:milestone_id>/skip", methods=["POST"])
def skip_milestone(milestone_id):
    """Body: {notes?}"""
    milestone = ms.skip_milestone(milestone_id, current_auth(), notes=request_json().get("notes"))
    return jsonify(milestone.to_dict(today=date.today())), 200


@episode_bp.route("/projects/<int:project_id>/milestones/upcoming", methods=["GET"])
def upcoming_milestones(project_id):
    """Query params: days (default UPCOMING_MILESTONE_DAYS)."""
    days = request.args.get("days", type=int) or current_app.config.get("UPCOMING_MILESTONE_DAYS", 7)
    if days < 0:
        return api_error(E.VALIDATION_INVALID, "days must be >= 0")
    return _milestone_list(ms.get_upcoming_milestones(project_id, days=days))


@episode_bp.route("/projects/<int:project_id>/milestones/overdue", methods=["GET"])
def overdue_milestones(project_id):
    return _milestone_list(ms.get_overdue_milestones(project_id))
