"""Workflow template blueprint.

Endpoint groups:
  Template list/create    GET/POST   /api/v1/projects/<project_id>/workflow-templates
  Template detail         GET/PUT/DELETE /api/v1/workflow-templates/<template_id>
  Default flag            POST       /api/v1/workflow-templates/<template_id>/default

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.workflow_template_service as wts
from app.middleware.request_context import current_auth
from app.utils.errors import E, api_error, register_error_handlers
from app.utils.helpers import request_json

logger = logging.getLogger(__name__)

workflow_template_bp = Blueprint("workflow_templates", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_template_bp, "workflow_template_bp")


@workflow_template_bp.route("/projects/<int:project_id>/workflow-templates", methods=["GET"])
def list_templates(project_id):
    """List templates; defaults first. Query: timeline_type (optional)."""
    templates = wts.list_templates(project_id, request.args.get("timeline_type"))
    return jsonify([t.to_dict() for t in templates]), 200


@workflow_template_bp.route("/projects/<int:project_id>/workflow-templates", methods=["POST"])
def create_template(project_id):
    """Body: {name, timeline_type, milestone_offsets[], description?, is_default?}"""
    data = request_json()
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if not isinstance(data.get("milestone_offsets"), list):
        return api_error(E.VALIDATION_REQUIRED, "milestone_offsets must be a list")
    template = wts.create_template(project_id, data, current_auth())
    return jsonify(template.to_dict()), 201


@workflow_template_bp.route("/workflow-templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(wts.get_template(template_id).to_dict()), 200


@workflow_template_bp.route("/workflow-templates/<int:template_id>", methods=["PUT"])
def update_template(template_id):
    data = request_json()
    if "milestone_offsets" in data and not isinstance(data["milestone_offsets"], list):
        return api_error(E.VALIDATION_INVALID, "milestone_offsets must be a list")
    template = wts.update_template(template_id, data, current_auth())
    return jsonify(template.to_dict()), 200


@workflow_template_bp.route("/workflow-templates/<int:template_id>/default", methods=["POST"])
def set_default(template_id):
    template = wts.set_default_template(template_id, current_auth())
    return jsonify(template.to_dict()), 200


@workflow_template_bp.route("/workflow-templates/<int:template_id>", methods=["DELETE"])
def delete_template(template_id):
    wts.delete_template(template_id, current_auth())
    return jsonify({"deleted": True, "id": template_id}), 200
