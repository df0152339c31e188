"""Workflow template service.

CRUD for per-project milestone offset templates, default selection per
timeline type, and seeding of the built-in templates.

Rules:
  - At most one default template per (project, timeline_type).
  - Offsets are validated by milestone_calculator.validate_milestone_offsets.
  - db.session.commit() happens only in this file for template writes.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NoTemplateAvailable, NotFoundError, ValidationError
from app.models import db
from app.models.production import TIMELINE_TYPES, WorkflowTemplate
from app.models.project import Project
from app.services.milestone_calculator import (
    DEFAULT_TEMPLATES,
    validate_milestone_offsets,
)

logger = logging.getLogger(__name__)


def get_default_template(templates, timeline_type: str):
    """
    Pick the template for ``timeline_type`` from an in-memory list.

    Prefers the one flagged ``is_default``; otherwise the first match.
    Raises NoTemplateAvailable when nothing matches.
    """
    matching = [t for t in templates if t.timeline_type == timeline_type]
    if not matching:
        raise NoTemplateAvailable(timeline_type)
    for tpl in matching:
        if tpl.is_default:
            return tpl
    return matching[0]


# ── Private helpers ──────────────────────────────────────────────────────────


def _require_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _validate_timeline_type(timeline_type) -> None:
    if timeline_type not in TIMELINE_TYPES:
        raise ValidationError(
            f"timeline_type must be one of: {', '.join(sorted(TIMELINE_TYPES))}",
            details={"timeline_type": f"Unknown value {timeline_type!r}"},
        )


def _normalize_offsets(offsets: list[dict]) -> list[dict]:
    """Keep only known keys; fill label defaults lazily at compute time."""
    return [
        {
            "milestone_type": off["milestone_type"],
            "label": off.get("label"),
            "day_offset": int(off["day_offset"]),
            "time_of_day": off.get("time_of_day"),
            "is_client_facing": bool(off.get("is_client_facing", False)),
            "requires_client_approval": bool(off.get("requires_client_approval", False)),
        }
        for off in offsets
    ]


def _clear_other_defaults(project_id: int, timeline_type: str, keep_id: int | None) -> None:
    stmt = select(WorkflowTemplate).where(
        WorkflowTemplate.project_id == project_id,
        WorkflowTemplate.timeline_type == timeline_type,
        WorkflowTemplate.is_default.is_(True),
    )
    for tpl in db.session.execute(stmt).scalars():
        if tpl.id != keep_id:
            tpl.is_default = False


# ── Queries ──────────────────────────────────────────────────────────────────


def list_templates(project_id: int, timeline_type: str | None = None) -> list[WorkflowTemplate]:
    """Project templates, defaults first, then by name."""
    stmt = select(WorkflowTemplate).where(WorkflowTemplate.project_id == project_id)
    if timeline_type:
        _validate_timeline_type(timeline_type)
        stmt = stmt.where(WorkflowTemplate.timeline_type == timeline_type)
    stmt = stmt.order_by(WorkflowTemplate.is_default.desc(), WorkflowTemplate.name.asc())
    return list(db.session.execute(stmt).scalars())


def get_template(template_id: int, project_id: int | None = None) -> WorkflowTemplate:
    tpl = db.session.get(WorkflowTemplate, template_id)
    if tpl is None or (project_id is not None and tpl.project_id != project_id):
        raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id,
                            project_id=project_id)
    return tpl


def resolve_template(project_id: int, timeline_type: str) -> WorkflowTemplate:
    """Default template for the project's timeline type, or NoTemplateAvailable."""
    _validate_timeline_type(timeline_type)
    try:
        return get_default_template(list_templates(project_id, timeline_type), timeline_type)
    except NoTemplateAvailable as exc:
        exc.project_id = project_id
        raise


# ── Mutations ────────────────────────────────────────────────────────────────


def create_template(project_id: int, data: dict, auth: AuthorizationContext) -> WorkflowTemplate:
    """Create a template after validating name, timeline type and offsets.

    Raises:
        PermissionDenied: caller cannot manage templates.
        NotFoundError:    project missing.
        ValidationError:  bad name, timeline type or offsets.
    """
    auth.require("manage_templates")
    _require_project(project_id)

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "Required"})
    timeline_type = data.get("timeline_type") or "normal"
    _validate_timeline_type(timeline_type)
    offsets = data.get("milestone_offsets")
    validate_milestone_offsets(offsets)

    tpl = WorkflowTemplate(
        project_id=project_id,
        name=name,
        description=data.get("description"),
        timeline_type=timeline_type,
        is_default=bool(data.get("is_default", False)),
        milestone_offsets=_normalize_offsets(offsets),
    )
    db.session.add(tpl)
    db.session.flush()
    if tpl.is_default:
        _clear_other_defaults(project_id, timeline_type, tpl.id)
    db.session.commit()

    logger.info(
        "Workflow template created id=%s project_id=%s timeline=%s default=%s",
        tpl.id, project_id, timeline_type, tpl.is_default,
        extra={"project_id": project_id},
    )
    return tpl


def update_template(template_id: int, data: dict, auth: AuthorizationContext) -> WorkflowTemplate:
    """Partial update. Existing episodes keep their milestones."""
    auth.require("manage_templates")
    tpl = get_template(template_id)

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "Required"})
        tpl.name = name
    if "description" in data:
        tpl.description = data["description"]
    if "timeline_type" in data:
        _validate_timeline_type(data["timeline_type"])
        tpl.timeline_type = data["timeline_type"]
    if "milestone_offsets" in data:
        validate_milestone_offsets(data["milestone_offsets"])
        tpl.milestone_offsets = _normalize_offsets(data["milestone_offsets"])
    if "is_default" in data:
        tpl.is_default = bool(data["is_default"])

    if tpl.is_default:
        _clear_other_defaults(tpl.project_id, tpl.timeline_type, tpl.id)
    db.session.commit()

    logger.info("Workflow template updated id=%s", tpl.id,
                extra={"project_id": tpl.project_id})
    return tpl


def set_default_template(template_id: int, auth: AuthorizationContext) -> WorkflowTemplate:
    """Flag one template as default, clearing siblings of the same timeline type."""
    auth.require("manage_templates")
    tpl = get_template(template_id)
    _clear_other_defaults(tpl.project_id, tpl.timeline_type, tpl.id)
    tpl.is_default = True
    db.session.commit()
    logger.info("Workflow template id=%s set as default for %s",
                tpl.id, tpl.timeline_type, extra={"project_id": tpl.project_id})
    return tpl


def delete_template(template_id: int, auth: AuthorizationContext) -> None:
    """Delete a template. Episodes built from it keep their milestones."""
    auth.require("manage_templates")
    tpl = get_template(template_id)
    project_id = tpl.project_id
    db.session.delete(tpl)
    db.session.commit()
    logger.info("Workflow template deleted id=%s", template_id,
                extra={"project_id": project_id})


# ── Built-in defaults ────────────────────────────────────────────────────────


def get_or_create_default_template(project_id: int, timeline_type: str) -> WorkflowTemplate:
    """
    Return the project's default for ``timeline_type``, seeding the built-in
    template on first use.
    """
    try:
        return resolve_template(project_id, timeline_type)
    except NoTemplateAvailable:
        pass

    _require_project(project_id)
    name, description, offsets = DEFAULT_TEMPLATES[timeline_type]
    tpl = WorkflowTemplate(
        project_id=project_id,
        name=name,
        description=description,
        timeline_type=timeline_type,
        is_default=True,
        milestone_offsets=_normalize_offsets(offsets),
    )
    db.session.add(tpl)
    db.session.commit()
    logger.info("Seeded built-in %s template for project_id=%s", timeline_type, project_id,
                extra={"project_id": project_id})
    return tpl


def seed_default_templates(project_id: int) -> int:
    """Ensure a default exists for every timeline type. Returns how many were created."""
    _require_project(project_id)
    created = 0
    for timeline_type in ("normal", "breaking_news", "emergency"):
        if not list_templates(project_id, timeline_type):
            get_or_create_default_template(project_id, timeline_type)
            created += 1
    return created
