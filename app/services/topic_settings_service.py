"""Per-project topic generator settings.

A project has at most one TopicGeneratorSettings row. Reads never create it:
``get_settings`` falls back to ``default_settings()`` and reports
``is_default``. ``update_settings`` upserts, touching only the keys present
in the payload.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.project import AudienceProfile, Project
from app.models.topics import DURATION_TYPES, TopicGeneratorSettings, TopicProposal
from app.utils.helpers import is_int

logger = logging.getLogger(__name__)

# field -> (min, max)
_INT_RANGES = {
    "time_window_days": (1, 30),
    "min_stories_for_cluster": (1, 10),
    "max_proposals_per_run": (1, 20),
    "default_duration_seconds": (60, 900),
}
_LIST_FIELDS = ("focus_categories", "comparison_regions")


def default_settings(project_id: int) -> dict:
    cfg = current_app.config
    return {
        "id": None,
        "project_id": project_id,
        "auto_generation_enabled": True,
        "time_window_days": cfg.get("TOPIC_TIME_WINDOW_DAYS", 7),
        "min_stories_for_cluster": 2,
        "max_proposals_per_run": cfg.get("TOPIC_MAX_PROPOSALS", 5),
        "focus_categories": [],
        "comparison_regions": [],
        "default_duration_type": "standard",
        "default_duration_seconds": None,
        "default_audience_profile_id": None,
        "created_at": None,
        "updated_at": None,
    }


def find_settings(project_id: int) -> TopicGeneratorSettings | None:
    return db.session.execute(
        select(TopicGeneratorSettings).where(TopicGeneratorSettings.project_id == project_id)
    ).scalar_one_or_none()


def effective_settings(project_id: int) -> dict:
    """Stored settings, or the defaults when the project has none."""
    row = find_settings(project_id)
    return row.to_dict() if row is not None else default_settings(project_id)


def get_proposal_stats(project_id: int) -> dict:
    rows = db.session.execute(
        select(TopicProposal.status, TopicProposal.generated_by, func.count(TopicProposal.id))
        .where(TopicProposal.project_id == project_id)
        .group_by(TopicProposal.status, TopicProposal.generated_by)
    ).all()
    by_status: dict[str, int] = {}
    auto = 0
    for status, generated_by, count in rows:
        by_status[status] = by_status.get(status, 0) + count
        if generated_by == "auto":
            auto += count
    return {"total": sum(by_status.values()), "by_status": by_status, "auto_generated": auto}


def get_settings(project_id: int) -> dict:
    """Returns {settings, stats, is_default}."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    row = find_settings(project_id)
    return {
        "settings": row.to_dict() if row is not None else default_settings(project_id),
        "stats": get_proposal_stats(project_id),
        "is_default": row is None,
    }


def _validate(project_id: int, data: dict) -> dict:
    errors = {}
    clean = {}

    if "auto_generation_enabled" in data:
        if not isinstance(data["auto_generation_enabled"], bool):
            errors["auto_generation_enabled"] = "Must be true or false"
        else:
            clean["auto_generation_enabled"] = data["auto_generation_enabled"]

    for field, (low, high) in _INT_RANGES.items():
        if field not in data:
            continue
        value = data[field]
        if value is None and field == "default_duration_seconds":
            clean[field] = None
        elif not is_int(value) or not low <= value <= high:
            errors[field] = f"Must be an integer between {low} and {high}"
        else:
            clean[field] = value

    for field in _LIST_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            errors[field] = "Must be a list of strings"
        else:
            clean[field] = [v.strip() for v in value if v.strip()]

    if "default_duration_type" in data:
        if data["default_duration_type"] not in DURATION_TYPES:
            errors["default_duration_type"] = f"Must be one of: {', '.join(sorted(DURATION_TYPES))}"
        else:
            clean["default_duration_type"] = data["default_duration_type"]

    if "default_audience_profile_id" in data:
        profile_id = data["default_audience_profile_id"]
        if profile_id is None:
            clean["default_audience_profile_id"] = None
        else:
            profile = db.session.get(AudienceProfile, profile_id) if is_int(profile_id) else None
            if profile is None or profile.project_id != project_id:
                errors["default_audience_profile_id"] = "Must be an audience profile of this project"
            else:
                clean["default_audience_profile_id"] = profile_id

    if errors:
        raise ValidationError("Invalid topic generator settings", details=errors)
    return clean


def update_settings(project_id: int, data: dict, auth: AuthorizationContext) -> TopicGeneratorSettings:
    """Create or patch the project's settings row."""
    auth.require("generate_proposals")
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    changes = _validate(project_id, data)
    row = find_settings(project_id)
    if row is None:
        defaults = default_settings(project_id)
        row = TopicGeneratorSettings(
            project_id=project_id,
            **{k: v for k, v in defaults.items() if k not in ("id", "project_id", "created_at", "updated_at")},
        )
        db.session.add(row)
    for field, value in changes.items():
        setattr(row, field, value)
    db.session.commit()

    logger.info("Topic generator settings saved project_id=%s fields=%s",
                project_id, sorted(changes), extra={"project_id": project_id})
    return row
