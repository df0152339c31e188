"""Milestone lifecycle service.

Status transitions (see MILESTONE_TRANSITIONS):
    pending → in_progress → completed
    pending | in_progress → skipped
    completed and skipped are terminal.

Overdue is derived at read time and never written; completing a milestone
late therefore reads as "not overdue" from then on.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.models import db
from app.models.production import (
    MILESTONE_STATUSES,
    OPEN_MILESTONE_STATUSES,
    Episode,
    ProductionMilestone,
    validate_milestone_transition,
)
from app.services.milestone_calculator import is_valid_time

logger = logging.getLogger(__name__)


def get_milestone(milestone_id: int) -> ProductionMilestone:
    milestone = db.session.get(ProductionMilestone, milestone_id)
    if milestone is None:
        raise NotFoundError(resource="ProductionMilestone", resource_id=milestone_id)
    return milestone


def list_episode_milestones(episode_id: int) -> list[ProductionMilestone]:
    if db.session.get(Episode, episode_id) is None:
        raise NotFoundError(resource="Episode", resource_id=episode_id)
    stmt = (
        select(ProductionMilestone)
        .where(ProductionMilestone.episode_id == episode_id)
        .order_by(ProductionMilestone.deadline_date.asc(), ProductionMilestone.sort_order.asc())
    )
    return list(db.session.execute(stmt).scalars())


def _transition(milestone: ProductionMilestone, new_status: str) -> str:
    old = milestone.status
    if not validate_milestone_transition(old, new_status):
        raise InvalidTransition("ProductionMilestone", old, new_status)
    milestone.status = new_status
    return old


def _stamp_completed(milestone: ProductionMilestone, auth: AuthorizationContext) -> None:
    milestone.completed_at = datetime.now(timezone.utc)
    milestone.completed_by = auth.user_id


# ── Transitions ──────────────────────────────────────────────────────────────


def start_milestone(milestone_id: int, auth: AuthorizationContext) -> ProductionMilestone:
    auth.require("manage_milestones")
    milestone = get_milestone(milestone_id)
    old = _transition(milestone, "in_progress")
    db.session.commit()
    logger.info("Milestone %s: %s -> in_progress", milestone.id, old,
                extra={"project_id": milestone.episode.project_id})
    return milestone


def complete_milestone(
    milestone_id: int, auth: AuthorizationContext, notes: str | None = None
) -> ProductionMilestone:
    """Close a milestone, stamping completed_at/by and storing notes."""
    auth.require("manage_milestones")
    milestone = get_milestone(milestone_id)
    old = _transition(milestone, "completed")
    _stamp_completed(milestone, auth)
    if notes is not None:
        milestone.notes = notes
    db.session.commit()
    logger.info("Milestone %s: %s -> completed", milestone.id, old,
                extra={"project_id": milestone.episode.project_id})
    return milestone


def skip_milestone(
    milestone_id: int, auth: AuthorizationContext, notes: str | None = None
) -> ProductionMilestone:
    auth.require("manage_milestones")
    milestone = get_milestone(milestone_id)
    old = _transition(milestone, "skipped")
    if notes is not None:
        milestone.notes = notes
    db.session.commit()
    logger.info("Milestone %s: %s -> skipped", milestone.id, old,
                extra={"project_id": milestone.episode.project_id})
    return milestone


def update_milestone(milestone_id: int, data: dict, auth: AuthorizationContext) -> ProductionMilestone:
    """
    Edit notes, label, deadline_time or status.

    deadline_date is derived from the TX date and cannot be set here;
    status goes through the same transition guard as the dedicated calls,
    and field edits in the same body are applied before it.
    """
    auth.require("manage_milestones")
    if "deadline_date" in data:
        raise ValidationError(
            "deadline_date is derived from the episode TX date; reschedule the episode instead",
            details={"deadline_date": "Not editable"},
        )

    milestone = get_milestone(milestone_id)
    status = data.get("status")
    changes_status = status is not None and status != milestone.status
    if changes_status:
        if status not in MILESTONE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(MILESTONE_STATUSES))}",
                details={"status": "Invalid"},
            )
        if not validate_milestone_transition(milestone.status, status):
            raise InvalidTransition("ProductionMilestone", milestone.status, status)
    tod = data.get("deadline_time")
    if tod is not None and not is_valid_time(tod):
        raise ValidationError("deadline_time must be HH:MM", details={"deadline_time": "Invalid time"})

    if "deadline_time" in data:
        milestone.deadline_time = tod
    if "notes" in data:
        milestone.notes = data["notes"]
    if "label" in data and data["label"]:
        milestone.label = data["label"]
    if changes_status:
        _transition(milestone, status)
        if status == "completed":
            _stamp_completed(milestone, auth)

    db.session.commit()
    logger.info("Milestone updated id=%s", milestone.id,
                extra={"project_id": milestone.episode.project_id})
    return milestone


# ── Dashboard queries ────────────────────────────────────────────────────────


def get_upcoming_milestones(
    project_id: int, days: int = 7, today: date | None = None
) -> list[ProductionMilestone]:
    """Open milestones due today through ``today + days``."""
    today = today or date.today()
    stmt = (
        select(ProductionMilestone)
        .join(Episode, ProductionMilestone.episode_id == Episode.id)
        .where(
            Episode.project_id == project_id,
            Episode.production_status != "cancelled",
            ProductionMilestone.status.in_(OPEN_MILESTONE_STATUSES),
            ProductionMilestone.deadline_date >= today,
            ProductionMilestone.deadline_date <= today + timedelta(days=days),
        )
        .order_by(ProductionMilestone.deadline_date.asc(), ProductionMilestone.deadline_time.asc())
    )
    return list(db.session.execute(stmt).scalars())


def get_overdue_milestones(project_id: int, today: date | None = None) -> list[ProductionMilestone]:
    """Open milestones whose deadline day has passed, oldest first."""
    today = today or date.today()
    stmt = (
        select(ProductionMilestone)
        .join(Episode, ProductionMilestone.episode_id == Episode.id)
        .where(
            Episode.project_id == project_id,
            ProductionMilestone.status.in_(OPEN_MILESTONE_STATUSES),
            ProductionMilestone.deadline_date < today,
        )
        .order_by(ProductionMilestone.deadline_date.asc())
    )
    return list(db.session.execute(stmt).scalars())
