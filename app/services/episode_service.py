"""Episode scheduling service.

Business logic for:
    - Scheduling:     calendar entry + episode + milestones + proposal link
    - Milestones:     all-or-nothing materialisation from a workflow template
    - Rescheduling:   recompute open milestone deadlines from the new TX date
    - Cancel/delete:  skip open milestones, or remove the episode entirely
    - Summary:        per-project dashboard counts

Rules:
  - A milestone deadline is only ever written as tx_date + day_offset.
  - Completed and skipped milestones keep their deadline across reschedules.
  - Scheduling either persists every row or none of them.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import func, select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NotFoundError, ValidationError
from app.integrations.calendar_gateway import calendar_gateway
from app.models import db
from app.models.production import (
    OPEN_MILESTONE_STATUSES,
    TIMELINE_TYPES,
    Episode,
    ProductionMilestone,
    WorkflowTemplate,
)
from app.models.project import Project
from app.models.topics import TopicProposal
from app.services import workflow_template_service
from app.services.milestone_calculator import add_days, compute_milestones, is_valid_time
from app.utils.helpers import is_int, parse_date

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 14
SUMMARY_UPCOMING_LIMIT = 5


# ── Private helpers ──────────────────────────────────────────────────────────


def _coerce_tx_date(value, field="tx_date") -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", details={field: "Invalid date"})
    return parsed


def _check_time(value, field="tx_time") -> None:
    if value is not None and not is_valid_time(value):
        raise ValidationError(f"{field} must be HH:MM", details={field: "Invalid time"})


def _next_episode_number(project_id: int) -> int:
    current = db.session.execute(
        select(func.max(Episode.episode_number)).where(Episode.project_id == project_id)
    ).scalar()
    return (current or 0) + 1


def _build_milestones(episode: Episode, template: WorkflowTemplate) -> list[ProductionMilestone]:
    return [
        ProductionMilestone(
            episode=episode,
            milestone_type=entry["milestone_type"],
            label=entry["label"],
            day_offset=entry["day_offset"],
            sort_order=entry["sort_order"],
            deadline_date=entry["calculated_date"],
            deadline_time=entry["time_of_day"],
            status="pending",
            is_client_facing=entry["is_client_facing"],
            requires_client_approval=entry["requires_client_approval"],
        )
        for entry in compute_milestones(episode.tx_date, template.milestone_offsets or [])
    ]


def get_episode(episode_id: int, project_id: int | None = None) -> Episode:
    episode = db.session.get(Episode, episode_id)
    if episode is None or (project_id is not None and episode.project_id != project_id):
        raise NotFoundError(resource="Episode", resource_id=episode_id, project_id=project_id)
    return episode


def list_episodes(
    project_id: int,
    *,
    status: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[Episode]:
    stmt = select(Episode).where(Episode.project_id == project_id)
    if status:
        stmt = stmt.where(Episode.production_status == status)
    if from_date:
        stmt = stmt.where(Episode.tx_date >= from_date)
    if to_date:
        stmt = stmt.where(Episode.tx_date <= to_date)
    return list(db.session.execute(stmt.order_by(Episode.tx_date.asc(), Episode.id.asc())).scalars())


# ── Milestone materialisation ────────────────────────────────────────────────


def create_episode_milestones(
    episode: Episode, template: WorkflowTemplate, *, commit: bool = True
) -> list[ProductionMilestone]:
    """
    Persist one pending milestone per template offset as a single batch.

    Either every milestone is written or none is: on any failure the session
    is rolled back and the error re-raised.
    """
    try:
        milestones = _build_milestones(episode, template)
        db.session.add_all(milestones)
        db.session.flush()
        if commit:
            db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Milestone batch failed for episode_id=%s", episode.id,
                         extra={"project_id": episode.project_id})
        raise
    return milestones


# ── Scheduling ───────────────────────────────────────────────────────────────


def schedule_episode(data: dict, auth: AuthorizationContext) -> Episode:
    """
    Schedule an episode: calendar entry, episode row, milestones, proposal link.

    Args:
        data: project_id, title, tx_date; optional tx_time, timeline_type,
              template_id, topic_proposal_id, episode_number, internal_notes.
        auth: acting user; needs ``schedule_episodes``.

    Raises:
        NoTemplateAvailable: no template for the timeline type.
        ValidationError:     bad title, date, time or timeline type.
        NotFoundError:       template or proposal outside the project.
    """
    auth.require("schedule_episodes")

    project_id = data.get("project_id")
    if project_id is None or db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "Required"})
    tx_date = _coerce_tx_date(data.get("tx_date"))
    tx_time = data.get("tx_time")
    _check_time(tx_time)

    for field in ("template_id", "topic_proposal_id", "episode_number"):
        if data.get(field) is not None and not is_int(data[field]):
            raise ValidationError(f"{field} must be an integer", details={field: "Invalid"})

    timeline_type = data.get("timeline_type")
    if timeline_type is not None and timeline_type not in TIMELINE_TYPES:
        raise ValidationError(
            f"timeline_type must be one of: {', '.join(sorted(TIMELINE_TYPES))}",
            details={"timeline_type": "Invalid"},
        )

    if data.get("template_id"):
        template = workflow_template_service.get_template(data["template_id"], project_id)
    else:
        template = workflow_template_service.resolve_template(project_id, timeline_type or "normal")

    proposal = None
    proposal_id = data.get("topic_proposal_id")
    if proposal_id:
        proposal = db.session.get(TopicProposal, proposal_id)
        if proposal is None or proposal.project_id != project_id:
            raise NotFoundError(resource="TopicProposal", resource_id=proposal_id,
                                project_id=project_id)

    episode_number = data.get("episode_number") or _next_episode_number(project_id)

    try:
        entry = calendar_gateway.create_entry(
            project_id=project_id,
            title=title,
            tx_date=tx_date,
            tx_time=tx_time,
            created_by=auth.user_id,
            notes=f"Episode {episode_number} - TX Date",
        )
        episode = Episode(
            project_id=project_id,
            topic_proposal_id=proposal.id if proposal else None,
            calendar_item_id=entry.id,
            template_id=template.id,
            title=title,
            episode_number=episode_number,
            tx_date=tx_date,
            tx_time=tx_time,
            timeline_type=timeline_type or template.timeline_type,
            production_status="topic_approved" if proposal else "topic_pending",
            internal_notes=data.get("internal_notes"),
            created_by=auth.user_id,
        )
        db.session.add(episode)
        db.session.flush()
        calendar_gateway.attach_episode(entry.id, episode.id)

        create_episode_milestones(episode, template, commit=False)

        if proposal is not None:
            proposal.linked_episode_id = episode.id
            proposal.scheduled_tx_date = tx_date

        db.session.commit()
    except Exception:
        # Calendar entry, episode and milestones go together.
        db.session.rollback()
        raise

    logger.info(
        "Episode scheduled id=%s project_id=%s tx_date=%s template_id=%s",
        episode.id, project_id, tx_date, template.id,
        extra={"project_id": project_id},
    )
    return episode


def reschedule_episode(
    episode_id: int,
    new_tx_date,
    auth: AuthorizationContext,
    new_tx_time: str | None = None,
) -> Episode:
    """
    Move an episode to a new TX date.

    Open milestones get ``new_tx_date + day_offset``; completed and skipped
    milestones keep the deadline they closed with. The calendar entry and
    linked proposal move with the episode.
    """
    auth.require("schedule_episodes")
    episode = get_episode(episode_id)
    new_date = _coerce_tx_date(new_tx_date, field="new_tx_date")
    _check_time(new_tx_time, field="new_tx_time")

    old_date = episode.tx_date
    moved = 0
    for milestone in episode.milestones:
        if milestone.status not in OPEN_MILESTONE_STATUSES:
            continue
        milestone.deadline_date = add_days(new_date, milestone.day_offset)
        moved += 1

    episode.tx_date = new_date
    if new_tx_time is not None:
        episode.tx_time = new_tx_time

    if episode.calendar_item_id:
        calendar_gateway.move_entry(episode.calendar_item_id, new_date, new_tx_time)

    if episode.topic_proposal_id:
        proposal = db.session.get(TopicProposal, episode.topic_proposal_id)
        if proposal is not None:
            proposal.scheduled_tx_date = new_date

    db.session.commit()
    logger.info(
        "Episode rescheduled id=%s %s -> %s (%d open milestones moved)",
        episode.id, old_date, new_date, moved,
        extra={"project_id": episode.project_id},
    )
    return episode


def cancel_episode(episode_id: int, auth: AuthorizationContext) -> Episode:
    """Mark cancelled and skip every open milestone. Closed milestones stay."""
    auth.require("schedule_episodes")
    episode = get_episode(episode_id)
    episode.production_status = "cancelled"
    for milestone in episode.milestones:
        if milestone.status in OPEN_MILESTONE_STATUSES:
            milestone.status = "skipped"
    if episode.calendar_item_id:
        calendar_gateway.cancel_entry(episode.calendar_item_id)
    db.session.commit()
    logger.info("Episode cancelled id=%s", episode.id, extra={"project_id": episode.project_id})
    return episode


def delete_episode(episode_id: int, auth: AuthorizationContext) -> None:
    """Unlink the proposal, drop the calendar entry, delete episode and milestones."""
    auth.require("schedule_episodes")
    episode = get_episode(episode_id)
    project_id = episode.project_id

    if episode.topic_proposal_id:
        proposal = db.session.get(TopicProposal, episode.topic_proposal_id)
        if proposal is not None:
            proposal.linked_episode_id = None
            proposal.scheduled_tx_date = None

    calendar_item_id = episode.calendar_item_id
    db.session.delete(episode)
    db.session.flush()
    if calendar_item_id:
        calendar_gateway.remove_entry(calendar_item_id)
    db.session.commit()
    logger.info("Episode deleted id=%s", episode_id, extra={"project_id": project_id})


def regenerate_milestones(
    episode_id: int, template_id: int, auth: AuthorizationContext
) -> list[ProductionMilestone]:
    """Replace every milestone of the episode from ``template_id`` in one transaction."""
    auth.require("manage_milestones")
    episode = get_episode(episode_id)
    template = workflow_template_service.get_template(template_id, episode.project_id)

    try:
        for milestone in episode.milestones:
            db.session.delete(milestone)
        db.session.flush()
        milestones = create_episode_milestones(episode, template, commit=False)
        episode.template_id = template.id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Milestones regenerated episode_id=%s template_id=%s count=%d",
                episode.id, template.id, len(milestones),
                extra={"project_id": episode.project_id})
    return milestones


# ── Summary ──────────────────────────────────────────────────────────────────


def get_episode_summary(project_id: int, today: date | None = None) -> dict:
    """Non-cancelled totals, next TX dates within two weeks, overdue milestones."""
    today = today or date.today()
    horizon = today + timedelta(days=SUMMARY_WINDOW_DAYS)

    episodes = db.session.execute(
        select(Episode).where(
            Episode.project_id == project_id,
            Episode.production_status != "cancelled",
        )
    ).scalars().all()

    by_status: dict[str, int] = {}
    for ep in episodes:
        by_status[ep.production_status] = by_status.get(ep.production_status, 0) + 1

    upcoming = sorted(
        (ep for ep in episodes if today <= ep.tx_date <= horizon),
        key=lambda ep: (ep.tx_date, ep.id),
    )[:SUMMARY_UPCOMING_LIMIT]

    overdue = db.session.execute(
        select(func.count(ProductionMilestone.id))
        .join(Episode, ProductionMilestone.episode_id == Episode.id)
        .where(
            Episode.project_id == project_id,
            ProductionMilestone.status.in_(OPEN_MILESTONE_STATUSES),
            ProductionMilestone.deadline_date < today,
        )
    ).scalar() or 0

    return {
        "total": len(episodes),
        "by_status": by_status,
        "upcoming_tx_dates": [
            {"episode_id": ep.id, "title": ep.title, "tx_date": ep.tx_date.isoformat()}
            for ep in upcoming
        ],
        "overdue_milestones": overdue,
    }
