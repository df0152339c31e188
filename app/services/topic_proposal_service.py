"""Topic proposal service.

Business logic for:
    - Flagged stories:   add/list the clustering input pool
    - Cluster preview:   provider call + normalisation + cache + duplicate check
    - Generation:        one draft proposal per selected cluster, capped
    - Proposal CRUD:     list/get/update and status transitions
    - Scheduling:        approved proposal → episode via episode_service
    - Re-synthesis:      redraft a proposal from its source stories
    - Auto-generation:   daily entry point for the external cron, driven by
                         each project's topic generator settings

Rules:
  - source_story_ids of a generated proposal are exactly its cluster's ids.
  - A failed cluster during generation is logged and skipped; zero
    successes is a ValidationError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select

from app.ai.clustering import (
    DURATION_CONFIG,
    ProviderResponseError,
    get_topic_provider,
    resolve_duration_seconds,
)
from app.core.authorization import AuthorizationContext, system_context
from app.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from app.models import db
from app.models.project import AudienceProfile, Project
from app.models.topics import (
    PROPOSAL_STATUSES,
    FlaggedStory,
    TopicProposal,
    validate_proposal_transition,
)
from app.services import cache_service, duplicate_detector, episode_service, topic_settings_service
from app.utils.helpers import is_int, parse_datetime

logger = logging.getLogger(__name__)

MIN_STORIES_TO_CLUSTER = 2

_EDITABLE_FIELDS = (
    "title", "hook", "audience_care_statement", "talking_points",
    "research_citations", "comparison_regions", "duration_type", "duration_seconds",
)


def _cfg(key, default):
    return current_app.config.get(key, default)


def _require_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _require_audience(project_id: int, audience_profile_id) -> AudienceProfile:
    profile = db.session.get(AudienceProfile, audience_profile_id) if audience_profile_id else None
    if profile is None or profile.project_id != project_id:
        raise NotFoundError(resource="AudienceProfile", resource_id=audience_profile_id,
                            project_id=project_id)
    return profile


# ── Flagged stories ──────────────────────────────────────────────────────────


def _story_dict(story: FlaggedStory) -> dict:
    return {
        "id": story.id,
        "title": story.title,
        "summary": story.summary,
        "category": story.category,
        "source": story.source,
        "published_at": story.published_at.isoformat() if story.published_at else None,
    }


def flag_story(project_id: int, data: dict, auth: AuthorizationContext) -> FlaggedStory:
    auth.require("generate_proposals")
    _require_project(project_id)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "Required"})
    story = FlaggedStory(
        project_id=project_id,
        title=title,
        summary=data.get("summary"),
        category=data.get("category"),
        source=data.get("source"),
        url=data.get("url"),
        published_at=parse_datetime(data.get("published_at")),
        flagged_by=auth.user_id,
    )
    db.session.add(story)
    db.session.commit()
    cache_service.invalidate_project_clusters(project_id)
    logger.info("Story flagged id=%s project_id=%s", story.id, project_id,
                extra={"project_id": project_id})
    return story


def list_flagged_stories(project_id: int, limit: int = 200) -> list[FlaggedStory]:
    stmt = (
        select(FlaggedStory)
        .where(FlaggedStory.project_id == project_id)
        .order_by(FlaggedStory.flagged_at.desc(), FlaggedStory.id.desc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


def get_stories_for_clustering(
    project_id: int,
    *,
    window_days: int | None = None,
    categories: list[str] | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Flagged stories inside the lookback window, newest first."""
    window_days = window_days if window_days is not None else _cfg("TOPIC_TIME_WINDOW_DAYS", 7)
    limit = limit if limit is not None else _cfg("TOPIC_STORY_LIMIT", 50)
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)

    stmt = select(FlaggedStory).where(
        FlaggedStory.project_id == project_id,
        FlaggedStory.flagged_at >= cutoff,
    )
    if categories:
        stmt = stmt.where(FlaggedStory.category.in_(categories))
    stmt = stmt.order_by(FlaggedStory.flagged_at.desc(), FlaggedStory.id.desc()).limit(limit)

    return [_story_dict(s) for s in db.session.execute(stmt).scalars()]


# ── Cluster preview ──────────────────────────────────────────────────────────


def _load_clusters(project_id, profile, stories, provider, force_refresh) -> tuple[list[dict], bool]:
    digest = cache_service.stories_hash(stories)
    if not force_refresh:
        cached = cache_service.get_cached_clusters(project_id, profile.id, digest)
        if cached is not None:
            return cached, True

    raw = provider.cluster_stories(stories, profile.to_dict())
    clusters = duplicate_detector.normalize_clusters(raw, [s["id"] for s in stories])
    cache_service.set_cached_clusters(
        project_id, profile.id, digest, clusters, ttl=_cfg("CLUSTER_CACHE_TTL", 300),
    )
    return clusters, False


def preview_clusters(
    project_id: int,
    audience_profile_id: int,
    *,
    force_refresh: bool = False,
    categories: list[str] | None = None,
    provider=None,
) -> dict:
    """
    Cluster the project's recent flagged stories for an audience.

    Returns {stories, clusters, from_cache, message?}. Each cluster carries
    its index (``cluster_id``), its stories and ``similar_proposals``.
    """
    _require_project(project_id)
    profile = _require_audience(project_id, audience_profile_id)
    stories = get_stories_for_clustering(project_id, categories=categories)

    if len(stories) < MIN_STORIES_TO_CLUSTER:
        return {
            "stories": stories,
            "clusters": [],
            "from_cache": False,
            "message": f"Found {len(stories)} flagged stories. Need at least "
                       f"{MIN_STORIES_TO_CLUSTER} to cluster.",
        }

    clusters, from_cache = _load_clusters(
        project_id, profile, stories, provider or get_topic_provider(), force_refresh,
    )
    by_id = {s["id"]: s for s in stories}
    enriched = [
        {
            **cluster,
            "cluster_id": idx,
            "stories": [by_id[sid] for sid in cluster["story_ids"] if sid in by_id],
            "similar_proposals": duplicate_detector.find_similar_proposals(
                project_id, cluster["story_ids"],
            ),
        }
        for idx, cluster in enumerate(clusters)
    ]
    logger.info("Cluster preview project_id=%s stories=%d clusters=%d cache=%s",
                project_id, len(stories), len(enriched), from_cache,
                extra={"project_id": project_id})
    return {"stories": stories, "clusters": enriched, "from_cache": from_cache}


# ── Generation ───────────────────────────────────────────────────────────────


def generate_proposals(
    data: dict,
    auth: AuthorizationContext,
    provider=None,
    *,
    window_days: int | None = None,
    categories: list[str] | None = None,
    min_cluster_size: int = 1,
) -> list[TopicProposal]:
    """
    Draft one proposal per selected cluster.

    Args:
        data: project_id, audience_profile_id; optional duration_type,
              duration_seconds, comparison_regions[], cluster_ids[] (indices
              into the preview), max_proposals, generated_by.
        window_days, categories: story pool filters (config defaults).
        min_cluster_size: clusters with fewer stories are dropped before
              selection; only applied when no cluster_ids are given.

    Raises:
        ValidationError: too few stories, bad duration type, or no proposal
                         could be generated.
    """
    auth.require("generate_proposals")
    project_id = data.get("project_id")
    _require_project(project_id)
    profile = _require_audience(project_id, data.get("audience_profile_id"))

    for field in ("max_proposals", "duration_seconds"):
        if data.get(field) is not None and not is_int(data[field]):
            raise ValidationError(f"{field} must be an integer", details={field: "Invalid"})

    duration_type = data.get("duration_type") or "standard"
    if duration_type not in DURATION_CONFIG:
        raise ValidationError(
            f"duration_type must be one of: {', '.join(sorted(DURATION_CONFIG))}",
            details={"duration_type": "Invalid"},
        )
    duration_seconds = resolve_duration_seconds(duration_type, data.get("duration_seconds"))
    regions = [str(r) for r in (data.get("comparison_regions") or [])]
    max_proposals = data.get("max_proposals") or _cfg("TOPIC_MAX_PROPOSALS", 5)

    stories = get_stories_for_clustering(project_id, window_days=window_days, categories=categories)
    if len(stories) < MIN_STORIES_TO_CLUSTER:
        raise ValidationError(
            f"Need at least {MIN_STORIES_TO_CLUSTER} flagged stories to generate proposals",
            details={"stories": len(stories)},
        )

    provider = provider or get_topic_provider()
    clusters, _ = _load_clusters(project_id, profile, stories, provider, force_refresh=False)
    if data.get("cluster_ids") is None and min_cluster_size > 1:
        clusters = [c for c in clusters if len(c["story_ids"]) >= min_cluster_size]
    selected = duplicate_detector.select_clusters(clusters, data.get("cluster_ids"), max_proposals)
    by_id = {s["id"]: s for s in stories}
    audience = profile.to_dict()

    created = []
    for cluster in selected:
        cluster_stories = [by_id[sid] for sid in cluster["story_ids"] if sid in by_id]
        try:
            generated = provider.generate_proposal(
                cluster, cluster_stories, audience, duration_type, duration_seconds, regions,
            )
            proposal = TopicProposal(
                project_id=project_id,
                audience_profile_id=profile.id,
                title=str(generated["title"])[:500],
                hook=generated.get("hook"),
                audience_care_statement=generated.get("audience_care_statement"),
                talking_points=generated.get("talking_points") or [],
                research_citations=generated.get("research_suggestions") or [],
                source_story_ids=list(cluster["story_ids"]),
                comparison_regions=regions,
                cluster_theme=cluster["theme"],
                cluster_keywords=cluster["keywords"],
                duration_type=duration_type,
                duration_seconds=duration_seconds,
                status="draft",
                generated_by=data.get("generated_by") or "manual",
            )
            db.session.add(proposal)
            db.session.commit()
            created.append(proposal)
        except Exception:
            db.session.rollback()
            logger.exception("Proposal generation failed for cluster '%s'", cluster.get("theme"),
                             extra={"project_id": project_id})

    if not created:
        raise ValidationError("No topic proposals could be generated",
                              details={"clusters_attempted": len(selected)})

    logger.info("Generated %d/%d proposals project_id=%s", len(created), len(selected), project_id,
                extra={"project_id": project_id})
    return created


# ── Proposal CRUD ────────────────────────────────────────────────────────────


def list_proposals(project_id: int, status: str | None = None) -> list[TopicProposal]:
    stmt = select(TopicProposal).where(TopicProposal.project_id == project_id)
    if status:
        if status not in PROPOSAL_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": "Invalid"})
        stmt = stmt.where(TopicProposal.status == status)
    stmt = stmt.order_by(TopicProposal.created_at.desc(), TopicProposal.id.desc())
    return list(db.session.execute(stmt).scalars())


def get_proposal(proposal_id: int) -> TopicProposal:
    proposal = db.session.get(TopicProposal, proposal_id)
    if proposal is None:
        raise NotFoundError(resource="TopicProposal", resource_id=proposal_id)
    return proposal


def update_proposal(proposal_id: int, data: dict, auth: AuthorizationContext) -> TopicProposal:
    auth.require("generate_proposals")
    proposal = get_proposal(proposal_id)
    if data.get("duration_seconds") is not None and not is_int(data["duration_seconds"]):
        raise ValidationError("duration_seconds must be an integer",
                              details={"duration_seconds": "Invalid"})
    for field in _EDITABLE_FIELDS:
        if field in data:
            setattr(proposal, field, data[field])
    if "title" in data and not (proposal.title or "").strip():
        raise ValidationError("title cannot be empty", details={"title": "Required"})
    if proposal.duration_type not in DURATION_CONFIG:
        raise ValidationError("Invalid duration_type", details={"duration_type": "Invalid"})
    if "status" in data and data["status"] != proposal.status:
        _transition(proposal, data["status"], auth)
    db.session.commit()
    logger.info("Proposal updated id=%s", proposal.id, extra={"project_id": proposal.project_id})
    return proposal


def _transition(proposal: TopicProposal, new_status: str, auth: AuthorizationContext) -> str:
    old = proposal.status
    if new_status not in PROPOSAL_STATUSES:
        raise ValidationError(f"Unknown status {new_status!r}", details={"status": "Invalid"})
    if not validate_proposal_transition(old, new_status):
        raise InvalidTransition("TopicProposal", old, new_status)
    proposal.status = new_status
    if new_status in ("reviewed", "approved", "rejected"):
        proposal.reviewed_by = auth.user_id
        proposal.reviewed_at = datetime.now(timezone.utc)
    return old


def set_proposal_status(proposal_id: int, new_status: str, auth: AuthorizationContext) -> TopicProposal:
    auth.require("generate_proposals")
    proposal = get_proposal(proposal_id)
    old = _transition(proposal, new_status, auth)
    db.session.commit()
    logger.info("Proposal %s: %s -> %s", proposal.id, old, new_status,
                extra={"project_id": proposal.project_id})
    return proposal


def schedule_proposal(proposal_id: int, data: dict, auth: AuthorizationContext):
    """Turn an approved proposal into a scheduled episode."""
    proposal = get_proposal(proposal_id)
    if proposal.status != "approved":
        raise InvalidTransition("TopicProposal", proposal.status, "scheduled")
    if proposal.linked_episode_id:
        raise ValidationError(
            "Proposal is already scheduled",
            details={"linked_episode_id": proposal.linked_episode_id},
        )
    payload = dict(data)
    payload["project_id"] = proposal.project_id
    payload["topic_proposal_id"] = proposal.id
    payload.setdefault("title", proposal.title)
    return episode_service.schedule_episode(payload, auth)


# ── Re-synthesis ─────────────────────────────────────────────────────────────


def _merge_citations(existing: list, new: list) -> list:
    """Append new research items, skipping ones already present (by url, else query)."""
    def key(item):
        if isinstance(item, dict):
            return item.get("url") or item.get("query") or repr(sorted(item.items()))
        return repr(item)

    merged = list(existing or [])
    seen = {key(item) for item in merged}
    for item in new or []:
        if key(item) not in seen:
            merged.append(item)
            seen.add(key(item))
    return merged


def _resynthesis_audience(proposal: TopicProposal) -> AudienceProfile | None:
    if proposal.audience_profile_id:
        profile = db.session.get(AudienceProfile, proposal.audience_profile_id)
        if profile is not None:
            return profile
    default_id = topic_settings_service.effective_settings(proposal.project_id)["default_audience_profile_id"]
    if default_id:
        return db.session.get(AudienceProfile, default_id)
    return db.session.execute(
        select(AudienceProfile)
        .where(AudienceProfile.project_id == proposal.project_id)
        .order_by(AudienceProfile.id)
    ).scalars().first()


def resynthesize_proposal(proposal_id: int, auth: AuthorizationContext, provider=None) -> TopicProposal:
    """
    Regenerate title, hook, audience statement and talking points from the
    proposal's source stories. Status, cluster and story links are unchanged;
    new research suggestions are merged into the existing citations.

    Raises:
        ValidationError: no source stories or audience profile left, or the
                         provider reply could not be used.
    """
    auth.require("generate_proposals")
    proposal = get_proposal(proposal_id)

    story_ids = sorted(proposal.story_id_set())
    stories = []
    if story_ids:
        stmt = (
            select(FlaggedStory)
            .where(FlaggedStory.project_id == proposal.project_id, FlaggedStory.id.in_(story_ids))
            .order_by(FlaggedStory.id)
        )
        stories = [_story_dict(s) for s in db.session.execute(stmt).scalars()]
    if not stories:
        raise ValidationError("No source stories available for re-synthesis",
                              details={"source_story_ids": story_ids})

    profile = _resynthesis_audience(proposal)
    if profile is None:
        raise ValidationError("No audience profile available for re-synthesis",
                              details={"audience_profile_id": proposal.audience_profile_id})

    cluster = {
        "theme": proposal.cluster_theme or proposal.title,
        "keywords": proposal.cluster_keywords or [],
        "story_ids": [s["id"] for s in stories],
        "relevance_score": 100,
        "audience_relevance": proposal.audience_care_statement or "",
    }
    duration_seconds = resolve_duration_seconds(proposal.duration_type, proposal.duration_seconds)
    provider = provider or get_topic_provider()
    try:
        generated = provider.generate_proposal(
            cluster, stories, profile.to_dict(), proposal.duration_type, duration_seconds,
            proposal.comparison_regions or [],
        )
    except ProviderResponseError as exc:
        logger.warning("Re-synthesis failed proposal_id=%s: %s", proposal.id, exc,
                       extra={"project_id": proposal.project_id})
        raise ValidationError("Re-synthesis failed: provider reply was unusable",
                              details={"provider": str(exc)}) from exc

    proposal.title = str(generated["title"])[:500]
    proposal.hook = generated.get("hook")
    proposal.audience_care_statement = generated.get("audience_care_statement")
    proposal.talking_points = generated.get("talking_points") or []
    proposal.research_citations = _merge_citations(
        proposal.research_citations, generated.get("research_suggestions"),
    )
    db.session.commit()
    logger.info("Proposal re-synthesized id=%s stories=%d", proposal.id, len(stories),
                extra={"project_id": proposal.project_id})
    return proposal


# ── Auto-generation (cron entry point) ───────────────────────────────────────


def _auto_audience(project_id: int, settings: dict) -> AudienceProfile | None:
    default_id = settings.get("default_audience_profile_id")
    if default_id:
        profile = db.session.get(AudienceProfile, default_id)
        if profile is not None and profile.project_id == project_id:
            return profile
        return None
    return db.session.execute(
        select(AudienceProfile)
        .where(AudienceProfile.project_id == project_id)
        .order_by(AudienceProfile.id)
    ).scalars().first()


def auto_generate_topics(provider=None) -> dict:
    """
    Run generation for every project whose generator settings allow it.

    Each project uses its own window, focus categories, minimum cluster
    size, cap, default duration, comparison regions and default audience
    (first profile when none is set). Projects without a settings row run
    with the defaults. Returns per-run outcome counts.
    """
    provider = provider or get_topic_provider()
    auth = system_context()
    results = {"projects": 0, "proposals": 0, "skipped": 0, "failed": 0}

    for project in db.session.execute(select(Project).order_by(Project.id)).scalars():
        settings = topic_settings_service.effective_settings(project.id)
        if not settings["auto_generation_enabled"]:
            results["skipped"] += 1
            continue

        stories = get_stories_for_clustering(
            project.id,
            window_days=settings["time_window_days"],
            categories=settings["focus_categories"] or None,
        )
        min_stories = max(MIN_STORIES_TO_CLUSTER, settings["min_stories_for_cluster"])
        profile = _auto_audience(project.id, settings)
        if len(stories) < min_stories or profile is None:
            results["skipped"] += 1
            logger.info("Auto-generation skipped project_id=%s stories=%d audience=%s",
                        project.id, len(stories), bool(profile), extra={"project_id": project.id})
            continue

        results["projects"] += 1
        try:
            created = generate_proposals(
                {
                    "project_id": project.id,
                    "audience_profile_id": profile.id,
                    "duration_type": settings["default_duration_type"],
                    "duration_seconds": settings["default_duration_seconds"],
                    "comparison_regions": settings["comparison_regions"],
                    "max_proposals": settings["max_proposals_per_run"],
                    "generated_by": "auto",
                },
                auth,
                provider=provider,
                window_days=settings["time_window_days"],
                categories=settings["focus_categories"] or None,
                min_cluster_size=settings["min_stories_for_cluster"],
            )
            results["proposals"] += len(created)
        except ValidationError as exc:
            results["failed"] += 1
            logger.warning("Auto-generation failed project_id=%s: %s", project.id, exc,
                           extra={"project_id": project.id})

    logger.info("Auto topic generation finished: %s", results)
    return results
