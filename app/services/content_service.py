"""Episode content service: version store and approval state machine.

Design decisions:
    - ContentVersion rows are APPEND-ONLY. current_version on the parent is
      the only counter and is bumped in the same flush as the insert.
    - Reading never creates rows; only save_content_version writes history.
    - Editing is allowed in any status except ``locked``, including while
      ``in_review``.
    - Adding a revision_request does not move content to needs_revision;
      request_revisions() is the explicit transition.
    - Submit with a pending edit is two steps (save, then transition). A
      failure between them leaves the new version saved and the status
      unchanged; retrying submit alone is safe.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.core.authorization import AuthorizationContext
from app.core.exceptions import (
    ConflictError,
    ContentLocked,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.content import (
    CONTENT_TRANSITIONS,
    CONTENT_TYPES,
    ContentFeedback,
    ContentVersion,
    EpisodeContent,
    count_words,
)
from app.models.production import Episode
from app.utils.helpers import is_int

logger = logging.getLogger(__name__)


# ── Private helpers ──────────────────────────────────────────────────────────


def _check_content_type(content_type: str) -> None:
    if content_type not in CONTENT_TYPES:
        raise ValidationError(
            f"content_type must be one of: {', '.join(sorted(CONTENT_TYPES))}",
            details={"content_type": f"Unknown value {content_type!r}"},
        )


def _require_episode(episode_id: int) -> Episode:
    episode = db.session.get(Episode, episode_id)
    if episode is None:
        raise NotFoundError(resource="Episode", resource_id=episode_id)
    return episode


def find_content(episode_id: int, content_type: str) -> EpisodeContent | None:
    _check_content_type(content_type)
    return db.session.execute(
        select(EpisodeContent).where(
            EpisodeContent.episode_id == episode_id,
            EpisodeContent.content_type == content_type,
        )
    ).scalar_one_or_none()


def require_content(episode_id: int, content_type: str) -> EpisodeContent:
    content = find_content(episode_id, content_type)
    if content is None:
        raise NotFoundError(resource="EpisodeContent", resource_id=f"{episode_id}/{content_type}")
    return content


def _apply_transition(content: EpisodeContent, action: str) -> str:
    rule = CONTENT_TRANSITIONS[action]
    old = content.status
    if old not in rule["from"]:
        raise InvalidTransition("EpisodeContent", old, rule["to"])
    content.status = rule["to"]
    return old


def count_unresolved_feedback(content_id: int) -> int:
    """Top-level, unresolved revision requests across all versions."""
    return db.session.execute(
        select(func.count(ContentFeedback.id)).where(
            ContentFeedback.content_id == content_id,
            ContentFeedback.parent_feedback_id.is_(None),
            ContentFeedback.feedback_type == "revision_request",
            ContentFeedback.is_resolved.is_(False),
        )
    ).scalar() or 0


# ── Version store ────────────────────────────────────────────────────────────


def save_content_version(
    episode_id: int,
    content_type: str,
    data: dict,
    auth: AuthorizationContext,
) -> tuple[EpisodeContent, ContentVersion]:
    """
    Append a new version, creating the content row on first save.

    Args:
        data: body (required); optional title, change_summary and
              expected_version (stale value raises ConflictError).

    Raises:
        ContentLocked:  content is locked; current_version is unchanged.
        ConflictError:  expected_version does not match current_version, or a
                        concurrent writer took the same version number.
    """
    auth.require("edit_content")
    _check_content_type(content_type)
    _require_episode(episode_id)

    body = data.get("body")
    if not isinstance(body, str):
        raise ValidationError("body is required", details={"body": "Required"})

    content = find_content(episode_id, content_type)
    if content is None:
        content = EpisodeContent(
            episode_id=episode_id,
            content_type=content_type,
            current_version=0,
            status="draft",
            created_by=auth.user_id,
        )
        db.session.add(content)
        db.session.flush()

    if content.is_locked:
        raise ContentLocked(content.id)

    expected = data.get("expected_version")
    if expected is not None and not is_int(expected):
        raise ValidationError("expected_version must be an integer",
                              details={"expected_version": "Invalid"})
    if expected is not None and expected != content.current_version:
        raise ConflictError(
            "EpisodeContent", "current_version", content.current_version,
            message=(
                f"Content was changed by someone else: expected version {expected}, "
                f"current is {content.current_version}"
            ),
        )

    next_number = content.current_version + 1
    version = ContentVersion(
        content_id=content.id,
        version_number=next_number,
        title=data.get("title"),
        body=body,
        word_count=count_words(body),
        change_summary=data.get("change_summary"),
        created_by=auth.user_id,
    )
    content.current_version = next_number
    db.session.add(version)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("ContentVersion", "version_number", next_number) from exc

    logger.info(
        "Content version saved content_id=%s v%d words=%d",
        content.id, next_number, version.word_count,
        extra={"episode_id": content.episode_id, "content_id": content.id},
    )
    return content, version


def get_episode_content(episode_id: int, content_type: str) -> dict:
    """Latest version, every version (newest first) and the open-feedback count."""
    _require_episode(episode_id)
    content = find_content(episode_id, content_type)
    if content is None:
        return {"content": None, "latest_version": None, "versions": [], "unresolved_feedback_count": 0}

    versions = list_versions(content)
    return {
        "content": content.to_dict(),
        "latest_version": versions[0].to_dict() if versions else None,
        "versions": [v.to_dict(include_body=False) for v in versions],
        "unresolved_feedback_count": count_unresolved_feedback(content.id),
    }


def list_versions(content: EpisodeContent) -> list[ContentVersion]:
    stmt = (
        select(ContentVersion)
        .where(ContentVersion.content_id == content.id)
        .order_by(ContentVersion.version_number.desc())
    )
    return list(db.session.execute(stmt).scalars())


def get_content_version(episode_id: int, content_type: str, version_number: int) -> ContentVersion:
    content = require_content(episode_id, content_type)
    version = db.session.execute(
        select(ContentVersion).where(
            ContentVersion.content_id == content.id,
            ContentVersion.version_number == version_number,
        )
    ).scalar_one_or_none()
    if version is None:
        raise NotFoundError(resource="ContentVersion", resource_id=version_number)
    return version


# ── Approval state machine ───────────────────────────────────────────────────


def submit_for_review(
    episode_id: int,
    content_type: str,
    auth: AuthorizationContext,
    pending_edit: dict | None = None,
) -> EpisodeContent:
    """
    draft | needs_revision → in_review.

    A ``pending_edit`` (same shape as a save) is saved first. Requires at
    least one version to exist.
    """
    auth.require("submit_content")
    if pending_edit and pending_edit.get("body") is not None:
        save_content_version(episode_id, content_type, pending_edit, auth)

    content = require_content(episode_id, content_type)
    if content.is_locked:
        raise ContentLocked(content.id)
    if content.current_version < 1:
        raise ValidationError("Save at least one version before submitting for review")

    old = _apply_transition(content, "submit")
    db.session.commit()
    logger.info("Content %s: %s -> in_review", content.id, old,
                extra={"episode_id": content.episode_id, "content_id": content.id})
    return content


def request_revisions(episode_id: int, content_type: str, auth: AuthorizationContext) -> EpisodeContent:
    """in_review → needs_revision."""
    auth.require("request_revisions")
    content = require_content(episode_id, content_type)
    old = _apply_transition(content, "request_revisions")
    db.session.commit()
    logger.info("Content %s: %s -> needs_revision", content.id, old,
                extra={"episode_id": content.episode_id, "content_id": content.id})
    return content


def approve_content(episode_id: int, content_type: str, auth: AuthorizationContext) -> EpisodeContent:
    """in_review → approved; stamps approved_at/by."""
    auth.require("approve_content")
    content = require_content(episode_id, content_type)
    old = _apply_transition(content, "approve")
    content.approved_at = datetime.now(timezone.utc)
    content.approved_by = auth.user_id
    db.session.commit()
    logger.info("Content %s: %s -> approved by %s", content.id, old, auth.user_id,
                extra={"episode_id": content.episode_id, "content_id": content.id})
    return content


def lock_content(episode_id: int, content_type: str, auth: AuthorizationContext) -> EpisodeContent:
    """approved → locked. Terminal: no further versions, no override."""
    auth.require("lock_content")
    content = require_content(episode_id, content_type)
    if content.is_locked:
        raise ContentLocked(content.id)
    old = _apply_transition(content, "lock")
    content.locked_at = datetime.now(timezone.utc)
    content.locked_by = auth.user_id
    db.session.commit()
    logger.info("Content %s: %s -> locked by %s", content.id, old, auth.user_id,
                extra={"episode_id": content.episode_id, "content_id": content.id})
    return content
