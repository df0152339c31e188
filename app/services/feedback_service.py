"""Threaded, version-anchored content feedback.

Rules:
  - Feedback is attached to one ContentVersion. Highlight offsets index into
    that version's body and are never re-anchored by later versions.
  - Replies hang off the thread root; a reply to a reply is re-parented to
    the root so threads stay one level deep.
  - Only revision_request items can be resolved; only top-level unresolved
    revision requests count as open.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NotFoundError, ResolveNotApplicable, ValidationError
from app.models import db
from app.models.content import FEEDBACK_TYPES, ContentFeedback, ContentVersion, EpisodeContent

logger = logging.getLogger(__name__)


def get_feedback(feedback_id: int) -> ContentFeedback:
    fb = db.session.get(ContentFeedback, feedback_id)
    if fb is None:
        raise NotFoundError(resource="ContentFeedback", resource_id=feedback_id)
    return fb


def _validate_highlight(version: ContentVersion, start, end) -> str | None:
    """Return the highlighted text, or None when no range was given."""
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise ValidationError(
            "highlight_start and highlight_end must be given together",
            details={"highlight": "Both bounds required"},
        )
    if isinstance(start, bool) or isinstance(end, bool) or not isinstance(start, int) or not isinstance(end, int):
        raise ValidationError("Highlight bounds must be integers", details={"highlight": "Invalid"})
    if not 0 <= start <= end <= len(version.body):
        raise ValidationError(
            f"Highlight range {start}..{end} is outside version {version.version_number}",
            details={"highlight": f"Must satisfy 0 <= start <= end <= {len(version.body)}"},
        )
    return version.body[start:end]


def add_feedback(
    content_id: int,
    data: dict,
    auth: AuthorizationContext,
) -> ContentFeedback:
    """
    Create a comment, revision request or approval note.

    Args:
        data: version_id, comment, feedback_type (default "comment"); optional
              highlight_start, highlight_end, parent_feedback_id.
        auth: acting user; ``is_client`` marks client feedback.

    Raises:
        ValidationError: empty comment, unknown type, bad highlight range, or
                         a version/parent from another content.
    """
    auth.require("comment")
    content = db.session.get(EpisodeContent, content_id)
    if content is None:
        raise NotFoundError(resource="EpisodeContent", resource_id=content_id)

    comment = (data.get("comment") or "").strip()
    if not comment:
        raise ValidationError("comment is required", details={"comment": "Required"})
    feedback_type = data.get("feedback_type") or "comment"
    if feedback_type not in FEEDBACK_TYPES:
        raise ValidationError(
            f"feedback_type must be one of: {', '.join(sorted(FEEDBACK_TYPES))}",
            details={"feedback_type": "Invalid"},
        )

    version = db.session.get(ContentVersion, data.get("version_id")) if data.get("version_id") else None
    if version is None or version.content_id != content.id:
        raise ValidationError("version_id must reference a version of this content",
                              details={"version_id": "Invalid"})

    parent_id = data.get("parent_feedback_id")
    if parent_id:
        parent = db.session.get(ContentFeedback, parent_id)
        if parent is None or parent.content_id != content.id:
            raise ValidationError("parent_feedback_id must reference feedback on this content",
                                  details={"parent_feedback_id": "Invalid"})
        if parent.parent_feedback_id is not None:
            parent_id = parent.parent_feedback_id

    start, end = data.get("highlight_start"), data.get("highlight_end")
    highlighted_text = _validate_highlight(version, start, end)

    fb = ContentFeedback(
        content_id=content.id,
        version_id=version.id,
        parent_feedback_id=parent_id or None,
        comment=comment,
        feedback_type=feedback_type,
        highlight_start=start,
        highlight_end=end,
        highlighted_text=highlighted_text,
        author_user_id=auth.user_id,
        is_client_feedback=auth.is_client,
    )
    db.session.add(fb)
    db.session.commit()

    logger.info(
        "Feedback added id=%s content_id=%s type=%s reply=%s",
        fb.id, content.id, feedback_type, bool(parent_id),
        extra={"episode_id": content.episode_id, "content_id": content.id},
    )
    return fb


def list_feedback(
    content_id: int,
    *,
    version_id: int | None = None,
    unresolved_only: bool = False,
) -> list[dict]:
    """Top-level items (oldest first) with their replies nested."""
    stmt = select(ContentFeedback).where(
        ContentFeedback.content_id == content_id,
        ContentFeedback.parent_feedback_id.is_(None),
    )
    if version_id is not None:
        stmt = stmt.where(ContentFeedback.version_id == version_id)
    if unresolved_only:
        stmt = stmt.where(
            ContentFeedback.feedback_type == "revision_request",
            ContentFeedback.is_resolved.is_(False),
        )
    stmt = stmt.order_by(ContentFeedback.created_at.asc(), ContentFeedback.id.asc())
    return [fb.to_dict(include_replies=True) for fb in db.session.execute(stmt).scalars()]


def resolve_feedback(feedback_id: int, auth: AuthorizationContext) -> ContentFeedback:
    """Mark a revision request resolved. Any other type raises ResolveNotApplicable."""
    auth.require("resolve_feedback")
    fb = get_feedback(feedback_id)
    if fb.feedback_type != "revision_request":
        raise ResolveNotApplicable(fb.id, fb.feedback_type)
    fb.is_resolved = True
    fb.resolved_at = datetime.now(timezone.utc)
    fb.resolved_by = auth.user_id
    db.session.commit()
    logger.info("Feedback resolved id=%s by %s", fb.id, auth.user_id,
                extra={"content_id": fb.content_id})
    return fb


def unresolve_feedback(feedback_id: int, auth: AuthorizationContext) -> ContentFeedback:
    """Re-open a resolved revision request."""
    auth.require("resolve_feedback")
    fb = get_feedback(feedback_id)
    if fb.feedback_type != "revision_request":
        raise ResolveNotApplicable(fb.id, fb.feedback_type)
    fb.is_resolved = False
    fb.resolved_at = None
    fb.resolved_by = None
    db.session.commit()
    logger.info("Feedback re-opened id=%s", fb.id, extra={"content_id": fb.content_id})
    return fb
