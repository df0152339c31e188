"""Threaded comments on topic proposals.

Rules:
  - Replies hang off the thread root; a reply to a reply is re-parented to
    the root so threads stay one level deep.
  - Client users default to ``client_feedback``, everyone else to ``internal``.
  - Any comment type can be resolved and re-opened.
  - Authors may edit their own comments; editors may edit anyone's. Only the
    author or a project owner may delete.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from app.models import db
from app.models.topics import PROPOSAL_COMMENT_TYPES, ProposalComment, TopicProposal

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def get_comment(comment_id: int) -> ProposalComment:
    comment = db.session.get(ProposalComment, comment_id)
    if comment is None:
        raise NotFoundError(resource="ProposalComment", resource_id=comment_id)
    return comment


def _require_proposal(proposal_id: int) -> TopicProposal:
    proposal = db.session.get(TopicProposal, proposal_id)
    if proposal is None:
        raise NotFoundError(resource="TopicProposal", resource_id=proposal_id)
    return proposal


def _clean_content(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("content is required", details={"content": "Required"})
    content = value.strip()
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"content is limited to {MAX_COMMENT_LENGTH} characters",
                              details={"content": "Too long"})
    return content


def _check_type(comment_type: str) -> None:
    if comment_type not in PROPOSAL_COMMENT_TYPES:
        raise ValidationError(
            f"comment_type must be one of: {', '.join(sorted(PROPOSAL_COMMENT_TYPES))}",
            details={"comment_type": "Invalid"},
        )


def add_comment(proposal_id: int, data: dict, auth: AuthorizationContext) -> ProposalComment:
    """
    Args:
        data: content; optional comment_type, parent_comment_id.

    Raises:
        ValidationError: empty/oversized content, unknown type, or a parent
                         on another proposal.
    """
    auth.require("comment")
    proposal = _require_proposal(proposal_id)
    content = _clean_content(data.get("content"))
    comment_type = data.get("comment_type") or ("client_feedback" if auth.is_client else "internal")
    _check_type(comment_type)

    parent_id = data.get("parent_comment_id")
    if parent_id is not None:
        parent = db.session.get(ProposalComment, parent_id)
        if parent is None or parent.topic_proposal_id != proposal.id:
            raise ValidationError("parent_comment_id must reference a comment on this proposal",
                                  details={"parent_comment_id": "Invalid"})
        if parent.parent_comment_id is not None:
            parent_id = parent.parent_comment_id

    comment = ProposalComment(
        topic_proposal_id=proposal.id,
        parent_comment_id=parent_id,
        content=content,
        comment_type=comment_type,
        author_user_id=auth.user_id,
    )
    db.session.add(comment)
    db.session.commit()
    logger.info("Proposal comment added id=%s proposal_id=%s type=%s",
                comment.id, proposal.id, comment_type, extra={"project_id": proposal.project_id})
    return comment


def list_comments(proposal_id: int, *, unresolved_only: bool = False) -> list[dict]:
    """Thread roots (oldest first) with replies nested."""
    _require_proposal(proposal_id)
    stmt = select(ProposalComment).where(
        ProposalComment.topic_proposal_id == proposal_id,
        ProposalComment.parent_comment_id.is_(None),
    )
    if unresolved_only:
        stmt = stmt.where(ProposalComment.is_resolved.is_(False))
    stmt = stmt.order_by(ProposalComment.created_at.asc(), ProposalComment.id.asc())
    return [c.to_dict(include_replies=True) for c in db.session.execute(stmt).scalars()]


def count_comments(proposal_id: int) -> dict:
    _require_proposal(proposal_id)

    def _count(*conditions) -> int:
        return db.session.execute(
            select(func.count(ProposalComment.id)).where(
                ProposalComment.topic_proposal_id == proposal_id, *conditions,
            )
        ).scalar() or 0

    return {
        "total": _count(),
        "unresolved": _count(ProposalComment.is_resolved.is_(False)),
        "revision_requests": _count(
            ProposalComment.is_resolved.is_(False),
            ProposalComment.comment_type == "revision_request",
        ),
    }


def update_comment(comment_id: int, data: dict, auth: AuthorizationContext) -> ProposalComment:
    auth.require("comment")
    comment = get_comment(comment_id)
    if comment.author_user_id != auth.user_id and not auth.can("resolve_feedback"):
        raise PermissionDenied("edit_comment", role=auth.role)
    if "content" in data:
        comment.content = _clean_content(data["content"])
    if "comment_type" in data:
        _check_type(data["comment_type"])
        comment.comment_type = data["comment_type"]
    db.session.commit()
    logger.info("Proposal comment updated id=%s", comment.id)
    return comment


def delete_comment(comment_id: int, auth: AuthorizationContext) -> None:
    comment = get_comment(comment_id)
    if comment.author_user_id != auth.user_id and auth.role != "owner":
        raise PermissionDenied("delete_comment", role=auth.role)
    db.session.delete(comment)
    db.session.commit()
    logger.info("Proposal comment deleted id=%s by %s", comment_id, auth.user_id)


def resolve_comment(comment_id: int, auth: AuthorizationContext) -> ProposalComment:
    auth.require("resolve_feedback")
    comment = get_comment(comment_id)
    comment.is_resolved = True
    comment.resolved_at = datetime.now(timezone.utc)
    comment.resolved_by = auth.user_id
    db.session.commit()
    logger.info("Proposal comment resolved id=%s by %s", comment.id, auth.user_id)
    return comment


def unresolve_comment(comment_id: int, auth: AuthorizationContext) -> ProposalComment:
    auth.require("resolve_feedback")
    comment = get_comment(comment_id)
    comment.is_resolved = False
    comment.resolved_at = None
    comment.resolved_by = None
    db.session.commit()
    logger.info("Proposal comment re-opened id=%s", comment.id)
    return comment
