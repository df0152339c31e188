"""
Content Operations Dashboard
Episode content models: scripts and articles with version history and feedback.

Models:
    - EpisodeContent:   one video script or article per episode, approval-gated
    - ContentVersion:   append-only body snapshot; never updated or deleted
    - ContentFeedback:  threaded comment / revision request anchored to a version

Lifecycle states:
    EpisodeContent:  draft | needs_revision → in_review  (submit)
                     in_review → needs_revision          (request_revisions)
                     in_review → approved                (approve)
                     approved → locked                   (lock, terminal)

Business rules:
    - version_number per content is gap-free, starts at 1 and is never reused.
    - A locked content accepts no further versions.
    - Only top-level, unresolved revision_request feedback counts as open.
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CONTENT_TYPES = {"video_script", "article"}

CONTENT_STATUSES = {"draft", "in_review", "needs_revision", "approved", "locked"}

FEEDBACK_TYPES = {"comment", "revision_request", "approval"}

CONTENT_TRANSITIONS = {
    "submit":            {"from": ["draft", "needs_revision"], "to": "in_review"},
    "request_revisions": {"from": ["in_review"], "to": "needs_revision"},
    "approve":           {"from": ["in_review"], "to": "approved"},
    "lock":              {"from": ["approved"], "to": "locked"},
}


def _utcnow():
    return datetime.now(timezone.utc)


def count_words(body: str | None) -> int:
    """Count whitespace-delimited, non-empty tokens."""
    return len((body or "").split())


class EpisodeContent(db.Model):
    """Versioned, approval-gated script or article for an episode."""

    __tablename__ = "episode_content"

    id = db.Column(db.Integer, primary_key=True)
    episode_id = db.Column(
        db.Integer,
        db.ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content_type = db.Column(db.String(20), nullable=False,
                             comment="video_script | article")
    current_version = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="draft")

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(100), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.String(100), nullable=True)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    versions = db.relationship(
        "ContentVersion",
        backref="content",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="ContentVersion.version_number.desc()",
    )
    feedback = db.relationship(
        "ContentFeedback",
        backref="content",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("episode_id", "content_type", name="uq_episode_content_type"),
    )

    @property
    def is_locked(self) -> bool:
        return self.status == "locked"

    def to_dict(self):
        return {
            "id": self.id,
            "episode_id": self.episode_id,
            "content_type": self.content_type,
            "current_version": self.current_version,
            "status": self.status,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approved_by": self.approved_by,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "locked_by": self.locked_by,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<EpisodeContent {self.id}: {self.content_type} v{self.current_version} [{self.status}]>"


class ContentVersion(db.Model):
    """
    Immutable body snapshot.

    Rows are only ever inserted. (content_id, version_number) is unique so a
    concurrent writer that computed the same next number fails at the DB.
    """

    __tablename__ = "episode_content_versions"

    id = db.Column(db.Integer, primary_key=True)
    content_id = db.Column(
        db.Integer,
        db.ForeignKey("episode_content.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(500), nullable=True)
    body = db.Column(db.Text, nullable=False)
    word_count = db.Column(db.Integer, nullable=False, default=0)
    change_summary = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("content_id", "version_number", name="uq_content_version_number"),
    )

    def to_dict(self, include_body=True):
        d = {
            "id": self.id,
            "content_id": self.content_id,
            "version_number": self.version_number,
            "title": self.title,
            "word_count": self.word_count,
            "change_summary": self.change_summary,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_body:
            d["body"] = self.body
        return d

    def __repr__(self):
        return f"<ContentVersion {self.id}: content={self.content_id} v{self.version_number}>"


class ContentFeedback(db.Model):
    """Comment, revision request or approval note on one content version.

    highlight_start/end index into the body of ``version_id`` as it was when
    the feedback was written; later versions never re-anchor them.
    """

    __tablename__ = "episode_content_feedback"

    id = db.Column(db.Integer, primary_key=True)
    content_id = db.Column(
        db.Integer,
        db.ForeignKey("episode_content.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_id = db.Column(
        db.Integer,
        db.ForeignKey("episode_content_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_feedback_id = db.Column(
        db.Integer,
        db.ForeignKey("episode_content_feedback.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    comment = db.Column(db.Text, nullable=False)
    feedback_type = db.Column(db.String(20), nullable=False, default="comment")

    highlight_start = db.Column(db.Integer, nullable=True)
    highlight_end = db.Column(db.Integer, nullable=True)
    highlighted_text = db.Column(db.Text, nullable=True)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(100), nullable=True)

    author_user_id = db.Column(db.String(100), nullable=False)
    is_client_feedback = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    replies = db.relationship(
        "ContentFeedback",
        backref=db.backref("parent", remote_side=[id]),
        lazy="select",
        cascade="all, delete-orphan",
        order_by="ContentFeedback.id",
    )

    __table_args__ = (
        db.Index("ix_feedback_content_resolved", "content_id", "is_resolved"),
    )

    def to_dict(self, include_replies=False):
        d = {
            "id": self.id,
            "content_id": self.content_id,
            "version_id": self.version_id,
            "parent_feedback_id": self.parent_feedback_id,
            "comment": self.comment,
            "feedback_type": self.feedback_type,
            "highlight_start": self.highlight_start,
            "highlight_end": self.highlight_end,
            "highlighted_text": self.highlighted_text,
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "author_user_id": self.author_user_id,
            "is_client_feedback": self.is_client_feedback,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_replies:
            d["replies"] = [r.to_dict() for r in self.replies]
        return d

    def __repr__(self):
        return f"<ContentFeedback {self.id}: {self.feedback_type} resolved={self.is_resolved}>"
