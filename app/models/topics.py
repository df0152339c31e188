"""
Content Operations Dashboard
Topic proposal models.

Models:
    - FlaggedStory:   news story an editor flagged as proposal material
    - TopicProposal:  AI-drafted topic built from one story cluster
    - ProposalComment:         threaded discussion on a proposal
    - TopicGeneratorSettings:  per-project knobs for the daily auto-generator

Lifecycle states:
    TopicProposal:  draft → reviewed | approved | rejected | archived
                    reviewed → approved | rejected | archived
                    approved → archived
                    rejected → draft | archived
                    archived → draft

Clusters themselves are derived on demand and never persisted.
"""

from datetime import datetime, timezone

from app.models import db


PROPOSAL_STATUSES = {"draft", "reviewed", "approved", "rejected", "archived"}

# Proposals in these states never count as duplicates of a new cluster.
INACTIVE_PROPOSAL_STATUSES = ("archived", "rejected")

DURATION_TYPES = {"short", "standard", "long", "custom"}

PROPOSAL_COMMENT_TYPES = {"internal", "client_feedback", "revision_request"}

PROPOSAL_TRANSITIONS = {
    "draft":    ["reviewed", "approved", "rejected", "archived"],
    "reviewed": ["approved", "rejected", "archived"],
    "approved": ["archived"],
    "rejected": ["draft", "archived"],
    "archived": ["draft"],
}


def validate_proposal_transition(old_status, new_status):
    """Return True if TopicProposal status transition is valid."""
    return new_status in PROPOSAL_TRANSITIONS.get(old_status, [])


def _utcnow():
    return datetime.now(timezone.utc)


class FlaggedStory(db.Model):
    """A story flagged into the project's topic pool."""

    __tablename__ = "flagged_stories"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(500), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(50), nullable=True)
    source = db.Column(db.String(200), nullable=True)
    url = db.Column(db.String(1000), nullable=True)
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    flagged_by = db.Column(db.String(100), nullable=True)
    flagged_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "summary": self.summary,
            "category": self.category,
            "source": self.source,
            "url": self.url,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "flagged_by": self.flagged_by,
            "flagged_at": self.flagged_at.isoformat() if self.flagged_at else None,
        }

    def __repr__(self):
        return f"<FlaggedStory {self.id}: {self.title[:40]}>"


class TopicProposal(db.Model):
    """
    Topic proposal generated from a cluster of flagged stories.

    ``source_story_ids`` is copied verbatim from the originating cluster and
    is what duplicate detection compares against.
    ``linked_episode_id`` is a plain reference; Episode owns the FK.
    """

    __tablename__ = "topic_proposals"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    audience_profile_id = db.Column(
        db.Integer,
        db.ForeignKey("audience_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    title = db.Column(db.String(500), nullable=False)
    hook = db.Column(db.Text, nullable=True)
    audience_care_statement = db.Column(db.Text, nullable=True)
    talking_points = db.Column(db.JSON, default=list)
    research_citations = db.Column(db.JSON, default=list)
    source_story_ids = db.Column(db.JSON, default=list)
    comparison_regions = db.Column(db.JSON, default=list)
    cluster_theme = db.Column(db.String(300), nullable=True)
    cluster_keywords = db.Column(db.JSON, default=list)

    duration_type = db.Column(db.String(20), nullable=False, default="standard")
    duration_seconds = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    linked_episode_id = db.Column(db.Integer, nullable=True)
    scheduled_tx_date = db.Column(db.Date, nullable=True)

    generated_by = db.Column(db.String(20), nullable=False, default="manual",
                             comment="manual | auto")
    reviewed_by = db.Column(db.String(100), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def story_id_set(self) -> set[int]:
        return {int(s) for s in (self.source_story_ids or [])}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "audience_profile_id": self.audience_profile_id,
            "title": self.title,
            "hook": self.hook,
            "audience_care_statement": self.audience_care_statement,
            "talking_points": self.talking_points or [],
            "research_citations": self.research_citations or [],
            "source_story_ids": self.source_story_ids or [],
            "comparison_regions": self.comparison_regions or [],
            "cluster_theme": self.cluster_theme,
            "cluster_keywords": self.cluster_keywords or [],
            "duration_type": self.duration_type,
            "duration_seconds": self.duration_seconds,
            "status": self.status,
            "linked_episode_id": self.linked_episode_id,
            "scheduled_tx_date": self.scheduled_tx_date.isoformat() if self.scheduled_tx_date else None,
            "generated_by": self.generated_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TopicProposal {self.id}: {self.title[:40]} [{self.status}]>"


class ProposalComment(db.Model):
    """Comment on a topic proposal. Any type can be resolved."""

    __tablename__ = "proposal_comments"

    id = db.Column(db.Integer, primary_key=True)
    topic_proposal_id = db.Column(
        db.Integer,
        db.ForeignKey("topic_proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_comment_id = db.Column(
        db.Integer,
        db.ForeignKey("proposal_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    content = db.Column(db.Text, nullable=False)
    comment_type = db.Column(db.String(20), nullable=False, default="internal",
                             comment="internal | client_feedback | revision_request")

    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(100), nullable=True)

    author_user_id = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    replies = db.relationship(
        "ProposalComment",
        backref=db.backref("parent", remote_side=[id]),
        lazy="select",
        cascade="all, delete-orphan",
        order_by="ProposalComment.id",
    )

    def to_dict(self, include_replies=False):
        d = {
            "id": self.id,
            "topic_proposal_id": self.topic_proposal_id,
            "parent_comment_id": self.parent_comment_id,
            "content": self.content,
            "comment_type": self.comment_type,
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "author_user_id": self.author_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_replies:
            d["replies"] = [r.to_dict() for r in self.replies]
        return d

    def __repr__(self):
        return f"<ProposalComment {self.id}: {self.comment_type} resolved={self.is_resolved}>"


class TopicGeneratorSettings(db.Model):
    """
    Auto-generation settings, one row per project.

    A project without a row runs with the defaults from
    ``topic_settings_service.default_settings``.
    """

    __tablename__ = "topic_generator_settings"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    auto_generation_enabled = db.Column(db.Boolean, nullable=False, default=True)
    time_window_days = db.Column(db.Integer, nullable=False, default=7)
    min_stories_for_cluster = db.Column(db.Integer, nullable=False, default=2)
    max_proposals_per_run = db.Column(db.Integer, nullable=False, default=5)
    focus_categories = db.Column(db.JSON, default=list)
    comparison_regions = db.Column(db.JSON, default=list)
    default_duration_type = db.Column(db.String(20), nullable=False, default="standard")
    default_duration_seconds = db.Column(db.Integer, nullable=True)
    default_audience_profile_id = db.Column(
        db.Integer,
        db.ForeignKey("audience_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "auto_generation_enabled": self.auto_generation_enabled,
            "time_window_days": self.time_window_days,
            "min_stories_for_cluster": self.min_stories_for_cluster,
            "max_proposals_per_run": self.max_proposals_per_run,
            "focus_categories": self.focus_categories or [],
            "comparison_regions": self.comparison_regions or [],
            "default_duration_type": self.default_duration_type,
            "default_duration_seconds": self.default_duration_seconds,
            "default_audience_profile_id": self.default_audience_profile_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TopicGeneratorSettings project={self.project_id} enabled={self.auto_generation_enabled}>"
