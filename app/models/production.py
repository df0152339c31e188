"""
Content Operations Dashboard
Production workflow models.

Models:
    - WorkflowTemplate:     named set of milestone offsets per timeline type
    - CalendarItem:         calendar entry owned by the calendar collaborator
    - Episode:              one scheduled deliverable pivoting on its TX date
    - ProductionMilestone:  dated checkpoint derived from TX date + day offset

Architecture:
    Project ──1:N──▶ WorkflowTemplate
    Project ──1:N──▶ Episode ──1:N──▶ ProductionMilestone
    Episode ──1:1──▶ CalendarItem
    TopicProposal ──1:1──▶ Episode

Lifecycle states:
    ProductionMilestone:  pending → in_progress → completed
                          pending | in_progress → skipped
                          (completed and skipped are terminal)

Overdue is never stored; it is derived at read time from status and
deadline_date (see app.services.milestone_calculator).
"""

from datetime import date, datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TIMELINE_TYPES = {"normal", "breaking_news", "emergency"}

MILESTONE_TYPES = {
    "topic_confirmation", "topic_approval",
    "script_deadline", "script_approval",
    "production_day", "post_production",
    "draft_1_review", "draft_2_review",
    "final_delivery", "custom",
}

MILESTONE_STATUSES = {"pending", "in_progress", "completed", "skipped"}

OPEN_MILESTONE_STATUSES = ("pending", "in_progress")

EPISODE_STATUSES = {
    "topic_pending", "topic_approved", "script_development", "script_review",
    "script_approved", "in_production", "post_production", "draft_review",
    "final_review", "delivered", "published", "cancelled",
}

CALENDAR_ITEM_STATUSES = {"scheduled", "cancelled"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

MILESTONE_TRANSITIONS = {
    "pending":     ["in_progress", "completed", "skipped"],
    "in_progress": ["completed", "skipped"],
    "completed":   [],
    "skipped":     [],
}


def validate_milestone_transition(old_status, new_status):
    """Return True if ProductionMilestone status transition is valid."""
    return new_status in MILESTONE_TRANSITIONS.get(old_status, [])


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# WorkflowTemplate
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowTemplate(db.Model):
    """
    Milestone offset template for one timeline type.

    ``milestone_offsets`` is an ordered JSON list of:
        {milestone_type, label, day_offset, time_of_day,
         is_client_facing, requires_client_approval}

    At most one template per (project, timeline_type) has is_default=True;
    the service layer clears sibling defaults when a new default is set.
    """

    __tablename__ = "workflow_templates"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    timeline_type = db.Column(
        db.String(20), nullable=False, default="normal",
        comment="normal | breaking_news | emergency",
    )
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    milestone_offsets = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_workflow_templates_project_timeline", "project_id", "timeline_type"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "timeline_type": self.timeline_type,
            "is_default": self.is_default,
            "milestone_offsets": list(self.milestone_offsets or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WorkflowTemplate {self.id}: {self.name} [{self.timeline_type}]>"


# ═════════════════════════════════════════════════════════════════════════════
# CalendarItem
# ═════════════════════════════════════════════════════════════════════════════


class CalendarItem(db.Model):
    """TX-date entry on the production calendar.

    Written only through app.integrations.calendar_gateway. ``episode_id`` is
    a plain reference (no FK) because Episode already points here.
    """

    __tablename__ = "calendar_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    episode_id = db.Column(db.Integer, nullable=True, index=True)
    title = db.Column(db.String(500), nullable=False)
    scheduled_date = db.Column(db.Date, nullable=False)
    scheduled_time = db.Column(db.String(5), nullable=True, comment="HH:MM")
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "episode_id": self.episode_id,
            "title": self.title,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "scheduled_time": self.scheduled_time,
            "status": self.status,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<CalendarItem {self.id}: {self.scheduled_date}>"


# ═════════════════════════════════════════════════════════════════════════════
# Episode
# ═════════════════════════════════════════════════════════════════════════════


class Episode(db.Model):
    """A scheduled piece of content; every milestone is derived from tx_date."""

    __tablename__ = "episodes"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    topic_proposal_id = db.Column(
        db.Integer,
        db.ForeignKey("topic_proposals.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    calendar_item_id = db.Column(
        db.Integer,
        db.ForeignKey("calendar_items.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("workflow_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    title = db.Column(db.String(500), nullable=False)
    episode_number = db.Column(db.Integer, nullable=True)
    tx_date = db.Column(db.Date, nullable=False)
    tx_time = db.Column(db.String(5), nullable=True, comment="HH:MM")
    timeline_type = db.Column(db.String(20), nullable=False, default="normal")
    production_status = db.Column(db.String(30), nullable=False, default="topic_pending")
    internal_notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    milestones = db.relationship(
        "ProductionMilestone",
        backref="episode",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="ProductionMilestone.sort_order",
    )

    __table_args__ = (
        db.Index("ix_episodes_project_tx", "project_id", "tx_date"),
    )

    def to_dict(self, include_milestones=False, today=None):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "topic_proposal_id": self.topic_proposal_id,
            "calendar_item_id": self.calendar_item_id,
            "template_id": self.template_id,
            "title": self.title,
            "episode_number": self.episode_number,
            "tx_date": self.tx_date.isoformat() if self.tx_date else None,
            "tx_time": self.tx_time,
            "timeline_type": self.timeline_type,
            "production_status": self.production_status,
            "internal_notes": self.internal_notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_milestones:
            d["milestones"] = [m.to_dict(today=today) for m in self.milestones]
        return d

    def __repr__(self):
        return f"<Episode {self.id}: {self.title} TX={self.tx_date}>"


# ═════════════════════════════════════════════════════════════════════════════
# ProductionMilestone
# ═════════════════════════════════════════════════════════════════════════════


class ProductionMilestone(db.Model):
    """
    Dated production checkpoint.

    deadline_date always equals episode.tx_date + day_offset for milestones
    that are still open; completed and skipped milestones keep the deadline
    they had when they closed.
    """

    __tablename__ = "production_milestones"

    id = db.Column(db.Integer, primary_key=True)
    episode_id = db.Column(
        db.Integer,
        db.ForeignKey("episodes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    milestone_type = db.Column(db.String(50), nullable=False)
    label = db.Column(db.String(100), nullable=True)
    day_offset = db.Column(db.Integer, nullable=False, default=0,
                           comment="Signed calendar days relative to TX date")
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    deadline_date = db.Column(db.Date, nullable=False)
    deadline_time = db.Column(db.String(5), nullable=True, comment="HH:MM")
    status = db.Column(db.String(20), nullable=False, default="pending")
    is_client_facing = db.Column(db.Boolean, nullable=False, default=False)
    requires_client_approval = db.Column(db.Boolean, nullable=False, default=False)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_milestones_episode_deadline", "episode_id", "deadline_date"),
        db.Index("ix_milestones_deadline_status", "deadline_date", "status"),
    )

    def is_overdue(self, today: date | None = None) -> bool:
        from app.services.milestone_calculator import is_overdue
        return is_overdue(self.status, self.deadline_date, today=today)

    def to_dict(self, today=None):
        from app.services.milestone_calculator import urgency

        return {
            "id": self.id,
            "episode_id": self.episode_id,
            "milestone_type": self.milestone_type,
            "label": self.label,
            "day_offset": self.day_offset,
            "deadline_date": self.deadline_date.isoformat() if self.deadline_date else None,
            "deadline_time": self.deadline_time,
            "status": self.status,
            "is_overdue": self.is_overdue(today),
            "urgency": urgency(self.status, self.deadline_date, self.deadline_time),
            "is_client_facing": self.is_client_facing,
            "requires_client_approval": self.requires_client_approval,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<ProductionMilestone {self.id}: {self.milestone_type} {self.deadline_date} [{self.status}]>"
