"""Project and audience-profile rows referenced by the production workflow.

Project and audience-profile management lives outside this service; these
tables only hold the columns the workflow engine reads.
"""

from datetime import datetime, timezone

from app.models import db


class Project(db.Model):
    """A production account (one show / one client brand)."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class AudienceProfile(db.Model):
    """Target-audience description handed to the clustering collaborator."""

    __tablename__ = "audience_profiles"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    preferred_tone = db.Column(
        db.String(30), nullable=True, default="balanced",
        comment="balanced | investigative | educational | provocative | conversational",
    )
    depth_preference = db.Column(
        db.String(30), nullable=True, default="standard",
        comment="surface | standard | deep_dive",
    )
    market_region = db.Column(db.String(50), nullable=True)
    values = db.Column(db.JSON, default=list)
    fears = db.Column(db.JSON, default=list)
    interests = db.Column(db.JSON, default=list)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "preferred_tone": self.preferred_tone,
            "depth_preference": self.depth_preference,
            "market_region": self.market_region,
            "values": self.values or [],
            "fears": self.fears or [],
            "interests": self.interests or [],
        }

    def __repr__(self):
        return f"<AudienceProfile {self.id}: {self.name}>"
