"""content_ops_initial_schema

Create the production workflow schema: projects, audience profiles,
workflow templates, calendar items, episodes, milestones, episode content
(versions + feedback), flagged stories and topic proposals.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f7b901"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=True)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    return cols


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(updated=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "audience_profiles" not in existing_tables:
        op.create_table(
            "audience_profiles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("preferred_tone", sa.String(length=30), nullable=True),
            sa.Column("depth_preference", sa.String(length=30), nullable=True),
            sa.Column("market_region", sa.String(length=50), nullable=True),
            sa.Column("values", sa.JSON(), nullable=True),
            sa.Column("fears", sa.JSON(), nullable=True),
            sa.Column("interests", sa.JSON(), nullable=True),
            *_timestamps(updated=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audience_profiles_project_id", "audience_profiles", ["project_id"])

    if "workflow_templates" not in existing_tables:
        op.create_table(
            "workflow_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("timeline_type", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("milestone_offsets", sa.JSON(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_workflow_templates_project_id", "workflow_templates", ["project_id"])
        op.create_index(
            "ix_workflow_templates_project_timeline",
            "workflow_templates",
            ["project_id", "timeline_type"],
        )

    if "calendar_items" not in existing_tables:
        op.create_table(
            "calendar_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("episode_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("scheduled_date", sa.Date(), nullable=False),
            sa.Column("scheduled_time", sa.String(length=5), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_calendar_items_project_id", "calendar_items", ["project_id"])
        op.create_index("ix_calendar_items_episode_id", "calendar_items", ["episode_id"])

    if "flagged_stories" not in existing_tables:
        op.create_table(
            "flagged_stories",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("source", sa.String(length=200), nullable=True),
            sa.Column("url", sa.String(length=1000), nullable=True),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("flagged_by", sa.String(length=100), nullable=True),
            sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_flagged_stories_project_id", "flagged_stories", ["project_id"])
        op.create_index("ix_flagged_stories_flagged_at", "flagged_stories", ["flagged_at"])

    if "topic_proposals" not in existing_tables:
        op.create_table(
            "topic_proposals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("audience_profile_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("hook", sa.Text(), nullable=True),
            sa.Column("audience_care_statement", sa.Text(), nullable=True),
            sa.Column("talking_points", sa.JSON(), nullable=True),
            sa.Column("research_citations", sa.JSON(), nullable=True),
            sa.Column("source_story_ids", sa.JSON(), nullable=True),
            sa.Column("comparison_regions", sa.JSON(), nullable=True),
            sa.Column("cluster_theme", sa.String(length=300), nullable=True),
            sa.Column("cluster_keywords", sa.JSON(), nullable=True),
            sa.Column("duration_type", sa.String(length=20), nullable=False, server_default="standard"),
            sa.Column("duration_seconds", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("linked_episode_id", sa.Integer(), nullable=True),
            sa.Column("scheduled_tx_date", sa.Date(), nullable=True),
            sa.Column("generated_by", sa.String(length=20), nullable=False, server_default="manual"),
            sa.Column("reviewed_by", sa.String(length=100), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["audience_profile_id"], ["audience_profiles.id"], ondelete="SET NULL"
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_topic_proposals_project_id", "topic_proposals", ["project_id"])
        op.create_index("ix_topic_proposals_status", "topic_proposals", ["status"])

    if "episodes" not in existing_tables:
        op.create_table(
            "episodes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("topic_proposal_id", sa.Integer(), nullable=True),
            sa.Column("calendar_item_id", sa.Integer(), nullable=True),
            sa.Column("template_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("episode_number", sa.Integer(), nullable=True),
            sa.Column("tx_date", sa.Date(), nullable=False),
            sa.Column("tx_time", sa.String(length=5), nullable=True),
            sa.Column("timeline_type", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column(
                "production_status", sa.String(length=30), nullable=False,
                server_default="topic_pending",
            ),
            sa.Column("internal_notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["topic_proposal_id"], ["topic_proposals.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["calendar_item_id"], ["calendar_items.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["template_id"], ["workflow_templates.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("calendar_item_id"),
        )
        op.create_index("ix_episodes_project_id", "episodes", ["project_id"])
        op.create_index("ix_episodes_topic_proposal_id", "episodes", ["topic_proposal_id"])
        op.create_index("ix_episodes_project_tx", "episodes", ["project_id", "tx_date"])

    if "production_milestones" not in existing_tables:
        op.create_table(
            "production_milestones",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("episode_id", sa.Integer(), nullable=False),
            sa.Column("milestone_type", sa.String(length=50), nullable=False),
            sa.Column("label", sa.String(length=100), nullable=True),
            sa.Column("day_offset", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("deadline_date", sa.Date(), nullable=False),
            sa.Column("deadline_time", sa.String(length=5), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("is_client_facing", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column(
                "requires_client_approval", sa.Boolean(), nullable=False, server_default=sa.false()
            ),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=100), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["episode_id"], ["episodes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_production_milestones_episode_id", "production_milestones", ["episode_id"])
        op.create_index(
            "ix_milestones_episode_deadline", "production_milestones", ["episode_id", "deadline_date"]
        )
        op.create_index(
            "ix_milestones_deadline_status", "production_milestones", ["deadline_date", "status"]
        )

    if "episode_content" not in existing_tables:
        op.create_table(
            "episode_content",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("episode_id", sa.Integer(), nullable=False),
            sa.Column("content_type", sa.String(length=20), nullable=False),
            sa.Column("current_version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_by", sa.String(length=100), nullable=True),
            sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("locked_by", sa.String(length=100), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["episode_id"], ["episodes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("episode_id", "content_type", name="uq_episode_content_type"),
        )
        op.create_index("ix_episode_content_episode_id", "episode_content", ["episode_id"])

    if "episode_content_versions" not in existing_tables:
        op.create_table(
            "episode_content_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("content_id", sa.Integer(), nullable=False),
            sa.Column("version_number", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=True),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("change_summary", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            *_timestamps(updated=False),
            sa.ForeignKeyConstraint(["content_id"], ["episode_content.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("content_id", "version_number", name="uq_content_version_number"),
        )
        op.create_index(
            "ix_episode_content_versions_content_id", "episode_content_versions", ["content_id"]
        )

    if "episode_content_feedback" not in existing_tables:
        op.create_table(
            "episode_content_feedback",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("content_id", sa.Integer(), nullable=False),
            sa.Column("version_id", sa.Integer(), nullable=False),
            sa.Column("parent_feedback_id", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=False),
            sa.Column("feedback_type", sa.String(length=20), nullable=False, server_default="comment"),
            sa.Column("highlight_start", sa.Integer(), nullable=True),
            sa.Column("highlight_end", sa.Integer(), nullable=True),
            sa.Column("highlighted_text", sa.Text(), nullable=True),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_by", sa.String(length=100), nullable=True),
            sa.Column("author_user_id", sa.String(length=100), nullable=False),
            sa.Column("is_client_feedback", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["content_id"], ["episode_content.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["version_id"], ["episode_content_versions.id"], ondelete="CASCADE"
            ),
            sa.ForeignKeyConstraint(
                ["parent_feedback_id"], ["episode_content_feedback.id"], ondelete="CASCADE"
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_episode_content_feedback_content_id", "episode_content_feedback", ["content_id"]
        )
        op.create_index(
            "ix_episode_content_feedback_version_id", "episode_content_feedback", ["version_id"]
        )
        op.create_index(
            "ix_episode_content_feedback_parent_feedback_id",
            "episode_content_feedback",
            ["parent_feedback_id"],
        )
        op.create_index(
            "ix_feedback_content_resolved", "episode_content_feedback", ["content_id", "is_resolved"]
        )


def downgrade():
    for table in (
        "episode_content_feedback",
        "episode_content_versions",
        "episode_content",
        "production_milestones",
        "episodes",
        "topic_proposals",
        "flagged_stories",
        "calendar_items",
        "workflow_templates",
        "audience_profiles",
        "projects",
    ):
        op.drop_table(table)
