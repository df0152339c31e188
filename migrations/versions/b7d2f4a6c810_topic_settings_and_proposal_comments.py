"""topic_settings_and_proposal_comments

Add per-project topic generator settings and threaded proposal comments.

Revision ID: b7d2f4a6c810
Revises: a1c3e5f7b901
Create Date: 2026-10-19 10:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b7d2f4a6c810"
down_revision = "a1c3e5f7b901"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "topic_generator_settings" not in existing_tables:
        op.create_table(
            "topic_generator_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("auto_generation_enabled", sa.Boolean(), nullable=False,
                      server_default=sa.true()),
            sa.Column("time_window_days", sa.Integer(), nullable=False, server_default="7"),
            sa.Column("min_stories_for_cluster", sa.Integer(), nullable=False, server_default="2"),
            sa.Column("max_proposals_per_run", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("focus_categories", sa.JSON(), nullable=True),
            sa.Column("comparison_regions", sa.JSON(), nullable=True),
            sa.Column("default_duration_type", sa.String(length=20), nullable=False,
                      server_default="standard"),
            sa.Column("default_duration_seconds", sa.Integer(), nullable=True),
            sa.Column("default_audience_profile_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["default_audience_profile_id"], ["audience_profiles.id"], ondelete="SET NULL"
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "proposal_comments" not in existing_tables:
        op.create_table(
            "proposal_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("topic_proposal_id", sa.Integer(), nullable=False),
            sa.Column("parent_comment_id", sa.Integer(), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("comment_type", sa.String(length=20), nullable=False,
                      server_default="internal"),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_by", sa.String(length=100), nullable=True),
            sa.Column("author_user_id", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(
                ["topic_proposal_id"], ["topic_proposals.id"], ondelete="CASCADE"
            ),
            sa.ForeignKeyConstraint(
                ["parent_comment_id"], ["proposal_comments.id"], ondelete="CASCADE"
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_proposal_comments_topic_proposal_id", "proposal_comments", ["topic_proposal_id"]
        )
        op.create_index(
            "ix_proposal_comments_parent_comment_id", "proposal_comments", ["parent_comment_id"]
        )


def downgrade():
    op.drop_table("proposal_comments")
    op.drop_table("topic_generator_settings")
