"""Initial schema: GitHub entities, staging, pipeline operations and rankings.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def _enrichment_state() -> sa.Column[str]:
    return sa.Column(
        "enrichment_state",
        sa.Enum("PENDING", "ENRICHED", name="enrichmentstate", native_enum=False),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "repository",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("github_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("owner_login", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("stars", sa.Integer(), nullable=True),
        sa.Column("forks", sa.Integer(), nullable=True),
        sa.Column("watchers", sa.Integer(), nullable=True),
        sa.Column("open_issues", sa.Integer(), nullable=True),
        sa.Column("primary_language", sa.String(), nullable=True),
        sa.Column("license", sa.String(), nullable=True),
        sa.Column("size_kb", sa.Integer(), nullable=True),
        sa.Column("is_fork", sa.Boolean(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=True),
        sa.Column("topics", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pushed_at", sa.DateTime(timezone=True), nullable=True),
        _enrichment_state(),
        sa.PrimaryKeyConstraint("id", name="pk_repository"),
        sa.UniqueConstraint("github_id", name="uq_repository_github_id"),
    )
    op.create_index("ix_repository_full_name", "repository", ["full_name"])

    op.create_table(
        "contributor",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("github_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("avatar", sa.String(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("company", sa.String(), nullable=True),
        sa.Column("blog", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("twitter_username", sa.String(), nullable=True),
        sa.Column("followers", sa.Integer(), nullable=True),
        sa.Column("following", sa.Integer(), nullable=True),
        sa.Column("public_repos", sa.Integer(), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=False),
        sa.Column("top_languages", sa.JSON(), nullable=True),
        _enrichment_state(),
        sa.PrimaryKeyConstraint("id", name="pk_contributor"),
        sa.UniqueConstraint("github_id", name="uq_contributor_github_id"),
    )
    op.create_index("ix_contributor_username", "contributor", ["username"])

    op.create_table(
        "merge_request",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("github_id", sa.BigInteger(), nullable=False),
        sa.Column("repository_id", sa.Uuid(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("author_id", sa.Uuid(), nullable=True),
        sa.Column("merged_by_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("is_draft", sa.Boolean(), nullable=True),
        sa.Column("is_merged", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("merged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("additions", sa.Integer(), nullable=True),
        sa.Column("deletions", sa.Integer(), nullable=True),
        sa.Column("changed_files", sa.Integer(), nullable=True),
        sa.Column("commits_count", sa.Integer(), nullable=True),
        sa.Column("labels", sa.JSON(), nullable=True),
        sa.Column("source_branch", sa.String(), nullable=True),
        sa.Column("target_branch", sa.String(), nullable=True),
        _enrichment_state(),
        sa.ForeignKeyConstraint(
            ["repository_id"],
            ["repository.id"],
            name="fk_merge_request_repository_id_repository",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["author_id"],
            ["contributor.id"],
            name="fk_merge_request_author_id_contributor",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["merged_by_id"],
            ["contributor.id"],
            name="fk_merge_request_merged_by_id_contributor",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_merge_request"),
        sa.UniqueConstraint(
            "repository_id", "github_id", name="uq_merge_request_repository_id"
        ),
    )
    op.create_index("ix_merge_request_github_id", "merge_request", ["github_id"])

    op.create_table(
        "commit",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("sha", sa.String(length=64), nullable=False),
        sa.Column("repository_id", sa.Uuid(), nullable=False),
        sa.Column("contributor_id", sa.Uuid(), nullable=True),
        sa.Column("merge_request_id", sa.Uuid(), nullable=True),
        sa.Column("author_name", sa.String(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("additions", sa.Integer(), nullable=True),
        sa.Column("deletions", sa.Integer(), nullable=True),
        sa.Column("files_changed", sa.Integer(), nullable=True),
        sa.Column("is_merge_commit", sa.Boolean(), nullable=True),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("parents", sa.JSON(), nullable=True),
        _enrichment_state(),
        sa.ForeignKeyConstraint(
            ["repository_id"],
            ["repository.id"],
            name="fk_commit_repository_id_repository",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["contributor_id"],
            ["contributor.id"],
            name="fk_commit_contributor_id_contributor",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["merge_request_id"],
            ["merge_request.id"],
            name="fk_commit_merge_request_id_merge_request",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_commit"),
        sa.UniqueConstraint("repository_id", "sha", name="uq_commit_repository_id"),
    )
    op.create_index("ix_commit_contributor_id", "commit", ["contributor_id"])
    op.create_index("ix_commit_merge_request_id", "commit", ["merge_request_id"])

    op.create_table(
        "contribution",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("contributor_id", sa.Uuid(), nullable=False),
        sa.Column("repository_id", sa.Uuid(), nullable=False),
        sa.Column("commit_count", sa.Integer(), nullable=False),
        sa.Column("pull_requests", sa.Integer(), nullable=False),
        sa.Column("reviews", sa.Integer(), nullable=False),
        sa.Column("lines_added", sa.Integer(), nullable=False),
        sa.Column("lines_removed", sa.Integer(), nullable=False),
        sa.Column("first_contribution_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_contribution_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["contributor_id"],
            ["contributor.id"],
            name="fk_contribution_contributor_id_contributor",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["repository_id"],
            ["repository.id"],
            name="fk_contribution_repository_id_repository",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_contribution"),
        sa.UniqueConstraint(
            "contributor_id", "repository_id", name="uq_contribution_contributor_id"
        ),
    )

    op.create_table(
        "staging_record",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=True),
        sa.Column("github_id", sa.BigInteger(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "state",
            sa.Enum("UNPROCESSED", "PROCESSED", name="stagingstate", native_enum=False),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_staging_record"),
    )
    op.create_index(
        "ix_staging_record_state_fetched_at", "staging_record", ["state", "fetched_at"]
    )

    op.create_table(
        "pipeline_run",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pipeline_name", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "RUNNING",
                "SUCCESS",
                "PARTIAL",
                "FAILED",
                "STOPPED",
                name="runstatus",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("items_processed", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("checkpoint", sa.JSON(), nullable=True),
        sa.Column("stop_requested", sa.Boolean(), nullable=False),
        sa.Column("resumed_from", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_pipeline_run"),
    )
    op.create_index("ix_pipeline_run_pipeline_name", "pipeline_run", ["pipeline_name"])
    op.create_index(
        "uq_pipeline_run_running",
        "pipeline_run",
        ["pipeline_name"],
        unique=True,
        sqlite_where=sa.text("status = 'RUNNING'"),
        postgresql_where=sa.text("status = 'RUNNING'"),
    )

    op.create_table(
        "pipeline_schedule",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pipeline_name", sa.String(), nullable=False),
        sa.Column("interval_seconds", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("parameters", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_pipeline_schedule"),
        sa.UniqueConstraint("pipeline_name", name="uq_pipeline_schedule_pipeline_name"),
    )

    op.create_table(
        "contributor_ranking",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("contributor_id", sa.Uuid(), nullable=False),
        sa.Column("contributor_github_id", sa.BigInteger(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("rank_position", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Float(), nullable=False),
        sa.Column("code_volume_score", sa.Float(), nullable=False),
        sa.Column("code_efficiency_score", sa.Float(), nullable=False),
        sa.Column("commit_impact_score", sa.Float(), nullable=False),
        sa.Column("collaboration_score", sa.Float(), nullable=False),
        sa.Column("repo_popularity_score", sa.Float(), nullable=False),
        sa.Column("repo_influence_score", sa.Float(), nullable=False),
        sa.Column("followers_score", sa.Float(), nullable=False),
        sa.Column("profile_completeness_score", sa.Float(), nullable=False),
        sa.Column("followers_count", sa.Integer(), nullable=False),
        sa.Column("raw_lines_added", sa.Integer(), nullable=False),
        sa.Column("raw_lines_removed", sa.Integer(), nullable=False),
        sa.Column("raw_commits_count", sa.Integer(), nullable=False),
        sa.Column("repositories_contributed", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["contributor_id"],
            ["contributor.id"],
            name="fk_contributor_ranking_contributor_id_contributor",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_contributor_ranking"),
        sa.UniqueConstraint(
            "contributor_id", "calculated_at", name="uq_contributor_ranking_contributor_id"
        ),
    )
    op.create_index(
        "ix_contributor_ranking_calculated_at", "contributor_ranking", ["calculated_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_contributor_ranking_calculated_at", table_name="contributor_ranking")
    op.drop_table("contributor_ranking")
    op.drop_table("pipeline_schedule")
    op.drop_index("uq_pipeline_run_running", table_name="pipeline_run")
    op.drop_index("ix_pipeline_run_pipeline_name", table_name="pipeline_run")
    op.drop_table("pipeline_run")
    op.drop_index("ix_staging_record_state_fetched_at", table_name="staging_record")
    op.drop_table("staging_record")
    op.drop_table("contribution")
    op.drop_index("ix_commit_merge_request_id", table_name="commit")
    op.drop_index("ix_commit_contributor_id", table_name="commit")
    op.drop_table("commit")
    op.drop_index("ix_merge_request_github_id", table_name="merge_request")
    op.drop_table("merge_request")
    op.drop_index("ix_contributor_username", table_name="contributor")
    op.drop_table("contributor")
    op.drop_index("ix_repository_full_name", table_name="repository")
    op.drop_table("repository")
