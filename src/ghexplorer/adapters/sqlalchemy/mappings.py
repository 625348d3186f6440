"""SQLAlchemy mapping metadata for the ghexplorer domain model."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import cache

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
    text,
)
from sqlalchemy.orm import configure_mappers

from ghexplorer.domain.model import (
    Commit,
    Contribution,
    Contributor,
    ContributorRanking,
    EnrichmentState,
    MergeRequest,
    PipelineRun,
    PipelineSchedule,
    Repository,
    RunStatus,
    StagingRecord,
    StagingState,
)

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _enrichment_column() -> Column[EnrichmentState]:
    return Column(
        "enrichment_state",
        Enum(EnrichmentState, native_enum=False),
        key="_enrichment",
        nullable=False,
        default=EnrichmentState.PENDING,
    )


# GitHub entities ---------------------------------------------------------------

repository_table = Table(
    "repository",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("github_id", BigInteger, nullable=False, unique=True),
    Column("name", String, nullable=True),
    Column("full_name", String, nullable=True, index=True),
    Column("owner_login", String, nullable=True),
    Column("description", Text, nullable=True),
    Column("url", String, nullable=True),
    Column("stars", Integer, nullable=True),
    Column("forks", Integer, nullable=True),
    Column("watchers", Integer, nullable=True),
    Column("open_issues", Integer, nullable=True),
    Column("primary_language", String, nullable=True),
    Column("license", String, nullable=True),
    Column("size_kb", Integer, nullable=True),
    Column("is_fork", Boolean, nullable=True),
    Column("is_archived", Boolean, nullable=True),
    Column("topics", JSON, nullable=True),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    Column("pushed_at", UTCDateTime(), nullable=True),
    _enrichment_column(),
)

contributor_table = Table(
    "contributor",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("github_id", BigInteger, nullable=False, unique=True),
    Column("username", String, nullable=True, index=True),
    Column("name", String, nullable=True),
    Column("avatar", String, nullable=True),
    Column("bio", Text, nullable=True),
    Column("company", String, nullable=True),
    Column("blog", String, nullable=True),
    Column("location", String, nullable=True),
    Column("email", String, nullable=True),
    Column("twitter_username", String, nullable=True),
    Column("followers", Integer, nullable=True),
    Column("following", Integer, nullable=True),
    Column("public_repos", Integer, nullable=True),
    Column("is_bot", Boolean, nullable=False, default=False),
    Column("top_languages", JSON, nullable=True),
    _enrichment_column(),
)

merge_request_table = Table(
    "merge_request",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("github_id", BigInteger, nullable=False, index=True),
    Column(
        "repository_id",
        UUIDColumnType,
        ForeignKey("repository.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("number", Integer, nullable=True),
    Column(
        "author_id",
        UUIDColumnType,
        ForeignKey("contributor.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "merged_by_id",
        UUIDColumnType,
        ForeignKey("contributor.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("title", String, nullable=True),
    Column("description", Text, nullable=True),
    Column("state", String, nullable=True),
    Column("is_draft", Boolean, nullable=True),
    Column("is_merged", Boolean, nullable=True),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("merged_at", UTCDateTime(), nullable=True),
    Column("closed_at", UTCDateTime(), nullable=True),
    Column("additions", Integer, nullable=True),
    Column("deletions", Integer, nullable=True),
    Column("changed_files", Integer, nullable=True),
    Column("commits_count", Integer, nullable=True),
    Column("labels", JSON, nullable=True),
    Column("source_branch", String, nullable=True),
    Column("target_branch", String, nullable=True),
    _enrichment_column(),
    UniqueConstraint("repository_id", "github_id"),
)

commit_table = Table(
    "commit",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("sha", String(64), nullable=False),
    Column(
        "repository_id",
        UUIDColumnType,
        ForeignKey("repository.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "contributor_id",
        UUIDColumnType,
        ForeignKey("contributor.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column(
        "merge_request_id",
        UUIDColumnType,
        ForeignKey("merge_request.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column("author_name", String, nullable=True),
    Column("message", Text, nullable=True),
    Column("additions", Integer, nullable=True),
    Column("deletions", Integer, nullable=True),
    Column("files_changed", Integer, nullable=True),
    Column("is_merge_commit", Boolean, nullable=True),
    Column("committed_at", UTCDateTime(), nullable=True),
    Column("parents", JSON, nullable=True),
    _enrichment_column(),
    UniqueConstraint("repository_id", "sha"),
)

contribution_table = Table(
    "contribution",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "contributor_id",
        UUIDColumnType,
        ForeignKey("contributor.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "repository_id",
        UUIDColumnType,
        ForeignKey("repository.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("commit_count", Integer, nullable=False, default=0),
    Column("pull_requests", Integer, nullable=False, default=0),
    Column("reviews", Integer, nullable=False, default=0),
    Column("lines_added", Integer, nullable=False, default=0),
    Column("lines_removed", Integer, nullable=False, default=0),
    Column("first_contribution_at", UTCDateTime(), nullable=True),
    Column("last_contribution_at", UTCDateTime(), nullable=True),
    UniqueConstraint("contributor_id", "repository_id"),
)

# Staging and operations --------------------------------------------------------

staging_record_table = Table(
    "staging_record",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("payload", JSON, nullable=False),
    Column("entity_type", String, nullable=True),
    Column("github_id", BigInteger, nullable=True),
    Column("fetched_at", UTCDateTime(), nullable=False),
    Column("processed_at", UTCDateTime(), nullable=True),
    Column(
        "state",
        Enum(StagingState, native_enum=False),
        key="_state",
        nullable=False,
        default=StagingState.UNPROCESSED,
    ),
)
Index(
    "ix_staging_record_state_fetched_at",
    staging_record_table.c._state,  # noqa: SLF001
    staging_record_table.c.fetched_at,
)

pipeline_run_table = Table(
    "pipeline_run",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("pipeline_name", String, nullable=False, index=True),
    Column("status", Enum(RunStatus, native_enum=False), nullable=False),
    Column("started_at", UTCDateTime(), nullable=False),
    Column("completed_at", UTCDateTime(), nullable=True),
    Column("items_processed", Integer, nullable=False, default=0),
    Column("error_message", Text, nullable=True),
    Column("summary", JSON, nullable=True),
    Column("checkpoint", JSON, nullable=True),
    Column("stop_requested", Boolean, nullable=False, default=False),
    Column("resumed_from", String, nullable=True),
)
# one RUNNING row per pipeline name
Index(
    "uq_pipeline_run_running",
    pipeline_run_table.c.pipeline_name,
    unique=True,
    sqlite_where=text("status = 'RUNNING'"),
    postgresql_where=text("status = 'RUNNING'"),
)

pipeline_schedule_table = Table(
    "pipeline_schedule",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("pipeline_name", String, nullable=False, unique=True),
    Column("interval_seconds", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_run_at", UTCDateTime(), nullable=True),
    Column("next_run_at", UTCDateTime(), nullable=True),
    Column("parameters", JSON, nullable=True),
)

contributor_ranking_table = Table(
    "contributor_ranking",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "contributor_id",
        UUIDColumnType,
        ForeignKey("contributor.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("contributor_github_id", BigInteger, nullable=False),
    Column("calculated_at", UTCDateTime(), nullable=False, index=True),
    Column("rank_position", Integer, nullable=False),
    Column("total_score", Float, nullable=False),
    Column("code_volume_score", Float, nullable=False),
    Column("code_efficiency_score", Float, nullable=False),
    Column("commit_impact_score", Float, nullable=False),
    Column("collaboration_score", Float, nullable=False),
    Column("repo_popularity_score", Float, nullable=False),
    Column("repo_influence_score", Float, nullable=False),
    Column("followers_score", Float, nullable=False),
    Column("profile_completeness_score", Float, nullable=False),
    Column("followers_count", Integer, nullable=False),
    Column("raw_lines_added", Integer, nullable=False),
    Column("raw_lines_removed", Integer, nullable=False),
    Column("raw_commits_count", Integer, nullable=False),
    Column("repositories_contributed", Integer, nullable=False),
    UniqueConstraint("contributor_id", "calculated_at"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    # relationships are resolved explicitly by the stores via internal ids
    mapper_registry.map_imperatively(Repository, repository_table)
    mapper_registry.map_imperatively(Contributor, contributor_table)
    mapper_registry.map_imperatively(MergeRequest, merge_request_table)
    mapper_registry.map_imperatively(Commit, commit_table)
    mapper_registry.map_imperatively(Contribution, contribution_table)
    mapper_registry.map_imperatively(StagingRecord, staging_record_table)
    mapper_registry.map_imperatively(PipelineRun, pipeline_run_table)
    mapper_registry.map_imperatively(PipelineSchedule, pipeline_schedule_table)
    mapper_registry.map_imperatively(ContributorRanking, contributor_ranking_table)

    configure_mappers()
    return mapper_registry
