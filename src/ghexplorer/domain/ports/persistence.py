"""Ports for persisting domain aggregates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ghexplorer.domain.model import (
    Commit,
    Contribution,
    Contributor,
    ContributorRanking,
    MergeRequest,
    PipelineRun,
    PipelineSchedule,
    Repository,
    StagingRecord,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime
    from typing import Any
    from uuid import UUID

    from ghexplorer.domain.model import (
        CommitDraft,
        ContributorDraft,
        MergeRequestDraft,
        RepositoryDraft,
    )
    from ghexplorer.domain.ranking import CollaborationHighlight, ContributorMetrics


@runtime_checkable
class Store[TEntity](Protocol):
    """Minimal store contract for a persistent aggregate."""

    def add(self, entity: TEntity) -> None: ...

    def get(self, entity_id: UUID) -> TEntity | None: ...


@runtime_checkable
class StagingStore(Store[StagingRecord], Protocol):
    """Append-only staging rows; the only mutation is ``UNPROCESSED -> PROCESSED``."""

    def list_unprocessed(self, *, limit: int) -> list[StagingRecord]: ...

    def mark_processed(self, record_ids: Iterable[UUID], *, at: datetime | None = None) -> int: ...

    def count_unprocessed(self) -> int: ...


@runtime_checkable
class GitHubEntityStore[TEntity](Store[TEntity], Protocol):
    """Store for entities keyed by an external GitHub identifier."""

    def get_by_github_id(self, github_id: int) -> TEntity | None: ...

    def list_pending(self, *, limit: int) -> list[TEntity]: ...


@runtime_checkable
class RepositoryStore(GitHubEntityStore[Repository], Protocol):
    def upsert(self, draft: RepositoryDraft) -> Repository: ...


@runtime_checkable
class ContributorStore(GitHubEntityStore[Contributor], Protocol):
    def upsert(self, draft: ContributorDraft) -> Contributor: ...


@runtime_checkable
class MergeRequestStore(GitHubEntityStore[MergeRequest], Protocol):
    def upsert(
        self,
        draft: MergeRequestDraft,
        *,
        repository_id: UUID,
        author_id: UUID | None,
        merged_by_id: UUID | None,
    ) -> MergeRequest: ...


@runtime_checkable
class CommitStore(Store[Commit], Protocol):
    def get_by_sha(self, repository_id: UUID, sha: str) -> Commit | None: ...

    def list_pending(self, *, limit: int) -> list[Commit]: ...

    def upsert(
        self,
        draft: CommitDraft,
        *,
        repository_id: UUID,
        contributor_id: UUID | None,
        merge_request_id: UUID | None,
    ) -> Commit: ...


@runtime_checkable
class ContributionStore(Protocol):
    def refresh(self, *, contributor_id: UUID, repository_id: UUID) -> Contribution: ...

    def list_for_contributor(self, contributor_id: UUID) -> list[Contribution]: ...

    def list_for_repository(self, repository_id: UUID) -> list[Contribution]: ...

    def repository_languages(self, contributor_id: UUID) -> list[str | None]: ...


@runtime_checkable
class RunStore(Store[PipelineRun], Protocol):
    def active(self, pipeline_name: str) -> PipelineRun | None: ...

    def running(self) -> list[PipelineRun]: ...

    def history(self, pipeline_name: str | None, *, limit: int) -> list[PipelineRun]: ...

    def save_checkpoint(self, run_id: UUID, snapshot: dict[str, Any]) -> bool: ...

    def stop_requested(self, run_id: UUID) -> bool: ...


@runtime_checkable
class ScheduleStore(Protocol):
    def add(self, schedule: PipelineSchedule) -> None: ...

    def get(self, pipeline_name: str) -> PipelineSchedule | None: ...

    def list_all(self) -> list[PipelineSchedule]: ...


@runtime_checkable
class RankingStore(Protocol):
    def add_all(self, rows: Sequence[ContributorRanking]) -> None: ...

    def latest_timestamp(self) -> datetime | None: ...

    def at(
        self, calculated_at: datetime, *, limit: int | None = None
    ) -> list[ContributorRanking]: ...


@runtime_checkable
class ContributorMetricsSource(Protocol):
    """Read-only aggregate queries feeding the ranking engine."""

    def contributor_metrics(self) -> list[ContributorMetrics]: ...

    def most_collaborative_merge_request(
        self, contributor_id: UUID
    ) -> CollaborationHighlight | None: ...
