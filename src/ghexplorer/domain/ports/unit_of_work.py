"""Unit-of-work abstractions for coordinating stores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from ghexplorer.domain.ports.persistence import (
        CommitStore,
        ContributionStore,
        ContributorMetricsSource,
        ContributorStore,
        MergeRequestStore,
        RankingStore,
        RepositoryStore,
        RunStore,
        ScheduleStore,
        StagingStore,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of stores managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a store collection."""

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class IngestRepositories(RepositoryCollection):
    """Stores touched by the extraction, loading and writing stages."""

    staging: StagingStore
    repositories: RepositoryStore
    contributors: ContributorStore
    merge_requests: MergeRequestStore
    commits: CommitStore
    contributions: ContributionStore
    runs: RunStore


@dataclass(slots=True)
class SchedulerRepositories(RepositoryCollection):
    runs: RunStore
    schedules: ScheduleStore


@dataclass(slots=True)
class RankingRepositories(RepositoryCollection):
    metrics: ContributorMetricsSource
    rankings: RankingStore


type IngestUnitOfWork = UnitOfWork[IngestRepositories]
type SchedulerUnitOfWork = UnitOfWork[SchedulerRepositories]
type RankingUnitOfWork = UnitOfWork[RankingRepositories]
