"""SQLAlchemy adapter package for ghexplorer."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyCommitStore,
    SqlAlchemyContributionStore,
    SqlAlchemyContributorMetricsSource,
    SqlAlchemyContributorStore,
    SqlAlchemyMergeRequestStore,
    SqlAlchemyRankingStore,
    SqlAlchemyRepositoryStore,
    SqlAlchemyRunStore,
    SqlAlchemyScheduleStore,
    SqlAlchemyStagingStore,
)
from .unit_of_work import (
    SqlAlchemyIngestUnitOfWork,
    SqlAlchemyRankingUnitOfWork,
    SqlAlchemySchedulerUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCommitStore",
    "SqlAlchemyContributionStore",
    "SqlAlchemyContributorMetricsSource",
    "SqlAlchemyContributorStore",
    "SqlAlchemyIngestUnitOfWork",
    "SqlAlchemyMergeRequestStore",
    "SqlAlchemyRankingStore",
    "SqlAlchemyRankingUnitOfWork",
    "SqlAlchemyRepositoryStore",
    "SqlAlchemyRunStore",
    "SqlAlchemyScheduleStore",
    "SqlAlchemySchedulerUnitOfWork",
    "SqlAlchemyStagingStore",
    "StartupError",
    "configured_engine",
    "is_started",
    "mapper_registry",
    "shutdown",
    "startup",
]
