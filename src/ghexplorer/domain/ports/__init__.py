"""Domain ports (protocols implemented by adapters)."""

from __future__ import annotations

from .lookups import EnrichmentLookup, PayloadDecoder
from .unit_of_work import (
    IngestRepositories,
    IngestUnitOfWork,
    RankingRepositories,
    RankingUnitOfWork,
    RepositoryCollection,
    SchedulerRepositories,
    SchedulerUnitOfWork,
    UnitOfWork,
)

__all__ = [
    "EnrichmentLookup",
    "IngestRepositories",
    "IngestUnitOfWork",
    "PayloadDecoder",
    "RankingRepositories",
    "RankingUnitOfWork",
    "RepositoryCollection",
    "SchedulerRepositories",
    "SchedulerUnitOfWork",
    "UnitOfWork",
]
