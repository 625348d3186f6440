"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from logging import getLogger
from typing import TYPE_CHECKING, Any

from ghexplorer.adapters.github import (
    GitHubClient,
    GitHubEnrichmentLookup,
    GitHubPayloadDecoder,
    classify,
)
from ghexplorer.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyIngestUnitOfWork,
    SqlAlchemyRankingUnitOfWork,
    SqlAlchemySchedulerUnitOfWork,
    is_started,
    startup,
)
from ghexplorer.config import PipelineSettings, get_github_config, get_pipeline_settings
from ghexplorer.domain.model import StagingRecord
from ghexplorer.domain.pipeline import (
    DatabaseWriter,
    DataEnricher,
    EntityExtractor,
    PendingEntityLoader,
    PipelineFactory,
    PipelineRegistry,
    SkipEnrichment,
)
from ghexplorer.domain.ports import (
    EnrichmentLookup,
    IngestUnitOfWork,
    RankingUnitOfWork,
    SchedulerUnitOfWork,
)
from ghexplorer.domain.ranking import RankingEngine, RankingStage
from ghexplorer.domain.scheduling import Scheduler

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from ghexplorer.domain.model import ContributorRanking, PipelineRun, PipelineSchedule
    from ghexplorer.domain.pipeline import PipelineDefinition, RunSummary
    from ghexplorer.domain.ranking import CollaborationHighlight
    from ghexplorer.domain.scheduling import PipelineStatus

IngestUnitOfWorkFactory = Callable[[], IngestUnitOfWork]
SchedulerUnitOfWorkFactory = Callable[[], SchedulerUnitOfWork]
RankingUnitOfWorkFactory = Callable[[], RankingUnitOfWork]
LookupFactory = Callable[[], EnrichmentLookup]

log = getLogger(__name__)

DEFAULT_PIPELINES: dict[str, tuple[tuple[str, ...], str]] = {
    "data_processing": (
        ("entity-extractor", "skip-enrichment", "database-writer"),
        "Extract staged payloads and write them without calling GitHub",
    ),
    "github_sync": (
        ("entity-extractor", "data-enricher", "database-writer"),
        "Extract staged payloads, enrich them from GitHub and write them",
    ),
    "data_enrichment": (
        ("pending-loader", "data-enricher", "database-writer"),
        "Enrich stored entities that are still pending",
    ),
    "contributor_rankings": (
        ("contributor-ranking",),
        "Compute a new contributor ranking snapshot",
    ),
}


def _ensure_started() -> None:
    if not is_started():
        startup()


def _github_lookup() -> EnrichmentLookup:
    return GitHubEnrichmentLookup(GitHubClient(config=get_github_config()))


def settings_overrides(settings: PipelineSettings) -> dict[str, Any]:
    """Stage settings shared by every registered pipeline."""

    return {
        "batch_size": settings.batch_size,
        "retry_count": settings.retry_count,
        "retry_delay": settings.retry_delay,
        "max_concurrency": settings.max_concurrency,
    }


def build_registry(
    *,
    ingest_uow: IngestUnitOfWorkFactory = SqlAlchemyIngestUnitOfWork,
    ranking_uow: RankingUnitOfWorkFactory = SqlAlchemyRankingUnitOfWork,
    lookup_factory: LookupFactory = _github_lookup,
    settings: PipelineSettings | None = None,
) -> PipelineRegistry:
    """Register the stages and the default pipelines.

    Stage factories are only invoked by ``PipelineFactory.create``; the GitHub
    lookup is therefore built lazily and pipelines that never enrich do not need
    GitHub configuration.
    """

    effective = settings or PipelineSettings()
    decoder = GitHubPayloadDecoder()
    registry = PipelineRegistry()
    registry.register_stage(
        EntityExtractor.name,
        lambda: EntityExtractor(
            decoder, uow_factory=ingest_uow, staging_limit=effective.staging_limit
        ),
    )
    registry.register_stage(SkipEnrichment.name, SkipEnrichment)
    registry.register_stage(DataEnricher.name, lambda: DataEnricher(lookup_factory()))
    registry.register_stage(
        PendingEntityLoader.name,
        lambda: PendingEntityLoader(ingest_uow, limit=effective.staging_limit),
    )
    registry.register_stage(DatabaseWriter.name, lambda: DatabaseWriter(ingest_uow))
    registry.register_stage(RankingStage.name, lambda: RankingStage(RankingEngine(ranking_uow)))

    defaults = settings_overrides(effective)
    for name, (stages, description) in DEFAULT_PIPELINES.items():
        registry.register_pipeline(name, stages, defaults, description=description)
    return registry


def build_scheduler(
    *,
    registry: PipelineRegistry | None = None,
    scheduler_uow: SchedulerUnitOfWorkFactory = SqlAlchemySchedulerUnitOfWork,
) -> Scheduler:
    _ensure_started()
    effective_registry = registry or build_registry(settings=get_pipeline_settings())
    return Scheduler(PipelineFactory(effective_registry), scheduler_uow)


# staging ---------------------------------------------------------------------


def ingest_payloads(
    payloads: Iterable[Mapping[str, Any]],
    *,
    unit_of_work_factory: IngestUnitOfWorkFactory | None = None,
) -> int:
    """Store raw payloads verbatim as unprocessed staging rows."""

    if unit_of_work_factory is None:
        _ensure_started()
    effective_uow = unit_of_work_factory or SqlAlchemyIngestUnitOfWork
    stored = 0
    with effective_uow() as uow:
        for payload in payloads:
            shape = classify(payload)
            github_id = payload.get("id")
            uow.repositories.staging.add(
                StagingRecord(
                    payload=dict(payload),
                    entity_type=shape,
                    github_id=github_id if isinstance(github_id, int) else None,
                )
            )
            stored += 1
        uow.commit()
    log.info("Staged %s raw payloads", stored)
    return stored


def fetch_closed_pull_requests(
    full_name: str,
    *,
    client: GitHubClient | None = None,
    max_pages: int = 1,
    unit_of_work_factory: IngestUnitOfWorkFactory | None = None,
) -> int:
    """Pull closed pull requests of ``full_name`` from GitHub into staging."""

    effective_client = client or GitHubClient(config=get_github_config())
    try:
        payloads = effective_client.list_closed_pull_requests(full_name, max_pages=max_pages)
    finally:
        if client is None:
            effective_client.close()
    return ingest_payloads(payloads, unit_of_work_factory=unit_of_work_factory)


# pipelines -------------------------------------------------------------------


def list_pipelines(registry: PipelineRegistry | None = None) -> list[PipelineDefinition]:
    effective = registry or build_registry()
    return [effective.pipeline_config(name) for name in effective.pipeline_names()]


def run_pipeline(
    name: str,
    overrides: Mapping[str, Any] | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> RunSummary:
    effective = scheduler or build_scheduler()
    log.info("Starting pipeline %s (overrides=%s)", name, dict(overrides or {}))
    summary = effective.start(name, overrides)
    log.info(
        "Finished pipeline %s: status=%s, written=%s, errors=%s",
        name,
        summary.status,
        summary.items_processed,
        len(summary.errors),
    )
    return summary


def resume_run(
    run_id: UUID,
    overrides: Mapping[str, Any] | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> RunSummary:
    effective = scheduler or build_scheduler()
    return effective.resume(run_id, overrides)


def stop_pipeline(name: str, *, scheduler: Scheduler | None = None) -> bool:
    effective = scheduler or build_scheduler()
    return effective.stop(name)


def pipeline_status(name: str, *, scheduler: Scheduler | None = None) -> PipelineStatus:
    effective = scheduler or build_scheduler()
    return effective.status(name)


def pipeline_history(
    name: str | None = None,
    *,
    limit: int = 20,
    scheduler: Scheduler | None = None,
) -> list[PipelineRun]:
    effective = scheduler or build_scheduler()
    return effective.history(name, limit=limit)


def set_schedule(
    name: str,
    interval_seconds: int,
    *,
    active: bool = True,
    parameters: Mapping[str, Any] | None = None,
    scheduler: Scheduler | None = None,
) -> PipelineSchedule:
    effective = scheduler or build_scheduler()
    return effective.set_schedule(name, interval_seconds, active=active, parameters=parameters)


def run_due_schedules(
    now: datetime | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> list[RunSummary]:
    effective = scheduler or build_scheduler()
    return effective.run_due(now)


# rankings --------------------------------------------------------------------


def _ranking_engine(unit_of_work_factory: RankingUnitOfWorkFactory | None) -> RankingEngine:
    if unit_of_work_factory is None:
        _ensure_started()
    return RankingEngine(unit_of_work_factory or SqlAlchemyRankingUnitOfWork)


def compute_rankings(
    *,
    unit_of_work_factory: RankingUnitOfWorkFactory | None = None,
) -> list[ContributorRanking]:
    return _ranking_engine(unit_of_work_factory).compute()


def latest_rankings(
    limit: int | None = None,
    *,
    unit_of_work_factory: RankingUnitOfWorkFactory | None = None,
) -> list[ContributorRanking]:
    return _ranking_engine(unit_of_work_factory).latest(limit=limit)


def rankings_at(
    calculated_at: datetime,
    *,
    limit: int | None = None,
    unit_of_work_factory: RankingUnitOfWorkFactory | None = None,
) -> list[ContributorRanking]:
    return _ranking_engine(unit_of_work_factory).at(calculated_at, limit=limit)


def most_collaborative_merge_request(
    contributor_id: UUID,
    *,
    unit_of_work_factory: RankingUnitOfWorkFactory | None = None,
) -> CollaborationHighlight | None:
    return _ranking_engine(unit_of_work_factory).most_collaborative_merge_request(contributor_id)
