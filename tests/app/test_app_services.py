from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from ghexplorer.app import (
    DEFAULT_PIPELINES,
    build_registry,
    build_scheduler,
    ingest_payloads,
    latest_rankings,
    list_pipelines,
    run_pipeline,
)
from ghexplorer.domain.model import CommitDraft, EnrichmentState, RepositoryDraft, RunStatus
from ghexplorer.domain.pipeline import PipelineFactory
from tests.helpers.github_payloads import merged_pull_request_envelope, push_envelope
from tests.helpers.pipeline_fakes import FakeLookup

if TYPE_CHECKING:
    from collections.abc import Callable

    from ghexplorer.adapters.sqlalchemy import (
        SqlAlchemyIngestUnitOfWork,
        SqlAlchemyRankingUnitOfWork,
        SqlAlchemySchedulerUnitOfWork,
    )
    from ghexplorer.domain.scheduling import Scheduler

    IngestFactory = Callable[[], SqlAlchemyIngestUnitOfWork]


@pytest.fixture
def lookup() -> FakeLookup:
    return FakeLookup()


@pytest.fixture
def scheduler(
    ingest_uow: IngestFactory,
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
    scheduler_uow: Callable[[], SqlAlchemySchedulerUnitOfWork],
    lookup: FakeLookup,
) -> Scheduler:
    registry = build_registry(
        ingest_uow=ingest_uow, ranking_uow=ranking_uow, lookup_factory=lambda: lookup
    )
    return build_scheduler(registry=registry, scheduler_uow=scheduler_uow)


def test_ingest_payloads_stages_raw_rows(ingest_uow: IngestFactory) -> None:
    stored = ingest_payloads(
        [merged_pull_request_envelope(), {"id": 1001, "login": "alice"}],
        unit_of_work_factory=ingest_uow,
    )

    assert stored == 2
    with ingest_uow() as uow:
        rows = uow.repositories.staging.list_unprocessed(limit=10)
    assert {(row.entity_type, row.github_id) for row in rows} == {
        ("envelope", None),
        ("user", 1001),
    }


def test_registry_exposes_default_pipelines(lookup: FakeLookup) -> None:
    built: list[FakeLookup] = []

    def lookup_factory() -> FakeLookup:
        built.append(lookup)
        return lookup

    registry = build_registry(lookup_factory=lookup_factory)

    definitions = list_pipelines(registry)

    assert [d.name for d in definitions] == sorted(DEFAULT_PIPELINES)
    github_sync = registry.pipeline_config("github_sync")
    assert github_sync.stage_names == ("entity-extractor", "data-enricher", "database-writer")
    assert github_sync.config["batch_size"] == 50
    PipelineFactory(registry).create("data_processing")
    assert built == []
    PipelineFactory(registry).create("github_sync")
    assert built == [lookup]


def test_data_processing_writes_staged_payloads(
    scheduler: Scheduler, ingest_uow: IngestFactory, lookup: FakeLookup
) -> None:
    ingest_payloads(
        [merged_pull_request_envelope(), {"unexpected": True}], unit_of_work_factory=ingest_uow
    )

    summary = run_pipeline("data_processing", scheduler=scheduler)

    assert summary.status is RunStatus.PARTIAL
    assert summary.stats["items_skipped"] >= 1
    assert summary.errors[0]["kind"] == "validation"
    assert lookup.calls == []
    with ingest_uow() as uow:
        assert uow.repositories.staging.count_unprocessed() == 0
        repository = uow.repositories.repositories.get_by_github_id(42)
        assert repository is not None
        assert repository.enrichment is EnrichmentState.PENDING

    # a second run finds nothing left to extract
    again = run_pipeline("data_processing", scheduler=scheduler)
    assert again.status is RunStatus.SUCCESS
    assert again.items_processed == 0


def test_github_sync_enriches_before_writing(
    scheduler: Scheduler, ingest_uow: IngestFactory, lookup: FakeLookup
) -> None:
    ingest_payloads([push_envelope()], unit_of_work_factory=ingest_uow)

    summary = run_pipeline("github_sync", scheduler=scheduler)

    assert summary.status is RunStatus.SUCCESS
    assert "repository:42" in lookup.calls
    with ingest_uow() as uow:
        repository = uow.repositories.repositories.get_by_github_id(42)
        assert repository is not None
        assert repository.is_enriched
        assert repository.stars == 100


class _UpstreamLookup(FakeLookup):
    """Lookup whose API answers disagree with the webhook payload."""

    def repository(self, draft: RepositoryDraft) -> RepositoryDraft:
        return replace(super().repository(draft), primary_language="Rust")

    def commit(self, draft: CommitDraft) -> CommitDraft:
        return replace(super().commit(draft), additions=40, deletions=8)


def test_data_enrichment_upgrades_stored_pending_entities(
    ingest_uow: IngestFactory,
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
    scheduler_uow: Callable[[], SqlAlchemySchedulerUnitOfWork],
) -> None:
    lookup = _UpstreamLookup()
    registry = build_registry(
        ingest_uow=ingest_uow, ranking_uow=ranking_uow, lookup_factory=lambda: lookup
    )
    scheduler = build_scheduler(registry=registry, scheduler_uow=scheduler_uow)
    envelope = merged_pull_request_envelope()
    envelope["repository"]["language"] = None
    ingest_payloads([envelope], unit_of_work_factory=ingest_uow)
    run_pipeline("data_processing", scheduler=scheduler)

    summary = run_pipeline("data_enrichment", scheduler=scheduler)

    assert summary.status is RunStatus.SUCCESS
    assert "contributor:1002" in lookup.calls
    with ingest_uow() as uow:
        repos = uow.repositories
        assert repos.repositories.list_pending(limit=10) == []
        assert repos.contributors.list_pending(limit=10) == []
        bob = repos.contributors.get_by_github_id(1002)
        assert bob is not None
        assert bob.followers == 50
        alice = repos.contributors.get_by_github_id(1001)
        assert alice is not None
        (contribution,) = repos.contributions.list_for_contributor(alice.id)
        assert contribution.lines_added == 40
        assert contribution.lines_removed == 8
        assert alice.top_languages == ["Rust"]
        assert bob.top_languages == ["Rust"]


def test_contributor_rankings_pipeline_persists_snapshot(
    scheduler: Scheduler,
    ingest_uow: IngestFactory,
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
) -> None:
    ingest_payloads([merged_pull_request_envelope()], unit_of_work_factory=ingest_uow)
    run_pipeline("data_processing", scheduler=scheduler)

    summary = run_pipeline("contributor_rankings", scheduler=scheduler)

    assert summary.status is RunStatus.SUCCESS
    rows = latest_rankings(unit_of_work_factory=ranking_uow)
    assert [row.contributor_github_id for row in rows] == [1001]
    assert rows[0].rank_position == 1
    assert rows[0].raw_lines_added == 15
