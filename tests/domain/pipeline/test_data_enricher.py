from __future__ import annotations

from ghexplorer.domain.model import (
    ContributionDraft,
    ContributorDraft,
    Draft,
    EnrichmentState,
    EntityKind,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline import (
    DataEnricher,
    ErrorKind,
    PipelineContext,
    SkipEnrichment,
    StageConfig,
    TransientError,
    ValidationError,
)
from tests.helpers.pipeline_fakes import FakeLookup, RecordingSleep


def _context(*drafts: Draft) -> PipelineContext:
    context = PipelineContext()
    for draft in drafts:
        context.entities.add(draft)
    return context


def test_pending_drafts_are_replaced_with_enriched_copies() -> None:
    lookup = FakeLookup()
    context = _context(
        RepositoryDraft(github_id=42, name="hello"),
        ContributorDraft(github_id=1, username="alice"),
        ContributionDraft(contributor_github_id=1, repository_github_id=42),
    )

    DataEnricher(lookup).execute(context)

    repository = context.entities.get(EntityKind.REPOSITORY, 42)
    assert isinstance(repository, RepositoryDraft)
    assert repository.enrichment is EnrichmentState.ENRICHED
    assert repository.stars == 100
    assert repository.name == "hello"
    contributor = context.entities.get(EntityKind.CONTRIBUTOR, 1)
    assert isinstance(contributor, ContributorDraft)
    assert contributor.followers == 50
    # contributions are derived, never looked up
    assert lookup.calls == ["repository:42", "contributor:1"]
    assert lookup.closed == 1


def test_already_enriched_drafts_are_not_looked_up_again() -> None:
    lookup = FakeLookup()
    context = _context(RepositoryDraft(github_id=42, enrichment=EnrichmentState.ENRICHED))

    DataEnricher(lookup).execute(context)

    assert lookup.calls == []


def test_transient_lookup_failures_are_retried_per_item() -> None:
    sleep = RecordingSleep()
    lookup = FakeLookup(fail={42: [TransientError("502"), TransientError("502")]})
    context = _context(RepositoryDraft(github_id=42))

    stage = DataEnricher(lookup, sleep=sleep, config=StageConfig(retry_count=3, retry_delay=1.0))

    stage.execute(context)

    assert sleep.delays == [1.0, 2.0]
    repository = context.entities.get(EntityKind.REPOSITORY, 42)
    assert isinstance(repository, RepositoryDraft)
    assert repository.is_enriched
    assert context.errors == []


def test_exhausted_lookup_leaves_draft_pending_and_counts_skip() -> None:
    lookup = FakeLookup(fail={42: [TransientError("rate limited")] * 3})
    context = _context(RepositoryDraft(github_id=42), ContributorDraft(github_id=1))

    result = DataEnricher(
        lookup, sleep=RecordingSleep(), config=StageConfig(retry_count=2, abort_on_error=False)
    ).execute(context)

    assert result.failed_batches == 0
    repository = context.entities.get(EntityKind.REPOSITORY, 42)
    assert isinstance(repository, RepositoryDraft)
    assert repository.enrichment is EnrichmentState.PENDING
    contributor = context.entities.get(EntityKind.CONTRIBUTOR, 1)
    assert isinstance(contributor, ContributorDraft)
    assert contributor.is_enriched
    assert context.stats.items_skipped == 1
    assert context.errors[0].kind is ErrorKind.TRANSIENT
    assert context.errors[0].item_ref == "repository:42"
    assert "after 3 attempts" in context.errors[0].message


def test_validation_failure_is_not_retried() -> None:
    sleep = RecordingSleep()
    lookup = FakeLookup(fail={5: [ValidationError("no repository name")]})
    context = _context(MergeRequestDraft(github_id=5, repository_github_id=42))

    DataEnricher(lookup, sleep=sleep).execute(context)

    assert sleep.delays == []
    assert context.errors[0].kind is ErrorKind.VALIDATION


def test_skip_enrichment_counts_pending_drafts() -> None:
    context = _context(
        RepositoryDraft(github_id=42),
        RepositoryDraft(github_id=43, enrichment=EnrichmentState.ENRICHED),
        ContributionDraft(contributor_github_id=1, repository_github_id=42),
    )

    SkipEnrichment().execute(context)

    assert context.stats.items_skipped == 1
    assert context.stats.items_read == 3
    assert context.errors == []
