from __future__ import annotations

from typing import TYPE_CHECKING

from ghexplorer.adapters.github import GitHubPayloadDecoder
from ghexplorer.domain.model import EntityKind, PipelineRun, RepositoryDraft, StagingRecord
from ghexplorer.domain.pipeline import (
    ErrorKind,
    EntityExtractor,
    PipelineContext,
    StageConfig,
)
from tests.helpers.github_payloads import push_envelope
from tests.helpers.pipeline_fakes import FakeDecoder

if TYPE_CHECKING:
    from collections.abc import Callable

    from ghexplorer.adapters.sqlalchemy import SqlAlchemyIngestUnitOfWork


def test_extractor_decodes_raw_data_and_skips_malformed_items() -> None:
    decoder = FakeDecoder()
    stage = EntityExtractor(decoder, config=StageConfig(batch_size=2))
    context = PipelineContext()
    context.add_raw([{"repo": 1}, {"nope": True}, {"repo": 2}])

    result = stage.execute(context)

    assert result.failed_batches == 0
    assert [draft.key for draft in context.entities[EntityKind.REPOSITORY]] == [1, 2]
    assert context.stats.items_read == 3
    assert context.stats.items_skipped == 1
    assert context.errors[0].kind is ErrorKind.VALIDATION
    assert context.errors[0].item_ref == "raw:1"
    assert context.checkpoint_offset == 3


def test_extractor_duplicates_collapse_to_one_draft() -> None:
    stage = EntityExtractor(FakeDecoder())
    context = PipelineContext()
    context.add_raw([{"repo": 7}, {"repo": 7}])

    stage.execute(context)

    assert len(context.entities) == 1
    assert isinstance(context.entities.get(EntityKind.REPOSITORY, 7), RepositoryDraft)


def test_extractor_resumes_after_checkpoint() -> None:
    decoder = FakeDecoder()
    stage = EntityExtractor(decoder)
    context = PipelineContext(checkpoints={"raw_data": 1})
    context.add_raw([{"repo": 1}, {"repo": 2}])

    stage.execute(context)

    assert decoder.decoded == [{"repo": 2}]


def test_push_envelope_yields_repository_and_commit_line_totals() -> None:
    stage = EntityExtractor(GitHubPayloadDecoder())
    context = PipelineContext()
    context.add_raw([push_envelope()])

    stage.execute(context)

    assert len(context.entities[EntityKind.REPOSITORY]) == 1
    commits = context.entities[EntityKind.COMMIT]
    assert len(commits) == 2
    assert sum(getattr(commit, "additions", 0) for commit in commits) == 13
    assert sum(getattr(commit, "deletions", 0) for commit in commits) == 7
    assert context.errors == []


def test_extractor_loads_and_marks_staging_rows(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        uow.repositories.staging.add(StagingRecord(payload=push_envelope()))
        uow.repositories.staging.add(StagingRecord(payload={"unexpected": "shape"}))
        uow.commit()

    stage = EntityExtractor(GitHubPayloadDecoder(), uow_factory=ingest_uow)
    context = PipelineContext()

    stage.execute(context)

    assert len(context.raw_data) == 2
    assert context.stats.items_skipped == 1
    assert context.errors[0].item_ref is not None
    assert context.errors[0].item_ref.startswith("staging:")
    with ingest_uow() as uow:
        # malformed rows are processed too; they stay behind as an audit trail
        assert uow.repositories.staging.count_unprocessed() == 0

    rerun = PipelineContext()
    stage.execute(rerun)

    assert rerun.raw_data == []
    assert len(rerun.entities) == 0


def test_staging_flip_stores_snapshot_past_the_batch(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        uow.repositories.staging.add(StagingRecord(payload=push_envelope()))
        uow.repositories.staging.add(StagingRecord(payload={"unexpected": "shape"}))
        run = PipelineRun(pipeline_name="data_processing")
        uow.repositories.runs.add(run)
        uow.commit()

    stage = EntityExtractor(
        GitHubPayloadDecoder(), uow_factory=ingest_uow, config=StageConfig(batch_size=1)
    )
    # no scheduler callback: the staging transaction is the only durable save
    context = PipelineContext(pipeline_name="data_processing", run_id=str(run.id))

    stage.execute(context)

    with ingest_uow() as uow:
        stored = uow.repositories.runs.get(run.id)
        assert stored is not None
        assert stored.checkpoint is not None
        assert stored.checkpoint["checkpoints"]["raw_data"] == 2
        assert stored.checkpoint["stats"]["items_read"] == 2
        assert uow.repositories.staging.count_unprocessed() == 0

    resumed = PipelineContext.restore(stored.checkpoint, run_id=str(run.id))
    stage.execute(resumed)

    assert resumed.stats.items_read == 2
    assert resumed.stats.items_skipped == 1
    assert len(resumed.errors) == 1
