from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import pytest

from ghexplorer.domain.pipeline import (
    ErrorKind,
    FatalError,
    PersistenceError,
    PipelineContext,
    StageAborted,
    StageConfig,
    TransientError,
    ValidationError,
)
from tests.helpers.pipeline_fakes import RecordingSleep, ScriptedStage

if TYPE_CHECKING:
    from collections.abc import Sequence


def test_batches_cover_every_item_and_advance_checkpoint() -> None:
    stage = ScriptedStage(7, config=StageConfig(batch_size=3))
    context = PipelineContext()

    result = stage.execute(context)

    assert stage.processed == list(range(7))
    assert result.batches == 3
    assert result.failed_batches == 0
    assert context.checkpoint_for("scripted") == 7
    assert context.stats.items_read == 7
    assert context.stats.items_written == 7


def test_transient_failure_is_retried_with_exponential_backoff() -> None:
    sleep = RecordingSleep()
    stage = ScriptedStage(
        4,
        script={0: [TransientError("timeout"), PersistenceError("locked")]},
        config=StageConfig(batch_size=2, retry_count=3, retry_delay=0.5),
        sleep=sleep,
    )
    context = PipelineContext()

    result = stage.execute(context)

    assert sleep.delays == [0.5, 1.0]
    assert stage.processed == [0, 1, 2, 3]
    assert result.failed_batches == 0
    assert context.errors == []


def test_exhausted_retries_abort_when_configured() -> None:
    sleep = RecordingSleep()
    stage = ScriptedStage(
        4,
        script={2: [TransientError("down")] * 3},
        config=StageConfig(batch_size=2, retry_count=2, abort_on_error=True),
        sleep=sleep,
    )
    context = PipelineContext()

    with pytest.raises(StageAborted) as exc:
        stage.execute(context)

    assert exc.value.cause_kind is ErrorKind.TRANSIENT
    assert len(sleep.delays) == 2
    # the first batch stays checkpointed, the failing one does not
    assert context.checkpoint_for("scripted") == 2
    assert context.stats.items_failed == 2
    assert context.errors[-1].kind is ErrorKind.TRANSIENT
    assert "after 3 attempts" in context.errors[-1].message


def test_exhausted_retries_continue_when_not_aborting() -> None:
    stage = ScriptedStage(
        6,
        script={2: [TransientError("down")] * 2},
        config=StageConfig(batch_size=2, retry_count=1, abort_on_error=False),
        sleep=RecordingSleep(),
    )
    context = PipelineContext()

    result = stage.execute(context)

    assert result.failed_batches == 1
    assert stage.processed == [0, 1, 4, 5]
    assert context.checkpoint_for("scripted") == 6
    assert context.stats.items_failed == 2
    assert context.stats.items_written == 4


def test_validation_error_skips_batch_without_retry() -> None:
    sleep = RecordingSleep()
    stage = ScriptedStage(
        4,
        script={0: [ValidationError("malformed")]},
        config=StageConfig(batch_size=2, retry_count=3),
        sleep=sleep,
    )
    context = PipelineContext()

    result = stage.execute(context)

    assert sleep.delays == []
    assert result.failed_batches == 1
    assert stage.processed == [2, 3]
    assert context.stats.items_skipped == 2
    assert context.errors[0].kind is ErrorKind.VALIDATION
    assert context.checkpoint_for("scripted") == 4


def test_execute_resumes_from_checkpoint() -> None:
    stage = ScriptedStage(5, config=StageConfig(batch_size=2))
    context = PipelineContext(checkpoints={"scripted": 3})

    stage.execute(context)

    assert stage.processed == [3, 4]
    assert context.checkpoint_for("scripted") == 5


def test_checkpoint_beyond_items_is_fatal() -> None:
    stage = ScriptedStage(2)
    context = PipelineContext(checkpoints={"scripted": 5})

    with pytest.raises(FatalError):
        stage.execute(context)


def test_cancellation_stops_at_batch_boundary() -> None:
    context = PipelineContext()

    def cancel_after_first(batch: Sequence[int]) -> None:
        if batch[0] == 0:
            context.cancellation.cancel()

    stage = ScriptedStage(6, config=StageConfig(batch_size=2), on_batch=cancel_after_first)

    result = stage.execute(context)

    assert result.cancelled is True
    assert result.batches == 1
    assert stage.processed == [0, 1]
    assert context.checkpoint_for("scripted") == 2


def test_concurrent_batches_checkpoint_only_contiguous_prefix() -> None:
    first_batch_may_finish = threading.Event()
    offsets: list[int] = []

    def slow_first(batch: Sequence[int]) -> None:
        if batch[0] == 0:
            assert first_batch_may_finish.wait(timeout=5)
        else:
            time.sleep(0.01)

    context = PipelineContext(
        on_checkpoint=lambda ctx: offsets.append(ctx.checkpoint_for("scripted"))
    )
    stage = ScriptedStage(
        6,
        config=StageConfig(batch_size=2, max_concurrency=3),
        on_batch=slow_first,
    )

    timer = threading.Timer(0.2, first_batch_may_finish.set)
    timer.start()
    try:
        result = stage.execute(context)
    finally:
        timer.cancel()

    assert result.batches == 3
    assert sorted(stage.processed) == list(range(6))
    # batches 1 and 2 finish first but the checkpoint waits for batch 0
    assert offsets == [6]
    assert context.checkpoint_for("scripted") == 6


@pytest.mark.parametrize(
    "overrides",
    [
        {"batch_size": 0},
        {"retry_count": -1},
        {"retry_delay": -0.5},
        {"max_concurrency": 0},
    ],
)
def test_invalid_stage_config_is_fatal(overrides: dict[str, float]) -> None:
    with pytest.raises(FatalError):
        StageConfig().with_overrides(overrides)


def test_with_overrides_ignores_unknown_keys() -> None:
    config = StageConfig().with_overrides({"batch_size": 5, "unrelated": True})

    assert config.batch_size == 5
    assert config.retry_count == StageConfig().retry_count
