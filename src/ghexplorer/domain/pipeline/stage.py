"""Batch-oriented stage contract with retries, bounded concurrency and checkpoints."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.pipeline.errors import (
    RETRYABLE_ERRORS,
    ErrorKind,
    FatalError,
    StageAborted,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from ghexplorer.domain.model import Draft
    from ghexplorer.domain.pipeline.context import ErrorRecord, PipelineContext

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StageConfig:
    batch_size: int = 50
    retry_count: int = 3
    retry_delay: float = 0.1
    abort_on_error: bool = True
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise FatalError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.retry_count < 0:
            raise FatalError(f"retry_count must be >= 0, got {self.retry_count}")
        if self.retry_delay < 0:
            raise FatalError(f"retry_delay must be >= 0, got {self.retry_delay}")
        if self.max_concurrency < 1:
            raise FatalError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> StageConfig:
        """Apply the keys of ``overrides`` that are stage settings; ignore the rest."""

        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        changes = {key: value for key, value in overrides.items() if key in known}
        return replace(self, **changes) if changes else self

    def backoff(self, attempt: int) -> float:
        return self.retry_delay * (2**attempt)


@dataclass(slots=True)
class BatchOutcome:
    """What a batch produced; merged into the context on the orchestrating thread."""

    written: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[ErrorRecord] = field(default_factory=list["ErrorRecord"])
    entities: list[Draft] = field(default_factory=list["Draft"])


@dataclass(frozen=True, slots=True)
class BatchFailure:
    kind: ErrorKind
    message: str
    attempts: int


@dataclass(frozen=True, slots=True)
class StageResult:
    stage: str
    items: int
    batches: int
    failed_batches: int = 0
    cancelled: bool = False


class _CheckpointTracker:
    """Advance a checkpoint only past a contiguous prefix of finished batches."""

    def __init__(self, context: PipelineContext, key: str) -> None:
        self._context = context
        self._key = key
        self._next = 0
        self._finished: dict[int, tuple[int, Sequence[Any] | None]] = {}

    def finish(self, index: int, size: int, batch: Sequence[Any] | None = None) -> list[Any]:
        """Record a finished batch; return the merged batches the checkpoint now covers."""

        self._finished[index] = (size, batch)
        advanced = 0
        covered: list[Any] = []
        while self._next in self._finished:
            size, done = self._finished.pop(self._next)
            advanced += size
            if done is not None:
                covered.append(done)
            self._next += 1
        self._context.advance_checkpoint(self._key, advanced)
        return covered


class BaseStage[TItem](ABC):
    """Contract every processing step implements.

    Subclasses supply ``items`` (the stage input, stable across resumes) and
    ``process_batch``. ``process_batch`` may run on a worker thread and must not
    touch the context; its ``BatchOutcome`` is merged by ``apply`` afterwards.
    """

    name: str = "stage"
    default_config: StageConfig = StageConfig()

    def __init__(
        self,
        config: StageConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or self.default_config
        # settings of the current ``execute`` call, for per-item work inside batches
        self.active_config = self.config
        self._sleep = sleep

    @property
    def checkpoint_key(self) -> str:
        return self.name

    def validate(self, context: PipelineContext) -> None:
        """Raise ``ValidationError`` if the context cannot be processed."""

    def prepare(self, context: PipelineContext) -> None:
        """Load stage input into the context before batching starts."""

    @abstractmethod
    def items(self, context: PipelineContext) -> Sequence[TItem]: ...

    @abstractmethod
    def process_batch(self, batch: Sequence[TItem], context: PipelineContext) -> BatchOutcome: ...

    def apply(
        self,
        batch: Sequence[TItem],
        outcome: BatchOutcome,
        context: PipelineContext,
    ) -> None:
        context.record(
            items_read=len(batch),
            items_written=outcome.written,
            items_skipped=outcome.skipped,
            items_failed=outcome.failed,
        )
        context.errors.extend(outcome.errors)
        for draft in outcome.entities:
            context.entities.add(draft)

    def checkpointed(self, batches: Sequence[Sequence[TItem]], context: PipelineContext) -> None:
        """Hook for merged batches once the checkpoint has moved past them."""

    def execute(
        self,
        context: PipelineContext,
        config: StageConfig | None = None,
    ) -> StageResult:
        cfg = config or self.config
        self.active_config = cfg
        self.validate(context)
        self.prepare(context)

        items = self.items(context)
        start = context.checkpoint_for(self.checkpoint_key)
        if start > len(items):
            raise FatalError(
                f"Checkpoint {start} of stage {self.name} is beyond its {len(items)} items"
            )
        batches = [
            items[offset : offset + cfg.batch_size]
            for offset in range(start, len(items), cfg.batch_size)
        ]
        log.info(
            "Stage %s starting: %s items in %s batches (offset=%s, concurrency=%s)",
            self.name,
            len(items) - start,
            len(batches),
            start,
            cfg.max_concurrency,
        )

        tracker = _CheckpointTracker(context, self.checkpoint_key)
        if cfg.max_concurrency == 1:
            finished, failed, cancelled = self._run_sequential(batches, context, cfg, tracker)
        else:
            finished, failed, cancelled = self._run_concurrent(batches, context, cfg, tracker)

        if cancelled:
            log.info("Stage %s stopped after %s/%s batches", self.name, finished, len(batches))
        else:
            log.info("Stage %s finished: %s batches, %s failed", self.name, finished, failed)
        return StageResult(
            stage=self.name,
            items=len(items),
            batches=finished,
            failed_batches=failed,
            cancelled=cancelled,
        )

    def _run_sequential(
        self,
        batches: list[Sequence[TItem]],
        context: PipelineContext,
        cfg: StageConfig,
        tracker: _CheckpointTracker,
    ) -> tuple[int, int, bool]:
        failed = 0
        for index, batch in enumerate(batches):
            if context.cancelled:
                return index, failed, True
            result = self._attempt(batch, context, cfg)
            failed += self._finish(index, batch, result, context, cfg, tracker)
        return len(batches), failed, False

    def _run_concurrent(
        self,
        batches: list[Sequence[TItem]],
        context: PipelineContext,
        cfg: StageConfig,
        tracker: _CheckpointTracker,
    ) -> tuple[int, int, bool]:
        failed = 0
        finished = 0
        submitted = 0
        cancelled = False
        pending: dict[Future[BatchOutcome | BatchFailure], int] = {}
        pool = ThreadPoolExecutor(max_workers=cfg.max_concurrency, thread_name_prefix=self.name)
        try:
            while True:
                while submitted < len(batches) and len(pending) < cfg.max_concurrency:
                    if context.cancelled:
                        cancelled = True
                        break
                    future = pool.submit(self._attempt, batches[submitted], context, cfg)
                    pending[future] = submitted
                    submitted += 1
                if not pending:
                    break
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    failed += self._finish(
                        index, batches[index], future.result(), context, cfg, tracker
                    )
                    finished += 1
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
        return finished, failed, cancelled

    def _attempt(
        self,
        batch: Sequence[TItem],
        context: PipelineContext,
        cfg: StageConfig,
    ) -> BatchOutcome | BatchFailure:
        attempt = 0
        while True:
            try:
                return self.process_batch(batch, context)
            except ValidationError as exc:
                return BatchFailure(kind=exc.kind, message=str(exc), attempts=attempt + 1)
            except RETRYABLE_ERRORS as exc:
                if attempt >= cfg.retry_count:
                    return BatchFailure(kind=exc.kind, message=str(exc), attempts=attempt + 1)
                delay = cfg.backoff(attempt)
                log.warning(
                    "Stage %s batch failed (%s, attempt %s/%s), retrying in %.2fs: %s",
                    self.name,
                    exc.kind,
                    attempt + 1,
                    cfg.retry_count + 1,
                    delay,
                    exc,
                )
                self._sleep(delay)
                attempt += 1

    def _finish(
        self,
        index: int,
        batch: Sequence[TItem],
        result: BatchOutcome | BatchFailure,
        context: PipelineContext,
        cfg: StageConfig,
        tracker: _CheckpointTracker,
    ) -> int:
        """Merge one batch result; return 1 if the batch failed permanently."""

        if isinstance(result, BatchOutcome):
            self.apply(batch, result, context)
            covered = tracker.finish(index, len(batch), batch)
            if covered:
                self.checkpointed(covered, context)
            return 0

        item_ref = f"{self.name}:batch:{index}"
        if result.kind is ErrorKind.VALIDATION:
            context.append_error(self.name, item_ref, result.kind, result.message)
            context.record(items_read=len(batch), items_skipped=len(batch))
            tracker.finish(index, len(batch))
            return 1

        message = f"{result.message} (after {result.attempts} attempts)"
        context.append_error(self.name, item_ref, result.kind, message)
        context.record(items_read=len(batch), items_failed=len(batch))
        if cfg.abort_on_error:
            log.error("Stage %s aborting on batch %s: %s", self.name, index, message)
            raise StageAborted(self.name, message, kind=result.kind)
        log.warning("Stage %s gave up on batch %s: %s", self.name, index, message)
        tracker.finish(index, len(batch))
        return 1
