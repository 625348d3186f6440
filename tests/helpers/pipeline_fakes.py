"""Reusable fakes for pipeline stage tests."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.model import (
    CommitDraft,
    ContributorDraft,
    Draft,
    EnrichmentState,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline import BaseStage, BatchOutcome, StageConfig, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from ghexplorer.domain.pipeline import PipelineContext


class RecordingSleep:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeDecoder:
    """Decode ``{"repo": <id>}`` payloads into repository drafts; anything else is invalid."""

    def __init__(self) -> None:
        self.decoded: list[Mapping[str, Any]] = []

    def decode(self, payload: Mapping[str, Any]) -> list[Draft]:
        self.decoded.append(payload)
        if "repo" not in payload:
            raise ValidationError("payload has no repo id")
        return [RepositoryDraft(github_id=int(payload["repo"]), name=f"repo-{payload['repo']}")]


class FakeLookup:
    """Enrichment lookup returning enriched copies; ``fail`` maps github ids to errors."""

    def __init__(self, fail: Mapping[int, list[Exception]] | None = None) -> None:
        self.fail = {key: list(value) for key, value in (fail or {}).items()}
        self.calls: list[str] = []
        self.closed = 0

    def _next_error(self, github_id: int) -> None:
        errors = self.fail.get(github_id)
        if errors:
            raise errors.pop(0)

    def repository(self, draft: RepositoryDraft) -> RepositoryDraft:
        self.calls.append(draft.item_ref)
        self._next_error(draft.github_id)
        return replace(draft, enrichment=EnrichmentState.ENRICHED, stars=100, description="full")

    def contributor(self, draft: ContributorDraft) -> ContributorDraft:
        self.calls.append(draft.item_ref)
        self._next_error(draft.github_id)
        return replace(draft, enrichment=EnrichmentState.ENRICHED, followers=50, bio="hello")

    def merge_request(self, draft: MergeRequestDraft) -> MergeRequestDraft:
        self.calls.append(draft.item_ref)
        self._next_error(draft.github_id)
        return replace(draft, enrichment=EnrichmentState.ENRICHED, changed_files=3)

    def commit(self, draft: CommitDraft) -> CommitDraft:
        self.calls.append(draft.item_ref)
        return replace(draft, enrichment=EnrichmentState.ENRICHED, files_changed=1)

    def close(self) -> None:
        self.closed += 1


class ScriptedStage(BaseStage[int]):
    """Stage over ``range(count)`` whose batches behave according to ``script``.

    ``script`` maps a batch's first item to a list of exceptions raised on
    successive attempts; once exhausted the batch succeeds.
    """

    name = "scripted"

    def __init__(
        self,
        count: int,
        *,
        script: Mapping[int, list[Exception]] | None = None,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] | None = None,
        on_batch: Callable[[Sequence[int]], None] | None = None,
    ) -> None:
        if sleep is None:
            super().__init__(config)
        else:
            super().__init__(config, sleep=sleep)
        self.count = count
        self.script = {key: list(value) for key, value in (script or {}).items()}
        self.on_batch = on_batch
        self.processed: list[int] = []

    def items(self, context: PipelineContext) -> Sequence[int]:
        return list(range(self.count))

    def process_batch(self, batch: Sequence[int], context: PipelineContext) -> BatchOutcome:
        errors = self.script.get(batch[0])
        if errors:
            raise errors.pop(0)
        if self.on_batch is not None:
            self.on_batch(batch)
        self.processed.extend(batch)
        return BatchOutcome(written=len(batch))
