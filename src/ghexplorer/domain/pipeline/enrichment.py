"""Best-effort completion of pending drafts through supplemental lookups."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ghexplorer.domain.model import (
    CommitDraft,
    ContributorDraft,
    Draft,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline.context import ErrorRecord
from ghexplorer.domain.pipeline.errors import ErrorKind, TransientError, ValidationError
from ghexplorer.domain.pipeline.stage import BaseStage, BatchOutcome, StageConfig, StageResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ghexplorer.domain.pipeline.context import PipelineContext
    from ghexplorer.domain.ports import EnrichmentLookup

log = logging.getLogger(__name__)


def needs_enrichment(draft: Draft) -> bool:
    return draft.ENRICHABLE and not draft.is_enriched


class DataEnricher(BaseStage[Draft]):
    """Replace pending drafts with enriched copies.

    Drafts that are already enriched are left alone. A lookup that keeps failing
    leaves its draft pending; the draft is counted as skipped and still reaches
    the writer.
    """

    name = "data-enricher"
    default_config = StageConfig(abort_on_error=False)

    def __init__(
        self,
        lookup: EnrichmentLookup,
        *,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, sleep=sleep)
        self.lookup = lookup

    def execute(self, context: PipelineContext, config: StageConfig | None = None) -> StageResult:
        try:
            return super().execute(context, config)
        finally:
            self.lookup.close()

    def items(self, context: PipelineContext) -> Sequence[Draft]:
        return context.entities.ordered()

    def process_batch(self, batch: Sequence[Draft], context: PipelineContext) -> BatchOutcome:
        outcome = BatchOutcome()
        for draft in batch:
            if not needs_enrichment(draft):
                continue
            try:
                enriched = self._lookup_with_retry(draft)
            except (TransientError, ValidationError) as exc:
                log.warning("Enrichment of %s gave up: %s", draft.item_ref, exc)
                outcome.skipped += 1
                outcome.errors.append(
                    ErrorRecord(
                        stage=self.name,
                        item_ref=draft.item_ref,
                        kind=exc.kind,
                        message=str(exc),
                    )
                )
                continue
            outcome.entities.append(draft.merged_with(enriched))
        return outcome

    def _lookup_with_retry(self, draft: Draft) -> Draft:
        cfg = self.active_config
        attempt = 0
        while True:
            try:
                return self._lookup(draft)
            except TransientError as exc:
                if attempt >= cfg.retry_count:
                    raise TransientError(
                        f"{exc} (after {attempt + 1} attempts)", item_ref=draft.item_ref
                    ) from exc
                delay = cfg.backoff(attempt)
                log.debug("Lookup for %s failed, retrying in %.2fs: %s", draft.item_ref, delay, exc)
                self._sleep(delay)
                attempt += 1

    def _lookup(self, draft: Draft) -> Draft:
        match draft:
            case RepositoryDraft():
                return self.lookup.repository(draft)
            case ContributorDraft():
                return self.lookup.contributor(draft)
            case MergeRequestDraft():
                return self.lookup.merge_request(draft)
            case CommitDraft():
                return self.lookup.commit(draft)
            case _:
                raise ValidationError(f"No lookup for {draft.KIND}", item_ref=draft.item_ref)


class SkipEnrichment(BaseStage[Draft]):
    """Explicitly skip enrichment, recording every pending draft as skipped."""

    name = "skip-enrichment"
    default_config = StageConfig(abort_on_error=False)

    def items(self, context: PipelineContext) -> Sequence[Draft]:
        return context.entities.ordered()

    def process_batch(self, batch: Sequence[Draft], context: PipelineContext) -> BatchOutcome:
        return BatchOutcome(skipped=sum(1 for draft in batch if needs_enrichment(draft)))
