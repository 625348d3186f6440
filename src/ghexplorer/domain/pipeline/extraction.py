"""Raw payloads (or unprocessed staging rows) into entity drafts."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from uuid import UUID

from ghexplorer.domain.pipeline.context import RAW_DATA_CHECKPOINT, ErrorRecord, RawItem
from ghexplorer.domain.pipeline.errors import ErrorKind, ValidationError
from ghexplorer.domain.pipeline.stage import BaseStage, BatchOutcome, StageConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ghexplorer.domain.pipeline.context import PipelineContext
    from ghexplorer.domain.ports import IngestUnitOfWork, PayloadDecoder

log = logging.getLogger(__name__)

type IndexedItem = tuple[int, RawItem]


class EntityExtractor(BaseStage[IndexedItem]):
    """Decode every raw item into drafts; malformed items are skipped, never fatal.

    Without explicit ``raw_data`` the extractor pulls unprocessed staging rows.
    Once the checkpoint covers a finished batch, its staging rows flip to
    processed in the transaction that stores the advanced run snapshot.
    """

    name = "entity-extractor"
    default_config = StageConfig(abort_on_error=True)

    def __init__(
        self,
        decoder: PayloadDecoder,
        *,
        uow_factory: Callable[[], IngestUnitOfWork] | None = None,
        staging_limit: int = 1000,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, sleep=sleep)
        self.decoder = decoder
        self.uow_factory = uow_factory
        self.staging_limit = staging_limit

    @property
    def checkpoint_key(self) -> str:
        return RAW_DATA_CHECKPOINT

    def prepare(self, context: PipelineContext) -> None:
        if context.raw_data or self.uow_factory is None:
            return
        with self.uow_factory() as uow:
            rows = uow.repositories.staging.list_unprocessed(limit=self.staging_limit)
        context.raw_data.extend(RawItem(payload=row.payload, staging_id=row.id) for row in rows)
        log.info("Loaded %s unprocessed staging rows", len(rows))

    def items(self, context: PipelineContext) -> Sequence[IndexedItem]:
        return list(enumerate(context.raw_data))

    def process_batch(
        self, batch: Sequence[IndexedItem], context: PipelineContext
    ) -> BatchOutcome:
        outcome = BatchOutcome()
        for index, item in batch:
            try:
                drafts = self.decoder.decode(item.payload)
            except ValidationError as exc:
                ref = item.item_ref(index)
                log.warning("Skipping malformed payload %s: %s", ref, exc)
                outcome.skipped += 1
                outcome.errors.append(_error(self.name, ref, str(exc)))
                continue
            outcome.entities.extend(drafts)
        return outcome

    def checkpointed(
        self, batches: Sequence[Sequence[IndexedItem]], context: PipelineContext
    ) -> None:
        if self.uow_factory is None:
            return
        staging_ids = [
            item.staging_id for batch in batches for _, item in batch if item.staging_id is not None
        ]
        with self.uow_factory() as uow:
            flipped = uow.repositories.staging.mark_processed(staging_ids)
            run_id = _run_uuid(context)
            if run_id is not None:
                uow.repositories.runs.save_checkpoint(run_id, context.snapshot())
            uow.commit()
        if staging_ids:
            log.debug("Marked %s/%s staging rows processed", flipped, len(staging_ids))


def _error(stage: str, item_ref: str, message: str) -> ErrorRecord:
    return ErrorRecord(stage=stage, item_ref=item_ref, kind=ErrorKind.VALIDATION, message=message)


def _run_uuid(context: PipelineContext) -> UUID | None:
    try:
        return UUID(context.run_id)
    except ValueError:
        return None
