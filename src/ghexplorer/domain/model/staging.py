"""Raw staging rows: verbatim payloads kept as an append-only audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ghexplorer.domain.model.entity import Entity
from ghexplorer.domain.model.enums import StagingState


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class StagingRecord(Entity):
    payload: dict[str, Any]
    entity_type: str | None = None
    github_id: int | None = None
    fetched_at: datetime = field(default_factory=_utcnow)
    processed_at: datetime | None = None

    # mapped to the ``state`` column; only ``mark_processed`` writes it
    _state: StagingState = field(default=StagingState.UNPROCESSED, init=False)

    @property
    def state(self) -> StagingState:
        return self._state

    @property
    def is_processed(self) -> bool:
        return self._state is StagingState.PROCESSED

    def mark_processed(self, *, at: datetime | None = None) -> None:
        if self.is_processed:
            return
        self._state = StagingState.PROCESSED
        self.processed_at = at or _utcnow()
