"""Run-scoped state shared by the stages of one pipeline run."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from ghexplorer.domain.model import DEPENDENCY_ORDER, DRAFT_TYPES, EntityKind
from ghexplorer.domain.pipeline.errors import ErrorKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

    from ghexplorer.domain.model import Draft, DraftKey

RAW_DATA_CHECKPOINT = "raw_data"

_STAT_NAMES = frozenset({"items_read", "items_written", "items_skipped", "items_failed"})


@dataclass(frozen=True, slots=True)
class RawItem:
    """One untyped input record, optionally backed by a staging row."""

    payload: Mapping[str, Any]
    staging_id: UUID | None = None

    def item_ref(self, index: int) -> str:
        if self.staging_id is not None:
            return f"staging:{self.staging_id}"
        return f"raw:{index}"


@dataclass(slots=True)
class RunStats:
    items_read: int = 0
    items_written: int = 0
    items_skipped: int = 0
    items_failed: int = 0

    def record(self, **delta: int) -> None:
        unknown = set(delta) - _STAT_NAMES
        if unknown:
            raise KeyError(f"Unknown run statistics: {', '.join(sorted(unknown))}")
        for name, value in delta.items():
            setattr(self, name, getattr(self, name) + value)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    stage: str
    item_ref: str | None
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict[str, str | None]:
        return {
            "stage": self.stage,
            "item_ref": self.item_ref,
            "kind": self.kind.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ErrorRecord:
        return cls(
            stage=str(payload["stage"]),
            item_ref=payload.get("item_ref"),
            kind=ErrorKind(payload["kind"]),
            message=str(payload["message"]),
        )


class EntitySet:
    """Drafts grouped by kind and deduplicated by external key (last write wins)."""

    def __init__(self, drafts: Iterable[Draft] = ()) -> None:
        self._buckets: dict[EntityKind, dict[DraftKey, Draft]] = {
            kind: {} for kind in DEPENDENCY_ORDER
        }
        for draft in drafts:
            self.add(draft)

    def add(self, draft: Draft) -> None:
        self._buckets[draft.KIND][draft.key] = draft

    def update(self, other: EntitySet) -> None:
        for draft in other.ordered():
            self.add(draft)

    def get(self, kind: EntityKind, key: DraftKey) -> Draft | None:
        return self._buckets[kind].get(key)

    def __getitem__(self, kind: EntityKind) -> list[Draft]:
        return list(self._buckets[kind].values())

    def __iter__(self) -> Iterator[Draft]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())

    def ordered(self) -> list[Draft]:
        """All drafts, parents before children."""

        return [draft for kind in DEPENDENCY_ORDER for draft in self._buckets[kind].values()]

    def counts(self) -> dict[str, int]:
        return {kind.value: len(bucket) for kind, bucket in self._buckets.items()}

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            kind.value: [draft.to_dict() for draft in bucket.values()]
            for kind, bucket in self._buckets.items()
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Iterable[Mapping[str, Any]]]) -> EntitySet:
        entities = cls()
        for kind_name, drafts in payload.items():
            draft_type = DRAFT_TYPES[EntityKind(kind_name)]
            for draft in drafts:
                entities.add(draft_type.from_dict(draft))
        return entities


class CancellationToken:
    """Cooperative stop signal checked by stages at batch boundaries.

    ``stop_check`` lets the owner of the run consult an external flag (for example a
    ``stop_requested`` column) in addition to the in-process event.
    """

    def __init__(self, stop_check: Callable[[], bool] | None = None) -> None:
        self._event = threading.Event()
        self._stop_check = stop_check

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._stop_check is not None and self._stop_check():
            self._event.set()
            return True
        return False


def new_run_id() -> str:
    return str(uuid4())


@dataclass(slots=True)
class PipelineContext:
    """Mutable state container owned by exactly one pipeline run.

    Stages share nothing but ``entities``, ``stats``, ``errors`` and the
    per-stage checkpoints. All mutations happen on the orchestrating thread.
    """

    pipeline_name: str = "adhoc"
    run_id: str = field(default_factory=new_run_id)
    raw_data: list[RawItem] = field(default_factory=list[RawItem])
    entities: EntitySet = field(default_factory=EntitySet)
    checkpoints: dict[str, int] = field(default_factory=dict[str, int])
    stats: RunStats = field(default_factory=RunStats)
    errors: list[ErrorRecord] = field(default_factory=list[ErrorRecord])
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    on_checkpoint: Callable[[PipelineContext], None] | None = None

    @property
    def checkpoint_offset(self) -> int:
        """Cursor into ``raw_data``: items before it have been durably processed."""

        return self.checkpoints.get(RAW_DATA_CHECKPOINT, 0)

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    def record(self, **delta: int) -> None:
        self.stats.record(**delta)

    def append_error(
        self,
        stage: str,
        item_ref: str | None,
        kind: ErrorKind,
        message: str,
    ) -> ErrorRecord:
        error = ErrorRecord(stage=stage, item_ref=item_ref, kind=kind, message=message)
        self.errors.append(error)
        return error

    def checkpoint_for(self, key: str) -> int:
        return self.checkpoints.get(key, 0)

    def advance_checkpoint(self, key: str, n: int) -> int:
        if n < 0:
            raise ValueError("Checkpoints only move forward")
        if n == 0:
            return self.checkpoint_for(key)
        self.checkpoints[key] = self.checkpoint_for(key) + n
        if self.on_checkpoint is not None:
            self.on_checkpoint(self)
        return self.checkpoints[key]

    def add_raw(self, payloads: Iterable[Mapping[str, Any]]) -> None:
        self.raw_data.extend(RawItem(payload=payload) for payload in payloads)

    def snapshot(self) -> dict[str, Any]:
        """Serializable state sufficient to resume the run."""

        return {
            "pipeline_name": self.pipeline_name,
            "run_id": self.run_id,
            "raw_data": [
                {
                    "payload": dict(item.payload),
                    "staging_id": str(item.staging_id) if item.staging_id else None,
                }
                for item in self.raw_data
            ],
            "entities": self.entities.to_dict(),
            "checkpoints": dict(self.checkpoints),
            "stats": self.stats.as_dict(),
            "errors": [error.to_dict() for error in self.errors],
        }

    @classmethod
    def restore(
        cls,
        snapshot: Mapping[str, Any],
        *,
        run_id: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> PipelineContext:
        raw_data = [
            RawItem(
                payload=item["payload"],
                staging_id=UUID(item["staging_id"]) if item.get("staging_id") else None,
            )
            for item in snapshot.get("raw_data", ())
        ]
        return cls(
            pipeline_name=str(snapshot.get("pipeline_name", "adhoc")),
            run_id=run_id or str(snapshot.get("run_id") or new_run_id()),
            raw_data=raw_data,
            entities=EntitySet.from_dict(snapshot.get("entities", {})),
            checkpoints={str(k): int(v) for k, v in snapshot.get("checkpoints", {}).items()},
            stats=RunStats(**snapshot.get("stats", {})),
            errors=[ErrorRecord.from_dict(error) for error in snapshot.get("errors", ())],
            cancellation=cancellation or CancellationToken(),
        )
