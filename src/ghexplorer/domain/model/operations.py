"""Operational records: pipeline run history and schedules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from ghexplorer.domain.model.entity import Entity
from ghexplorer.domain.model.enums import RunStatus


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class PipelineRun(Entity):
    """One execution of a named pipeline; ``RUNNING`` rows enforce single-flight."""

    pipeline_name: str
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    items_processed: int = 0
    error_message: str | None = None
    summary: dict[str, Any] | None = None
    checkpoint: dict[str, Any] | None = None
    stop_requested: bool = False
    resumed_from: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    def request_stop(self) -> None:
        if self.is_running:
            self.stop_requested = True

    def finish(
        self,
        *,
        status: RunStatus,
        summary: dict[str, Any] | None = None,
        items_processed: int = 0,
        error_message: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        if not status.is_terminal:
            raise ValueError("A run can only finish with a terminal status")
        self.status = status
        self.summary = summary
        self.items_processed = items_processed
        self.error_message = error_message
        self.completed_at = completed_at or _utcnow()


@dataclass(eq=False, kw_only=True)
class PipelineSchedule(Entity):
    """Interval trigger for a pipeline; driven by an external timer via ``run_due``."""

    pipeline_name: str
    interval_seconds: int
    is_active: bool = True
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    parameters: dict[str, Any] | None = None

    def is_due(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        return self.next_run_at is None or self.next_run_at <= now

    def mark_triggered(self, now: datetime) -> None:
        self.last_run_at = now
        self.next_run_at = now + timedelta(seconds=self.interval_seconds)
