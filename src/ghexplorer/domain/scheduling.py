"""Single-flight pipeline runs, stop requests, run history and interval schedules.

The scheduler is driven from outside: a CLI invocation or a timer calls
``start`` or ``run_due``. ``PipelineRun`` rows with status ``running`` are the
shared status record that keeps one run per pipeline name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.model import PipelineRun, PipelineSchedule, RunStatus
from ghexplorer.domain.pipeline.context import CancellationToken, PipelineContext
from ghexplorer.domain.pipeline.errors import (
    FatalError,
    PersistenceError,
    PipelineConflictError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from uuid import UUID

    from ghexplorer.domain.pipeline.factory import PipelineFactory
    from ghexplorer.domain.pipeline.orchestrator import Pipeline, RunSummary
    from ghexplorer.domain.ports import SchedulerUnitOfWork

log = logging.getLogger(__name__)

RESUMABLE_STATUSES = frozenset({RunStatus.FAILED, RunStatus.STOPPED})


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class PipelineStatus:
    pipeline_name: str
    is_running: bool
    active_run: PipelineRun | None = None
    last_run: PipelineRun | None = None
    schedule: PipelineSchedule | None = None

    def to_dict(self) -> dict[str, Any]:
        last = self.last_run
        return {
            "pipeline_name": self.pipeline_name,
            "is_running": self.is_running,
            "active_run_id": str(self.active_run.id) if self.active_run else None,
            "last_run": None
            if last is None
            else {
                "run_id": str(last.id),
                "status": last.status.value,
                "started_at": last.started_at.isoformat(),
                "completed_at": last.completed_at.isoformat() if last.completed_at else None,
                "items_processed": last.items_processed,
                "error_message": last.error_message,
            },
            "schedule": None
            if self.schedule is None
            else {
                "interval_seconds": self.schedule.interval_seconds,
                "is_active": self.schedule.is_active,
                "next_run_at": self.schedule.next_run_at.isoformat()
                if self.schedule.next_run_at
                else None,
            },
        }


class Scheduler:
    def __init__(
        self,
        factory: PipelineFactory,
        uow_factory: Callable[[], SchedulerUnitOfWork],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.factory = factory
        self.uow_factory = uow_factory
        self.clock = clock
        self._tokens: dict[str, CancellationToken] = {}

    # ------------------------------------------------------------------ runs

    def start(self, name: str, overrides: Mapping[str, Any] | None = None) -> RunSummary:
        """Run ``name`` to completion; reject the call if a run of it is active."""

        pipeline = self.factory.create(name, overrides)
        run = self._claim(name)
        context = PipelineContext(pipeline_name=name, run_id=str(run.id))
        return self._execute(run, pipeline, context)

    def resume(self, run_id: UUID, overrides: Mapping[str, Any] | None = None) -> RunSummary:
        """Continue a failed or stopped run from its stored checkpoint snapshot."""

        with self.uow_factory() as uow:
            previous = uow.repositories.runs.get(run_id)
            if previous is None:
                raise FatalError(f"Unknown run: {run_id}")
            if previous.status not in RESUMABLE_STATUSES:
                raise FatalError(
                    f"Run {run_id} is {previous.status}; only failed or stopped runs resume"
                )
            if not previous.checkpoint:
                raise FatalError(f"Run {run_id} has no checkpoint to resume from")
            name = previous.pipeline_name
            snapshot = dict(previous.checkpoint)

        pipeline = self.factory.create(name, overrides)
        run = self._claim(name, resumed_from=str(run_id))
        context = PipelineContext.restore(snapshot, run_id=str(run.id))
        log.info("Resuming run %s of %s as %s", run_id, name, run.id)
        return self._execute(run, pipeline, context)

    def stop(self, name: str) -> bool:
        """Ask the active run of ``name`` to stop at its next batch boundary."""

        with self.uow_factory() as uow:
            run = uow.repositories.runs.active(name)
            if run is not None:
                run.request_stop()
                uow.commit()
        token = self._tokens.get(name)
        if token is not None:
            token.cancel()
        if run is None and token is None:
            log.info("No active run of %s to stop", name)
            return False
        log.info("Stop requested for %s", name)
        return True

    def reset_stale(self) -> int:
        """Fail ``running`` rows left behind by a crashed process."""

        reset = 0
        with self.uow_factory() as uow:
            for run in uow.repositories.runs.running():
                if run.pipeline_name in self._tokens:
                    continue
                run.finish(
                    status=RunStatus.FAILED,
                    summary=run.summary,
                    items_processed=run.items_processed,
                    error_message="Process exited while the run was active",
                    completed_at=self.clock(),
                )
                reset += 1
            uow.commit()
        if reset:
            log.warning("Reset %s stale running pipeline runs", reset)
        return reset

    def status(self, name: str) -> PipelineStatus:
        self.factory.registry.pipeline_config(name)
        with self.uow_factory() as uow:
            active = uow.repositories.runs.active(name)
            history = uow.repositories.runs.history(name, limit=1)
            schedule = uow.repositories.schedules.get(name)
        return PipelineStatus(
            pipeline_name=name,
            is_running=active is not None,
            active_run=active,
            last_run=history[0] if history else None,
            schedule=schedule,
        )

    def history(self, name: str | None = None, *, limit: int = 20) -> list[PipelineRun]:
        with self.uow_factory() as uow:
            return uow.repositories.runs.history(name, limit=limit)

    # ------------------------------------------------------------- schedules

    def set_schedule(
        self,
        name: str,
        interval_seconds: int,
        *,
        active: bool = True,
        parameters: Mapping[str, Any] | None = None,
    ) -> PipelineSchedule:
        self.factory.registry.pipeline_config(name)
        if interval_seconds < 1:
            raise ValueError(f"interval_seconds must be >= 1, got {interval_seconds}")
        with self.uow_factory() as uow:
            schedule = uow.repositories.schedules.get(name)
            if schedule is None:
                schedule = PipelineSchedule(pipeline_name=name, interval_seconds=interval_seconds)
                uow.repositories.schedules.add(schedule)
            schedule.interval_seconds = interval_seconds
            schedule.is_active = active
            if parameters is not None:
                schedule.parameters = dict(parameters)
            uow.commit()
        log.info("Schedule for %s: every %ss (active=%s)", name, interval_seconds, active)
        return schedule

    def run_due(self, now: datetime | None = None) -> list[RunSummary]:
        """Start every active schedule whose ``next_run_at`` has passed."""

        moment = now or self.clock()
        with self.uow_factory() as uow:
            due = [
                (schedule.pipeline_name, dict(schedule.parameters or {}))
                for schedule in uow.repositories.schedules.list_all()
                if schedule.is_due(moment)
            ]
        summaries: list[RunSummary] = []
        for name, parameters in due:
            self._mark_triggered(name, moment)
            try:
                summaries.append(self.start(name, parameters))
            except PipelineConflictError:
                log.info("Skipping scheduled run of %s: already running", name)
        return summaries

    # --------------------------------------------------------------- helpers

    def _claim(self, name: str, *, resumed_from: str | None = None) -> PipelineRun:
        with self.uow_factory() as uow:
            if uow.repositories.runs.active(name) is not None:
                raise PipelineConflictError(f"Pipeline {name} is already running")
            run = PipelineRun(
                pipeline_name=name, started_at=self.clock(), resumed_from=resumed_from
            )
            uow.repositories.runs.add(run)
            try:
                uow.commit()
            except PersistenceError as exc:
                # another process claimed the pipeline between the check and the insert
                if uow.repositories.runs.active(name) is None:
                    raise
                raise PipelineConflictError(f"Pipeline {name} is already running") from exc
        return run

    def _execute(
        self, run: PipelineRun, pipeline: Pipeline, context: PipelineContext
    ) -> RunSummary:
        token = CancellationToken(stop_check=lambda: self._stop_requested(run.id))
        context.cancellation = token
        context.on_checkpoint = lambda ctx: self._save_checkpoint(run.id, ctx)
        self._tokens[run.pipeline_name] = token
        try:
            summary = pipeline.run(context)
        except BaseException:
            self._finish(run.id, status=RunStatus.FAILED, context=context, summary=None)
            raise
        finally:
            self._tokens.pop(run.pipeline_name, None)
        self._finish(run.id, status=summary.status, context=context, summary=summary)
        return summary

    def _finish(
        self,
        run_id: UUID,
        *,
        status: RunStatus,
        context: PipelineContext,
        summary: RunSummary | None,
    ) -> None:
        with self.uow_factory() as uow:
            run = uow.repositories.runs.get(run_id)
            if run is None:
                raise FatalError(f"Run {run_id} disappeared before it finished")
            run.finish(
                status=status,
                summary=summary.to_dict() if summary else None,
                items_processed=summary.items_processed if summary else 0,
                error_message=summary.error_message if summary else "Run crashed",
                completed_at=self.clock(),
            )
            run.checkpoint = context.snapshot()
            uow.commit()

    def _save_checkpoint(self, run_id: UUID, context: PipelineContext) -> None:
        with self.uow_factory() as uow:
            uow.repositories.runs.save_checkpoint(run_id, context.snapshot())
            uow.commit()

    def _stop_requested(self, run_id: UUID) -> bool:
        with self.uow_factory() as uow:
            return uow.repositories.runs.stop_requested(run_id)

    def _mark_triggered(self, name: str, moment: datetime) -> None:
        with self.uow_factory() as uow:
            schedule = uow.repositories.schedules.get(name)
            if schedule is not None:
                schedule.mark_triggered(moment)
                uow.commit()
