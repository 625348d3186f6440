"""Stage orchestration for a single pipeline run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.model import RunStatus
from ghexplorer.domain.pipeline.context import PipelineContext
from ghexplorer.domain.pipeline.errors import ErrorKind, PipelineError, StageAborted

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from ghexplorer.domain.pipeline.stage import BaseStage, StageConfig, StageResult

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class RunSummary:
    pipeline_name: str
    run_id: str
    started_at: datetime
    completed_at: datetime
    stats: dict[str, int]
    errors: list[dict[str, str | None]]
    status: RunStatus
    entities: dict[str, int] = field(default_factory=dict[str, int])
    stages: list[str] = field(default_factory=list[str])

    @property
    def items_processed(self) -> int:
        return self.stats.get("items_written", 0)

    @property
    def error_message(self) -> str | None:
        if not self.errors:
            return None
        last = self.errors[-1]
        return f"[{last['stage']}] {last['message']}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_name": self.pipeline_name,
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "stats": dict(self.stats),
            "errors": list(self.errors),
            "status": self.status.value,
            "entities": dict(self.entities),
            "stages": list(self.stages),
        }


def summarize_status(context: PipelineContext, *, aborted: bool, cancelled: bool) -> RunStatus:
    if aborted:
        return RunStatus.FAILED
    if cancelled:
        return RunStatus.STOPPED
    if context.errors:
        return RunStatus.PARTIAL
    return RunStatus.SUCCESS


@dataclass(slots=True)
class Pipeline:
    """Execute an ordered list of stages strictly one after another.

    A stage only starts once the previous one returned. When a stage aborts,
    later stages do not run, but the stats and errors accumulated so far are
    still part of the summary.
    """

    name: str
    stages: Sequence[BaseStage[Any]] = field(default_factory=tuple)
    configs: Mapping[str, StageConfig] = field(default_factory=dict[str, "StageConfig"])
    clock: Callable[[], datetime] = _utcnow

    def with_stage(self, stage: BaseStage[Any], config: StageConfig | None = None) -> Pipeline:
        """Return a new pipeline appending ``stage`` at the end."""

        configs = dict(self.configs)
        if config is not None:
            configs[stage.name] = config
        return Pipeline(
            name=self.name, stages=(*self.stages, stage), configs=configs, clock=self.clock
        )

    def extend(self, stages: Iterable[BaseStage[Any]]) -> Pipeline:
        """Return a new pipeline with ``stages`` concatenated."""

        return Pipeline(
            name=self.name,
            stages=(*self.stages, *tuple(stages)),
            configs=dict(self.configs),
            clock=self.clock,
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def run(self, context: PipelineContext | None = None) -> RunSummary:
        active = context or PipelineContext(pipeline_name=self.name)
        started_at = self.clock()
        aborted = False
        cancelled = False
        log.info(
            "Pipeline %s run %s starting: stages=%s", self.name, active.run_id, self.stage_names
        )

        for stage in self.stages:
            if active.cancelled:
                cancelled = True
                break
            try:
                result: StageResult = stage.execute(active, self.configs.get(stage.name))
            except StageAborted:
                aborted = True
                break
            except PipelineError as exc:
                log.error("Pipeline %s stage %s failed: %s", self.name, stage.name, exc)
                active.append_error(stage.name, exc.item_ref, exc.kind, str(exc))
                aborted = True
                break
            except Exception as exc:
                log.exception("Pipeline %s stage %s crashed", self.name, stage.name)
                active.append_error(
                    stage.name, None, ErrorKind.FATAL, f"{type(exc).__name__}: {exc}"
                )
                aborted = True
                break
            if result.cancelled:
                cancelled = True
                break

        status = summarize_status(active, aborted=aborted, cancelled=cancelled)
        summary = RunSummary(
            pipeline_name=self.name,
            run_id=active.run_id,
            started_at=started_at,
            completed_at=self.clock(),
            stats=active.stats.as_dict(),
            errors=[error.to_dict() for error in active.errors],
            status=status,
            entities=active.entities.counts(),
            stages=self.stage_names,
        )
        log.info(
            "Pipeline %s run %s finished: status=%s, stats=%s, errors=%s",
            self.name,
            active.run_id,
            status,
            summary.stats,
            len(summary.errors),
        )
        return summary
