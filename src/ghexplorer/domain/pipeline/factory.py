"""Explicit registry of stage factories and named pipeline definitions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.pipeline.errors import FatalError, UnknownPipelineError
from ghexplorer.domain.pipeline.orchestrator import Pipeline

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ghexplorer.domain.pipeline.stage import BaseStage

log = logging.getLogger(__name__)

type StageFactory = Callable[[], BaseStage[Any]]


@dataclass(frozen=True, slots=True)
class PipelineDefinition:
    name: str
    stage_names: tuple[str, ...]
    config: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    description: str = ""


class PipelineRegistry:
    """Maps pipeline names to ordered stage lists and default configuration.

    Instances are passed explicitly to the factory and the scheduler, so tests
    can build isolated registries.
    """

    def __init__(self) -> None:
        self._stages: dict[str, StageFactory] = {}
        self._pipelines: dict[str, PipelineDefinition] = {}

    def register_stage(self, name: str, factory: StageFactory, *, replace: bool = False) -> None:
        if name in self._stages and not replace:
            raise FatalError(f"Stage already registered: {name}")
        self._stages[name] = factory
        log.debug("Registered stage %s", name)

    def register_pipeline(
        self,
        name: str,
        stages: Sequence[str],
        config: Mapping[str, Any] | None = None,
        *,
        description: str = "",
    ) -> PipelineDefinition:
        if not stages:
            raise FatalError(f"Pipeline {name} must have at least one stage")
        missing = [stage for stage in stages if stage not in self._stages]
        if missing:
            raise UnknownPipelineError(
                f"Pipeline {name} references unregistered stages: {', '.join(missing)}"
            )
        definition = PipelineDefinition(
            name=name,
            stage_names=tuple(stages),
            config=MappingProxyType(dict(config or {})),
            description=description,
        )
        self._pipelines[name] = definition
        log.debug("Registered pipeline %s: %s", name, list(stages))
        return definition

    def stage_names(self) -> list[str]:
        return sorted(self._stages)

    def pipeline_names(self) -> list[str]:
        return sorted(self._pipelines)

    def pipeline_config(self, name: str) -> PipelineDefinition:
        try:
            return self._pipelines[name]
        except KeyError:
            raise UnknownPipelineError(f"Unknown pipeline type: {name}") from None

    def stage_factory(self, name: str) -> StageFactory:
        try:
            return self._stages[name]
        except KeyError:
            raise UnknownPipelineError(f"Unknown stage: {name}") from None


class PipelineFactory:
    """Build runnable pipelines from a registry; construction has no side effects."""

    def __init__(self, registry: PipelineRegistry) -> None:
        self.registry = registry

    def create(self, name: str, overrides: Mapping[str, Any] | None = None) -> Pipeline:
        """Build ``name`` with its stage settings resolved.

        Definition config and ``overrides`` both hold flat settings for every
        stage plus optional mappings keyed by stage name for one stage only,
        e.g. ``{"batch_size": 50, "database-writer": {"retry_count": 5}}``.
        Later sources win: definition, definition per stage, overrides, then
        overrides per stage.
        """

        definition = self.registry.pipeline_config(name)
        stages: list[BaseStage[Any]] = []
        configs = {}
        for stage_name in definition.stage_names:
            stage = self.registry.stage_factory(stage_name)()
            stages.append(stage)
            settings = {
                **stage_settings(definition.config, stage_name),
                **stage_settings(overrides, stage_name),
            }
            configs[stage.name] = stage.config.with_overrides(settings)
        return Pipeline(name=name, stages=tuple(stages), configs=configs)


def stage_settings(config: Mapping[str, Any] | None, stage_name: str) -> dict[str, Any]:
    """Flat settings of ``config`` merged with the mapping stored under ``stage_name``."""

    if not config:
        return {}
    settings = {key: value for key, value in config.items() if not isinstance(value, Mapping)}
    scoped = config.get(stage_name)
    if isinstance(scoped, Mapping):
        settings.update(scoped)
    return settings
