"""Staged pipeline core: context, stages, orchestration and the registry."""

from __future__ import annotations

from .context import (
    RAW_DATA_CHECKPOINT,
    CancellationToken,
    EntitySet,
    ErrorRecord,
    PipelineContext,
    RawItem,
    RunStats,
)
from .enrichment import DataEnricher, SkipEnrichment
from .errors import (
    ErrorKind,
    FatalError,
    PersistenceError,
    PipelineConflictError,
    PipelineError,
    StageAborted,
    TransientError,
    UnknownPipelineError,
    ValidationError,
)
from .extraction import EntityExtractor
from .factory import PipelineDefinition, PipelineFactory, PipelineRegistry
from .loading import PendingEntityLoader
from .orchestrator import Pipeline, RunSummary
from .stage import BaseStage, BatchOutcome, StageConfig, StageResult
from .writer import DatabaseWriter

__all__ = [
    "RAW_DATA_CHECKPOINT",
    "BaseStage",
    "BatchOutcome",
    "CancellationToken",
    "DataEnricher",
    "DatabaseWriter",
    "EntityExtractor",
    "EntitySet",
    "ErrorKind",
    "ErrorRecord",
    "FatalError",
    "PendingEntityLoader",
    "PersistenceError",
    "Pipeline",
    "PipelineConflictError",
    "PipelineContext",
    "PipelineDefinition",
    "PipelineError",
    "PipelineFactory",
    "PipelineRegistry",
    "RawItem",
    "RunStats",
    "RunSummary",
    "SkipEnrichment",
    "StageAborted",
    "StageConfig",
    "StageResult",
    "TransientError",
    "UnknownPipelineError",
    "ValidationError",
]
