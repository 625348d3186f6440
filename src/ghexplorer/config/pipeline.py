"""Pipeline execution defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int

DEFAULT_BATCH_SIZE = 50
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY = 0.1
DEFAULT_MAX_CONCURRENCY = 1
DEFAULT_STAGING_LIMIT = 1000


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_delay: float = DEFAULT_RETRY_DELAY
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    staging_limit: int = DEFAULT_STAGING_LIMIT


def get_pipeline_settings() -> PipelineSettings:
    return PipelineSettings(
        batch_size=env_int("GHEXPLORER_BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1),
        retry_count=env_int("GHEXPLORER_RETRY_COUNT", DEFAULT_RETRY_COUNT),
        retry_delay=env_float("GHEXPLORER_RETRY_DELAY", DEFAULT_RETRY_DELAY),
        max_concurrency=env_int("GHEXPLORER_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY, minimum=1),
        staging_limit=env_int("GHEXPLORER_STAGING_LIMIT", DEFAULT_STAGING_LIMIT, minimum=1),
    )
