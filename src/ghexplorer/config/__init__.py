"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .github import GitHubConfig, get_github_config
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .pipeline import PipelineSettings, get_pipeline_settings
from .storage import (
    StorageConfig,
    get_database_uri,
    get_storage_config,
)

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "GitHubConfig",
    "MissingConfigurationError",
    "PipelineSettings",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_uri",
    "get_github_config",
    "get_pipeline_settings",
    "get_storage_config",
    "require_env_vars",
]
