from __future__ import annotations

import pytest

from ghexplorer.config import (
    ConfigurationError,
    MissingConfigurationError,
    PipelineSettings,
    get_github_config,
    get_pipeline_settings,
    require_env_vars,
)
from ghexplorer.config.env import env_float, env_int, optional_env_var
from ghexplorer.config.github import DEFAULT_GITHUB_BASE_URL

_PIPELINE_VARS = (
    "GHEXPLORER_BATCH_SIZE",
    "GHEXPLORER_RETRY_COUNT",
    "GHEXPLORER_RETRY_DELAY",
    "GHEXPLORER_MAX_CONCURRENCY",
    "GHEXPLORER_STAGING_LIMIT",
)
_GITHUB_VARS = ("GITHUB_TOKEN", "GITHUB_API_URL", "GHEXPLORER_GITHUB_RATE", "GHEXPLORER_HTTP_CACHE")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (*_PIPELINE_VARS, *_GITHUB_VARS):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    assert require_env_vars(["EXAMPLE_VAR"]) == {"EXAMPLE_VAR": "value"}


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.setenv("MISSING_B", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)
    assert exc.value.variables == ("MISSING_A", "MISSING_B")


def test_optional_env_var_strips_and_treats_blank_as_unset(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "  padded ")
    monkeypatch.setenv("BLANK_VAR", "")

    assert optional_env_var("EXAMPLE_VAR") == "padded"
    assert optional_env_var("BLANK_VAR") is None


def test_numeric_env_values_are_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOME_INT", "abc")
    monkeypatch.setenv("SOME_FLOAT", "-1.5")

    with pytest.raises(ConfigurationError, match="must be an integer") as bad_int:
        env_int("SOME_INT", 1)
    assert bad_int.value.variable == "SOME_INT"
    with pytest.raises(ConfigurationError, match=">= 0"):
        env_float("SOME_FLOAT", 1.0)
    assert env_int("UNSET_INT_VAR", 7) == 7


@pytest.mark.usefixtures("clean_env")
def test_pipeline_settings_defaults() -> None:
    assert get_pipeline_settings() == PipelineSettings()


def test_pipeline_settings_from_environment(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GHEXPLORER_BATCH_SIZE", "25")
    clean_env.setenv("GHEXPLORER_RETRY_DELAY", "0.5")
    clean_env.setenv("GHEXPLORER_MAX_CONCURRENCY", "4")

    settings = get_pipeline_settings()

    assert settings.batch_size == 25
    assert settings.retry_delay == 0.5
    assert settings.max_concurrency == 4


def test_pipeline_batch_size_must_be_positive(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GHEXPLORER_BATCH_SIZE", "0")

    with pytest.raises(ConfigurationError, match="GHEXPLORER_BATCH_SIZE"):
        get_pipeline_settings()


@pytest.mark.usefixtures("clean_env")
def test_github_config_without_token() -> None:
    config = get_github_config()

    resilience = config.resilience
    assert config.authenticated is False
    assert resilience.base_url == DEFAULT_GITHUB_BASE_URL
    assert resilience.default_headers is not None
    assert "Authorization" not in resilience.default_headers
    assert resilience.default_headers["Accept"] == "application/vnd.github+json"
    assert resilience.ratelimit is not None
    assert resilience.ratelimit.max_calls == 1
    assert resilience.cache is None


def test_github_config_with_token_and_cache(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GITHUB_TOKEN", "secret")
    clean_env.setenv("GITHUB_API_URL", "https://github.example.com/api/v3")
    clean_env.setenv("GHEXPLORER_HTTP_CACHE", "memory")

    config = get_github_config(require_token=True)

    resilience = config.resilience
    assert config.authenticated is True
    assert resilience.base_url == "https://github.example.com/api/v3"
    assert resilience.default_headers is not None
    assert resilience.default_headers["Authorization"] == "Bearer secret"
    assert resilience.ratelimit is not None
    assert resilience.ratelimit.max_calls == 10
    assert resilience.cache is not None
    assert resilience.cache.backend == "memory"
    should_cache = resilience.cache.should_cache
    assert should_cache is not None
    assert should_cache({"id": 1, "full_name": "octo/hello"})
    assert not should_cache({"message": "Not Found", "documentation_url": "https://docs"})


@pytest.mark.usefixtures("clean_env")
def test_github_config_requires_token_when_asked() -> None:
    with pytest.raises(MissingConfigurationError, match="GITHUB_TOKEN"):
        get_github_config(require_token=True)


def test_github_config_rejects_unknown_cache_backend(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GHEXPLORER_HTTP_CACHE", "redis")

    with pytest.raises(ConfigurationError, match="GHEXPLORER_HTTP_CACHE"):
        get_github_config()
