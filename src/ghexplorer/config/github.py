"""GitHub API configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_GITHUB_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "ghexplorer"


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    resilience: ResilienceConfig
    authenticated: bool = False


def _is_cacheable(payload: object) -> bool:
    # GitHub error bodies carry a message and a documentation link
    if not isinstance(payload, dict):
        return True
    return not ("message" in payload and "documentation_url" in payload)


def _cache_config() -> CacheConfig | None:
    backend = optional_env_var("GHEXPLORER_HTTP_CACHE")
    if backend is None:
        return None
    if backend not in {"sqlite", "memory"}:
        raise ConfigurationError(
            f"GHEXPLORER_HTTP_CACHE must be 'sqlite' or 'memory', got {backend!r}",
            variable="GHEXPLORER_HTTP_CACHE",
        )
    return CacheConfig(enabled=True, backend=backend, should_cache=_is_cacheable)


def get_github_config(*, require_token: bool = False) -> GitHubConfig:
    """Build the GitHub client configuration from the environment.

    ``GITHUB_TOKEN`` is optional for public data; unauthenticated requests are
    limited to 60 per hour, so the rate limiter is tightened accordingly.
    """

    if require_token:
        token: str | None = require_env_vars(("GITHUB_TOKEN",))["GITHUB_TOKEN"]
    else:
        token = optional_env_var("GITHUB_TOKEN")

    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": USER_AGENT,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"

    calls_per_second = env_float("GHEXPLORER_GITHUB_RATE", 10.0 if token else 1.0)
    resilience = ResilienceConfig(
        name="github",
        base_url=optional_env_var("GITHUB_API_URL") or DEFAULT_GITHUB_BASE_URL,
        ratelimit=RateLimit(max_calls=max(1, int(calls_per_second)), per_seconds=1.0),
        retry=RetryPolicy(total=3),
        cache=_cache_config(),
        default_headers=headers,
    )
    return GitHubConfig(resilience=resilience, authenticated=bool(token))
