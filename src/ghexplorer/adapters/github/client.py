"""HTTP client for the GitHub REST API."""

from __future__ import annotations

import asyncio
import threading
from logging import getLogger
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import pydantic

from ghexplorer.adapters.http_resilience import ResilientClient
from ghexplorer.domain.pipeline.errors import TransientError, ValidationError

from .schema import CommitPayload, PullRequestPayload, RepositoryPayload, UserPayload

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from types import TracebackType

    from ghexplorer.config.github import GitHubConfig
    from ghexplorer.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

TModel = TypeVar("TModel", bound=pydantic.BaseModel)
TResult = TypeVar("TResult")

DEFAULT_PAGE_SIZE = 100


class GitHubAPIError(TransientError):
    """Raised when the GitHub API fails or returns an unexpected response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """Low-level client: one synchronous method per endpoint the pipeline needs.

    Requests from every calling thread run on one background event loop through
    one ``ResilientClient``, so its rate limiter, connection pool and cache are
    shared for the lifetime of this object. ``close`` stops the loop; the next
    call starts a fresh one.
    """

    def __init__(
        self,
        *,
        config: GitHubConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._http: ResilientClient | None = None

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            loop, thread, http = self._loop, self._thread, self._http
            self._loop = self._thread = self._http = None
        if loop is None or thread is None:
            return
        try:
            if http is not None:
                asyncio.run_coroutine_threadsafe(http.aclose(), loop).result()
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
            loop.close()
        log.debug("Closed GitHub client for %s", self._resilience.base_url)

    def get_repository(self, github_id: int) -> RepositoryPayload:
        return self._call(
            lambda http: self._get_model(http, f"repositories/{github_id}", RepositoryPayload)
        )

    def get_user(self, github_id: int) -> UserPayload:
        return self._call(lambda http: self._get_model(http, f"user/{github_id}", UserPayload))

    def get_pull_request(self, full_name: str, number: int) -> PullRequestPayload:
        return self._call(
            lambda http: self._get_model(
                http, f"repos/{full_name}/pulls/{number}", PullRequestPayload
            )
        )

    def get_commit(self, full_name: str, sha: str) -> CommitPayload:
        return self._call(
            lambda http: self._get_model(http, f"repos/{full_name}/commits/{sha}", CommitPayload)
        )

    def list_closed_pull_requests(
        self,
        full_name: str,
        *,
        per_page: int = DEFAULT_PAGE_SIZE,
        max_pages: int = 1,
    ) -> list[dict[str, Any]]:
        """Raw closed pull request payloads, newest first, as stored in staging."""

        return self._call(
            lambda http: self._list_closed_pull_requests_async(
                http, full_name, per_page=per_page, max_pages=max_pages
            )
        )

    def _call(self, request: Callable[[ResilientClient], Coroutine[Any, Any, TResult]]) -> TResult:
        loop, http = self._running()
        return asyncio.run_coroutine_threadsafe(request(http), loop).result()

    def _running(self) -> tuple[asyncio.AbstractEventLoop, ResilientClient]:
        with self._lock:
            if self._loop is None or self._http is None:
                http = self._client_factory(self._resilience)
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever, name="github-client", daemon=True
                )
                thread.start()
                self._loop, self._thread, self._http = loop, thread, http
            return self._loop, self._http

    async def _get_model(self, http: ResilientClient, path: str, model: type[TModel]) -> TModel:
        payload = await self._get_json(http, path)
        if not isinstance(payload, dict):
            raise GitHubAPIError(f"Unexpected GitHub response payload for {path}")
        try:
            return model.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid GitHub payload for {path}: {exc}") from exc

    async def _list_closed_pull_requests_async(
        self,
        http: ResilientClient,
        full_name: str,
        *,
        per_page: int,
        max_pages: int,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for page in range(1, max_pages + 1):
            payload = await self._get_json(
                http,
                f"repos/{full_name}/pulls",
                params={
                    "state": "closed",
                    "sort": "updated",
                    "direction": "desc",
                    "per_page": str(per_page),
                    "page": str(page),
                },
            )
            if not isinstance(payload, list):
                raise GitHubAPIError(f"Unexpected pull request listing for {full_name}")
            results.extend(item for item in payload if isinstance(item, dict))
            if len(payload) < per_page:
                break
        log.info("Fetched %s closed pull requests for %s", len(results), full_name)
        return results

    async def _get_json(
        self,
        client: ResilientClient,
        path: str,
        *,
        params: dict[str, str] | None = None,
    ) -> object:
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GitHubAPIError(
                f"GitHub returned {exc.response.status_code} for {path}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub request for {path} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubAPIError(f"GitHub returned invalid JSON for {path}") from exc
