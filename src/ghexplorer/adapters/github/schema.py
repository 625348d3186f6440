"""Pydantic models describing the GitHub payload shapes the pipeline understands."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, ClassVar, Literal, cast

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    RootModel,
    Tag,
    field_validator,
)

log = logging.getLogger(__name__)

type PayloadShape = Literal["envelope", "pull_request", "repository", "user", "commit"]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class GitHubBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = {f"{type(self).__name__}.{key}" for key in extras}
        new_keys.difference_update(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug("GitHub payload: unmodeled keys: %s", ", ".join(sorted(new_keys)))


class UserPayload(GitHubBaseModel):
    id: int
    login: str
    type: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    company: str | None = None
    blog: str | None = None
    location: str | None = None
    email: str | None = None
    twitter_username: str | None = None
    followers: int | None = None
    following: int | None = None
    public_repos: int | None = None

    _normalize_blank = field_validator(
        "name", "bio", "company", "blog", "location", "email", "twitter_username", mode="before"
    )(_blank_to_none)


class LicensePayload(GitHubBaseModel):
    key: str | None = None
    name: str | None = None
    spdx_id: str | None = None


class RepositoryPayload(GitHubBaseModel):
    id: int
    name: str | None = None
    full_name: str | None = None
    owner: UserPayload | None = None
    description: str | None = None
    html_url: str | None = None
    stargazers_count: int | None = None
    forks_count: int | None = None
    watchers_count: int | None = None
    open_issues_count: int | None = None
    language: str | None = None
    license: LicensePayload | None = None
    size: int | None = None
    fork: bool | None = None
    archived: bool | None = None
    topics: list[str] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None


class GitActorPayload(GitHubBaseModel):
    """Git-level author or committer (not necessarily a GitHub account)."""

    name: str | None = None
    email: str | None = None
    date: datetime | None = None
    username: str | None = None


class CommitDetailPayload(GitHubBaseModel):
    message: str | None = None
    author: GitActorPayload | None = None
    committer: GitActorPayload | None = None


class CommitAuthorPayload(GitHubBaseModel):
    """Either a GitHub account (API shape) or a git actor (push webhook shape)."""

    id: int | None = None
    login: str | None = None
    type: str | None = None
    name: str | None = None
    email: str | None = None
    username: str | None = None


class CommitStatsPayload(GitHubBaseModel):
    additions: int | None = None
    deletions: int | None = None
    total: int | None = None


class CommitFilePayload(GitHubBaseModel):
    filename: str | None = None
    additions: int | None = None
    deletions: int | None = None


class ParentPayload(GitHubBaseModel):
    sha: str


class CommitPayload(GitHubBaseModel):
    sha: str = Field(validation_alias=AliasChoices("sha", "id"))
    message: str | None = None
    timestamp: datetime | None = None
    commit: CommitDetailPayload | None = None
    author: CommitAuthorPayload | None = None
    stats: CommitStatsPayload | None = None
    additions: int | None = None
    deletions: int | None = None
    files: list[CommitFilePayload] | None = None
    parents: list[ParentPayload] | None = None
    repository: RepositoryPayload | None = None

    @property
    def lines_added(self) -> int | None:
        if self.stats is not None and self.stats.additions is not None:
            return self.stats.additions
        return self.additions

    @property
    def lines_removed(self) -> int | None:
        if self.stats is not None and self.stats.deletions is not None:
            return self.stats.deletions
        return self.deletions


class LabelPayload(GitHubBaseModel):
    name: str


class BranchRefPayload(GitHubBaseModel):
    ref: str | None = None
    repo: RepositoryPayload | None = None


class PullRequestPayload(GitHubBaseModel):
    id: int
    number: int
    title: str | None = None
    body: str | None = None
    state: str | None = None
    draft: bool | None = None
    merged: bool | None = None
    created_at: datetime | None = None
    merged_at: datetime | None = None
    closed_at: datetime | None = None
    user: UserPayload | None = None
    merged_by: UserPayload | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    # the REST API returns a count; exported payloads sometimes embed the commits
    commits: int | list[CommitPayload] | None = None
    labels: list[LabelPayload] = Field(default_factory=list["LabelPayload"])
    head: BranchRefPayload | None = None
    base: BranchRefPayload | None = None
    repository: RepositoryPayload | None = None

    @property
    def is_merged(self) -> bool | None:
        if self.merged is not None:
            return self.merged
        if self.state is None and self.merged_at is None:
            return None
        return self.merged_at is not None


class WebhookEnvelope(GitHubBaseModel):
    action: str | None = None
    repository: RepositoryPayload
    pull_request: PullRequestPayload | None = None
    commits: list[CommitPayload] = Field(default_factory=list["CommitPayload"])
    sender: UserPayload | None = None


def classify(value: object) -> PayloadShape | None:
    """Name the payload shape by its distinguishing keys; ``None`` when unrecognised."""

    if isinstance(value, BaseModel):
        return _SHAPE_BY_MODEL.get(type(value))
    if not isinstance(value, Mapping):
        return None
    payload = cast("Mapping[str, object]", value)
    if "sha" in payload:
        return "commit"
    if isinstance(payload.get("repository"), Mapping) and (
        "pull_request" in payload
        or "commits" in payload
        or "sender" in payload
        or "action" in payload
        or "id" not in payload
    ):
        return "envelope"
    if "number" in payload and ("head" in payload or "base" in payload or "user" in payload):
        return "pull_request"
    if "full_name" in payload or "stargazers_count" in payload:
        return "repository"
    if "login" in payload:
        return "user"
    return None


_SHAPE_BY_MODEL: dict[type[BaseModel], PayloadShape] = {
    WebhookEnvelope: "envelope",
    PullRequestPayload: "pull_request",
    RepositoryPayload: "repository",
    UserPayload: "user",
    CommitPayload: "commit",
}


AnyPayload = Annotated[
    Annotated[WebhookEnvelope, Tag("envelope")]
    | Annotated[PullRequestPayload, Tag("pull_request")]
    | Annotated[RepositoryPayload, Tag("repository")]
    | Annotated[UserPayload, Tag("user")]
    | Annotated[CommitPayload, Tag("commit")],
    Discriminator(
        classify,
        custom_error_type="unknown_payload_shape",
        custom_error_message="Payload does not match any known GitHub entity shape",
    ),
]


class GitHubPayload(RootModel[AnyPayload]):
    """Tagged union over every accepted raw payload shape."""
