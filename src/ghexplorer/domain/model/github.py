"""Persistent GitHub entities.

Relationships between entities use internal identifiers only; external GitHub
identifiers are resolved into them by the database writer.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ghexplorer.domain.model.entity import EnrichableEntity, Entity
from ghexplorer.domain.model.enums import EntityKind

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID


def looks_like_bot(
    *,
    username: str | None,
    name: str | None = None,
    bio: str | None = None,
    account_type: str | None = None,
) -> bool:
    """Heuristic bot detection shared by extraction and persistence."""

    if account_type is not None and account_type.lower() == "bot":
        return True
    if username and "[bot]" in username.lower():
        return True
    return any(value and "bot" in value.lower() for value in (username, name, bio))


@dataclass(eq=False, kw_only=True)
class Repository(EnrichableEntity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.REPOSITORY

    github_id: int
    name: str | None = None
    full_name: str | None = None
    owner_login: str | None = None
    description: str | None = None
    url: str | None = None
    stars: int | None = None
    forks: int | None = None
    watchers: int | None = None
    open_issues: int | None = None
    primary_language: str | None = None
    license: str | None = None
    size_kb: int | None = None
    is_fork: bool | None = None
    is_archived: bool | None = None
    topics: list[str] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None


@dataclass(eq=False, kw_only=True)
class Contributor(EnrichableEntity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.CONTRIBUTOR

    github_id: int
    username: str | None = None
    name: str | None = None
    avatar: str | None = None
    bio: str | None = None
    company: str | None = None
    blog: str | None = None
    location: str | None = None
    email: str | None = None
    twitter_username: str | None = None
    followers: int | None = None
    following: int | None = None
    public_repos: int | None = None
    is_bot: bool = False
    top_languages: list[str] | None = None

    def refresh_bot_flag(self, *, flagged: bool = False) -> None:
        """Bot status is sticky: once detected it is never cleared."""

        self.is_bot = (
            self.is_bot
            or flagged
            or looks_like_bot(username=self.username, name=self.name, bio=self.bio)
        )

    def refresh_top_languages(self, languages: Iterable[str | None], *, limit: int = 3) -> None:
        counts = Counter(language for language in languages if language)
        if not counts:
            return
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        self.top_languages = [language for language, _ in ranked[:limit]]


@dataclass(eq=False, kw_only=True)
class MergeRequest(EnrichableEntity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.MERGE_REQUEST

    github_id: int
    repository_id: UUID
    number: int | None = None
    author_id: UUID | None = None
    merged_by_id: UUID | None = None
    title: str | None = None
    description: str | None = None
    state: str | None = None
    is_draft: bool | None = None
    is_merged: bool | None = None
    created_at: datetime | None = None
    merged_at: datetime | None = None
    closed_at: datetime | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    commits_count: int | None = None
    labels: list[str] | None = None
    source_branch: str | None = None
    target_branch: str | None = None


@dataclass(eq=False, kw_only=True)
class Commit(EnrichableEntity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.COMMIT

    sha: str
    repository_id: UUID
    contributor_id: UUID | None = None
    merge_request_id: UUID | None = None
    author_name: str | None = None
    message: str | None = None
    additions: int | None = None
    deletions: int | None = None
    files_changed: int | None = None
    is_merge_commit: bool | None = None
    committed_at: datetime | None = None
    parents: list[str] | None = None


@dataclass(eq=False, kw_only=True)
class Contribution(Entity):
    """Contributor/repository summary, recomputed from stored commits and merge requests."""

    contributor_id: UUID
    repository_id: UUID
    commit_count: int = 0
    pull_requests: int = 0
    reviews: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    first_contribution_at: datetime | None = None
    last_contribution_at: datetime | None = None
