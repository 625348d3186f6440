"""In-memory entity drafts produced and refined during a pipeline run.

Drafts reference related entities by their external GitHub identifiers. They are
immutable; stages replace a draft with an updated copy instead of mutating it.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Self

from ghexplorer.domain.model.enums import EnrichmentState, EntityKind

if TYPE_CHECKING:
    from collections.abc import Mapping

type DraftKey = int | tuple[int, int] | tuple[int, str]


@dataclass(frozen=True, kw_only=True, slots=True)
class Draft:
    KIND: ClassVar[EntityKind]
    ENRICHABLE: ClassVar[bool] = True
    # Fields that point at other entities and are resolved at persistence time.
    REFERENCE_FIELDS: ClassVar[frozenset[str]] = frozenset()
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset()

    enrichment: EnrichmentState = EnrichmentState.PENDING

    @property
    def key(self) -> DraftKey:
        raise NotImplementedError

    @property
    def is_enriched(self) -> bool:
        return self.enrichment is EnrichmentState.ENRICHED

    @property
    def item_ref(self) -> str:
        return f"{self.KIND}:{self.key}"

    def record_fields(self) -> dict[str, object]:
        """Values copied onto the persistent entity (identity and references excluded)."""

        skipped = self.REFERENCE_FIELDS | {"enrichment"}
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in skipped}

    def merged_with(self, update: Self) -> Self:
        """Return a copy where every non-``None`` field of ``update`` wins."""

        changes: dict[str, Any] = {
            f.name: getattr(update, f.name)
            for f in fields(update)
            if f.name != "enrichment" and getattr(update, f.name) is not None
        }
        changes["enrichment"] = self.enrichment.advance(update.enrichment)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            payload[f.name] = value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        values: dict[str, Any] = {}
        for name, value in payload.items():
            if name == "enrichment":
                values[name] = EnrichmentState(value)
            elif name in cls.DATETIME_FIELDS and isinstance(value, str):
                values[name] = datetime.fromisoformat(value)
            elif isinstance(value, list):
                values[name] = tuple(value)
            else:
                values[name] = value
        return cls(**values)


@dataclass(frozen=True, kw_only=True, slots=True)
class RepositoryDraft(Draft):
    KIND: ClassVar[EntityKind] = EntityKind.REPOSITORY
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"created_at", "updated_at", "pushed_at"}
    )

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
    topics: tuple[str, ...] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None

    @property
    def key(self) -> int:
        return self.github_id


@dataclass(frozen=True, kw_only=True, slots=True)
class ContributorDraft(Draft):
    KIND: ClassVar[EntityKind] = EntityKind.CONTRIBUTOR

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
    is_bot: bool | None = None

    @property
    def key(self) -> int:
        return self.github_id

    def record_fields(self) -> dict[str, object]:
        values = Draft.record_fields(self)
        # bot status is sticky and handled by Contributor.refresh_bot_flag
        values.pop("is_bot", None)
        return values


@dataclass(frozen=True, kw_only=True, slots=True)
class MergeRequestDraft(Draft):
    KIND: ClassVar[EntityKind] = EntityKind.MERGE_REQUEST
    REFERENCE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "repository_github_id",
            "repository_full_name",
            "author_github_id",
            "merged_by_github_id",
        }
    )
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"created_at", "merged_at", "closed_at"}
    )

    github_id: int
    repository_github_id: int
    repository_full_name: str | None = None
    author_github_id: int | None = None
    merged_by_github_id: int | None = None
    number: int | None = None
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
    labels: tuple[str, ...] | None = None
    source_branch: str | None = None
    target_branch: str | None = None

    @property
    def key(self) -> int:
        return self.github_id


@dataclass(frozen=True, kw_only=True, slots=True)
class CommitDraft(Draft):
    KIND: ClassVar[EntityKind] = EntityKind.COMMIT
    REFERENCE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "repository_github_id",
            "repository_full_name",
            "author_github_id",
            "merge_request_github_id",
        }
    )
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset({"committed_at"})

    sha: str
    repository_github_id: int
    repository_full_name: str | None = None
    author_github_id: int | None = None
    merge_request_github_id: int | None = None
    author_name: str | None = None
    message: str | None = None
    additions: int | None = None
    deletions: int | None = None
    files_changed: int | None = None
    is_merge_commit: bool | None = None
    committed_at: datetime | None = None
    parents: tuple[str, ...] | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.repository_github_id, self.sha)

    @property
    def total_changes(self) -> int:
        return (self.additions or 0) + (self.deletions or 0)


@dataclass(frozen=True, kw_only=True, slots=True)
class ContributionDraft(Draft):
    """Marks a contributor/repository pair whose summary must be recomputed."""

    KIND: ClassVar[EntityKind] = EntityKind.CONTRIBUTION
    ENRICHABLE: ClassVar[bool] = False
    REFERENCE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"contributor_github_id", "repository_github_id"}
    )

    contributor_github_id: int
    repository_github_id: int

    @property
    def key(self) -> tuple[int, int]:
        return (self.contributor_github_id, self.repository_github_id)


type AnyDraft = (
    RepositoryDraft | ContributorDraft | MergeRequestDraft | CommitDraft | ContributionDraft
)

DRAFT_TYPES: dict[EntityKind, type[Draft]] = {
    EntityKind.REPOSITORY: RepositoryDraft,
    EntityKind.CONTRIBUTOR: ContributorDraft,
    EntityKind.MERGE_REQUEST: MergeRequestDraft,
    EntityKind.COMMIT: CommitDraft,
    EntityKind.CONTRIBUTION: ContributionDraft,
}
