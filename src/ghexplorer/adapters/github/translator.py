"""Translate GitHub payloads into entity drafts."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any

import pydantic

from ghexplorer.domain.model import (
    CommitDraft,
    ContributionDraft,
    ContributorDraft,
    Draft,
    EnrichmentState,
    MergeRequestDraft,
    RepositoryDraft,
    looks_like_bot,
)
from ghexplorer.domain.pipeline.errors import ValidationError

from .schema import (
    CommitPayload,
    GitHubPayload,
    PullRequestPayload,
    RepositoryPayload,
    UserPayload,
    WebhookEnvelope,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

log = getLogger(__name__)

PENDING = EnrichmentState.PENDING


def parse_payload(payload: Mapping[str, Any]) -> GitHubPayload:
    try:
        return GitHubPayload.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(_summarize(exc)) from exc


def _summarize(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    more = f" (+{exc.error_count() - 1} more)" if exc.error_count() > 1 else ""
    return f"{location or 'payload'}: {first['msg']}{more}"


def repository_draft(
    payload: RepositoryPayload, *, enrichment: EnrichmentState = PENDING
) -> RepositoryDraft:
    return RepositoryDraft(
        enrichment=enrichment,
        github_id=payload.id,
        name=payload.name,
        full_name=payload.full_name,
        owner_login=payload.owner.login if payload.owner else None,
        description=payload.description,
        url=payload.html_url,
        stars=payload.stargazers_count,
        forks=payload.forks_count,
        watchers=payload.watchers_count,
        open_issues=payload.open_issues_count,
        primary_language=payload.language,
        license=(payload.license.spdx_id or payload.license.name) if payload.license else None,
        size_kb=payload.size,
        is_fork=payload.fork,
        is_archived=payload.archived,
        topics=tuple(payload.topics) if payload.topics is not None else None,
        created_at=payload.created_at,
        updated_at=payload.updated_at,
        pushed_at=payload.pushed_at,
    )


def contributor_draft(
    payload: UserPayload, *, enrichment: EnrichmentState = PENDING
) -> ContributorDraft:
    return ContributorDraft(
        enrichment=enrichment,
        github_id=payload.id,
        username=payload.login,
        name=payload.name,
        avatar=payload.avatar_url,
        bio=payload.bio,
        company=payload.company,
        blog=payload.blog,
        location=payload.location,
        email=payload.email,
        twitter_username=payload.twitter_username,
        followers=payload.followers,
        following=payload.following,
        public_repos=payload.public_repos,
        is_bot=looks_like_bot(
            username=payload.login,
            name=payload.name,
            bio=payload.bio,
            account_type=payload.type,
        ),
    )


def merge_request_draft(
    payload: PullRequestPayload,
    *,
    repository_github_id: int,
    repository_full_name: str | None,
    enrichment: EnrichmentState = PENDING,
) -> MergeRequestDraft:
    commits = payload.commits
    commits_count = len(commits) if isinstance(commits, list) else commits
    return MergeRequestDraft(
        enrichment=enrichment,
        github_id=payload.id,
        repository_github_id=repository_github_id,
        repository_full_name=repository_full_name,
        author_github_id=payload.user.id if payload.user else None,
        merged_by_github_id=payload.merged_by.id if payload.merged_by else None,
        number=payload.number,
        title=payload.title,
        description=payload.body,
        state=payload.state,
        is_draft=payload.draft,
        is_merged=payload.is_merged,
        created_at=payload.created_at,
        merged_at=payload.merged_at,
        closed_at=payload.closed_at,
        additions=payload.additions,
        deletions=payload.deletions,
        changed_files=payload.changed_files,
        commits_count=commits_count,
        labels=tuple(label.name for label in payload.labels) or None,
        source_branch=payload.head.ref if payload.head else None,
        target_branch=payload.base.ref if payload.base else None,
    )


def commit_author_id(payload: CommitPayload) -> int | None:
    return payload.author.id if payload.author is not None else None


def commit_draft(
    payload: CommitPayload,
    *,
    repository_github_id: int,
    repository_full_name: str | None,
    merge_request_github_id: int | None = None,
    enrichment: EnrichmentState = PENDING,
) -> CommitDraft:
    detail = payload.commit
    git_author = detail.author if detail else None
    author_name = git_author.name if git_author else None
    if author_name is None and payload.author is not None:
        author_name = payload.author.name or payload.author.login
    parents = tuple(parent.sha for parent in payload.parents) if payload.parents else None
    return CommitDraft(
        enrichment=enrichment,
        sha=payload.sha,
        repository_github_id=repository_github_id,
        repository_full_name=repository_full_name,
        author_github_id=commit_author_id(payload),
        merge_request_github_id=merge_request_github_id,
        author_name=author_name,
        message=(detail.message if detail else None) or payload.message,
        additions=payload.lines_added,
        deletions=payload.lines_removed,
        files_changed=len(payload.files) if payload.files is not None else None,
        is_merge_commit=len(parents) > 1 if parents is not None else None,
        committed_at=(git_author.date if git_author else None) or payload.timestamp,
        parents=parents,
    )


def _commit_author_draft(payload: CommitPayload) -> ContributorDraft | None:
    author = payload.author
    if author is None or author.id is None or author.login is None:
        return None
    return ContributorDraft(
        github_id=author.id,
        username=author.login,
        is_bot=looks_like_bot(username=author.login, account_type=author.type),
    )


class ExtractedEntities:
    """Drafts collected from one payload, deduplicated by key."""

    def __init__(self) -> None:
        self._drafts: dict[tuple[str, object], Draft] = {}

    def add(self, draft: Draft | None) -> None:
        if draft is None:
            return
        key = (draft.KIND.value, draft.key)
        existing = self._drafts.get(key)
        self._drafts[key] = existing.merged_with(draft) if existing is not None else draft

    def contribution(self, contributor_github_id: int | None, repository_github_id: int) -> None:
        if contributor_github_id is None:
            return
        self.add(
            ContributionDraft(
                contributor_github_id=contributor_github_id,
                repository_github_id=repository_github_id,
            )
        )

    def drafts(self) -> list[Draft]:
        return list(self._drafts.values())


def _add_commit(
    extracted: ExtractedEntities,
    payload: CommitPayload,
    repository: RepositoryPayload,
    *,
    merge_request_github_id: int | None = None,
) -> None:
    extracted.add(
        commit_draft(
            payload,
            repository_github_id=repository.id,
            repository_full_name=repository.full_name,
            merge_request_github_id=merge_request_github_id,
        )
    )
    extracted.add(_commit_author_draft(payload))
    extracted.contribution(commit_author_id(payload), repository.id)


def _add_pull_request(
    extracted: ExtractedEntities,
    payload: PullRequestPayload,
    repository: RepositoryPayload | None,
) -> None:
    repository = repository or payload.repository or (payload.base.repo if payload.base else None)
    if repository is None:
        raise ValidationError(f"Pull request {payload.id} has no repository context")
    extracted.add(repository_draft(repository))
    extracted.add(
        merge_request_draft(
            payload,
            repository_github_id=repository.id,
            repository_full_name=repository.full_name,
        )
    )
    # the merging user counts as a reviewer of the repository
    for user in (payload.user, payload.merged_by):
        if user is not None:
            extracted.add(contributor_draft(user))
            extracted.contribution(user.id, repository.id)
    if isinstance(payload.commits, list):
        for commit in payload.commits:
            _add_commit(extracted, commit, repository, merge_request_github_id=payload.id)


def translate(parsed: GitHubPayload) -> list[Draft]:
    """Flatten one decoded payload into drafts, parents included."""

    extracted = ExtractedEntities()
    match parsed.root:
        case WebhookEnvelope() as envelope:
            extracted.add(repository_draft(envelope.repository))
            if envelope.sender is not None:
                extracted.add(contributor_draft(envelope.sender))
            merge_request_id = None
            if envelope.pull_request is not None:
                _add_pull_request(extracted, envelope.pull_request, envelope.repository)
                merge_request_id = envelope.pull_request.id
            for commit in envelope.commits:
                _add_commit(
                    extracted,
                    commit,
                    envelope.repository,
                    merge_request_github_id=merge_request_id,
                )
        case PullRequestPayload() as pull_request:
            _add_pull_request(extracted, pull_request, None)
        case RepositoryPayload() as repository:
            extracted.add(repository_draft(repository))
            if repository.owner is not None and repository.owner.type == "User":
                extracted.add(contributor_draft(repository.owner))
        case UserPayload() as user:
            extracted.add(contributor_draft(user))
        case CommitPayload() as commit:
            if commit.repository is None:
                raise ValidationError(f"Commit {commit.sha} has no repository context")
            extracted.add(repository_draft(commit.repository))
            _add_commit(extracted, commit, commit.repository)
    return extracted.drafts()


class GitHubPayloadDecoder:
    """``PayloadDecoder`` for raw GitHub JSON payloads."""

    def decode(self, payload: Mapping[str, Any]) -> list[Draft]:
        drafts = translate(parse_payload(payload))
        log.debug("Decoded payload into %s drafts", len(drafts))
        return drafts


if TYPE_CHECKING:
    from ghexplorer.domain.ports import PayloadDecoder

    _decoder_check: PayloadDecoder = GitHubPayloadDecoder()
