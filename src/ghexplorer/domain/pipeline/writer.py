"""Persist drafts, parents before children, one transaction per batch."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ghexplorer.domain.model import (
    CommitDraft,
    ContributionDraft,
    ContributorDraft,
    Draft,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline.context import ErrorRecord
from ghexplorer.domain.pipeline.errors import ErrorKind, ValidationError
from ghexplorer.domain.pipeline.stage import BaseStage, BatchOutcome, StageConfig, StageResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from ghexplorer.domain.model import Commit, MergeRequest
    from ghexplorer.domain.pipeline.context import PipelineContext
    from ghexplorer.domain.ports import IngestRepositories, IngestUnitOfWork

log = logging.getLogger(__name__)


class DatabaseWriter(BaseStage[Draft]):
    """Upsert drafts keyed by external id and resolve references to internal ids.

    Enriched data is never overwritten by pending data; the store's merge rules
    live on the entities themselves. Contribution summaries and top languages
    are recomputed from stored rows, so writing the same drafts twice is a no-op.
    """

    name = "database-writer"
    default_config = StageConfig(abort_on_error=True)

    def __init__(
        self,
        uow_factory: Callable[[], IngestUnitOfWork],
        *,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, sleep=sleep)
        self.uow_factory = uow_factory

    def execute(self, context: PipelineContext, config: StageConfig | None = None) -> StageResult:
        cfg = (config or self.config).with_overrides({"max_concurrency": 1})
        return super().execute(context, cfg)

    def items(self, context: PipelineContext) -> Sequence[Draft]:
        return context.entities.ordered()

    def process_batch(self, batch: Sequence[Draft], context: PipelineContext) -> BatchOutcome:
        outcome = BatchOutcome()
        touched = _TouchedRows()
        with self.uow_factory() as uow:
            for draft in batch:
                try:
                    self._write(uow.repositories, draft, touched)
                except ValidationError as exc:
                    log.warning("Not writing %s: %s", draft.item_ref, exc)
                    outcome.skipped += 1
                    outcome.errors.append(
                        ErrorRecord(
                            stage=self.name,
                            item_ref=draft.item_ref,
                            kind=ErrorKind.VALIDATION,
                            message=str(exc),
                        )
                    )
                    continue
                outcome.written += 1
            touched.refresh(uow.repositories)
            uow.commit()
        return outcome

    def _write(self, repos: IngestRepositories, draft: Draft, touched: _TouchedRows) -> None:
        match draft:
            case RepositoryDraft():
                touched.repositories.add(repos.repositories.upsert(draft).id)
            case ContributorDraft():
                repos.contributors.upsert(draft)
            case MergeRequestDraft():
                merge_request = self._write_merge_request(repos, draft)
                touched.pair(merge_request.author_id, merge_request.repository_id)
                touched.pair(merge_request.merged_by_id, merge_request.repository_id)
            case CommitDraft():
                commit = self._write_commit(repos, draft)
                touched.pair(commit.contributor_id, commit.repository_id)
            case ContributionDraft():
                touched.pair(*self._contribution_ids(repos, draft))
            case _:
                raise ValidationError(f"Unsupported draft {draft.KIND}", item_ref=draft.item_ref)

    def _write_merge_request(
        self, repos: IngestRepositories, draft: MergeRequestDraft
    ) -> MergeRequest:
        repository = repos.repositories.get_by_github_id(draft.repository_github_id)
        if repository is None:
            raise ValidationError(
                f"Unknown repository {draft.repository_github_id} for merge request",
                item_ref=draft.item_ref,
            )
        author = _contributor_id(repos, draft.author_github_id)
        merged_by = _contributor_id(repos, draft.merged_by_github_id)
        return repos.merge_requests.upsert(
            draft, repository_id=repository.id, author_id=author, merged_by_id=merged_by
        )

    def _write_commit(self, repos: IngestRepositories, draft: CommitDraft) -> Commit:
        repository = repos.repositories.get_by_github_id(draft.repository_github_id)
        if repository is None:
            raise ValidationError(
                f"Unknown repository {draft.repository_github_id} for commit",
                item_ref=draft.item_ref,
            )
        merge_request_id = None
        if draft.merge_request_github_id is not None:
            merge_request = repos.merge_requests.get_by_github_id(draft.merge_request_github_id)
            merge_request_id = merge_request.id if merge_request else None
        return repos.commits.upsert(
            draft,
            repository_id=repository.id,
            contributor_id=_contributor_id(repos, draft.author_github_id),
            merge_request_id=merge_request_id,
        )

    def _contribution_ids(
        self, repos: IngestRepositories, draft: ContributionDraft
    ) -> tuple[UUID, UUID]:
        contributor = repos.contributors.get_by_github_id(draft.contributor_github_id)
        repository = repos.repositories.get_by_github_id(draft.repository_github_id)
        if contributor is None or repository is None:
            raise ValidationError(
                "Contribution references an unknown contributor or repository",
                item_ref=draft.item_ref,
            )
        return contributor.id, repository.id


@dataclass(slots=True)
class _TouchedRows:
    """Contribution pairs and repositories written by one batch.

    Commit line counts, merge request links and repository languages all feed
    derived rows, so those rows are recomputed once per batch before commit.
    """

    pairs: set[tuple[UUID, UUID]] = field(default_factory=set)
    repositories: set[UUID] = field(default_factory=set)

    def pair(self, contributor_id: UUID | None, repository_id: UUID) -> None:
        if contributor_id is not None:
            self.pairs.add((contributor_id, repository_id))

    def refresh(self, repos: IngestRepositories) -> None:
        contributor_ids: set[UUID] = set()
        for contributor_id, repository_id in sorted(self.pairs):
            repos.contributions.refresh(contributor_id=contributor_id, repository_id=repository_id)
            contributor_ids.add(contributor_id)
        for repository_id in sorted(self.repositories):
            contributor_ids.update(
                row.contributor_id for row in repos.contributions.list_for_repository(repository_id)
            )
        for contributor_id in sorted(contributor_ids):
            contributor = repos.contributors.get(contributor_id)
            if contributor is not None:
                contributor.refresh_top_languages(
                    repos.contributions.repository_languages(contributor_id)
                )


def _contributor_id(repos: IngestRepositories, github_id: int | None) -> UUID | None:
    if github_id is None:
        return None
    contributor = repos.contributors.get_by_github_id(github_id)
    return contributor.id if contributor else None
