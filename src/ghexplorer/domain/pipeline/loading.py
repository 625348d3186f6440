"""Load stored pending entities back into drafts for a later enrichment pass."""

from __future__ import annotations

import logging
import time
from dataclasses import fields
from typing import TYPE_CHECKING, Any

from ghexplorer.domain.model import (
    CommitDraft,
    ContributorDraft,
    Draft,
    EnrichmentState,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline.stage import BaseStage, BatchOutcome, StageConfig, StageResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ghexplorer.domain.model import Commit, Contributor, MergeRequest, Repository
    from ghexplorer.domain.pipeline.context import PipelineContext
    from ghexplorer.domain.ports import IngestRepositories, IngestUnitOfWork

log = logging.getLogger(__name__)


def _copy_fields(draft_type: type[Draft], entity: object) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for f in fields(draft_type):
        if f.name == "enrichment" or f.name in draft_type.REFERENCE_FIELDS:
            continue
        if not hasattr(entity, f.name):
            continue
        value = getattr(entity, f.name)
        values[f.name] = tuple(value) if isinstance(value, list) else value
    return values


def repository_draft(entity: Repository) -> RepositoryDraft:
    return RepositoryDraft(
        enrichment=EnrichmentState.PENDING, **_copy_fields(RepositoryDraft, entity)
    )


def contributor_draft(entity: Contributor) -> ContributorDraft:
    return ContributorDraft(
        enrichment=EnrichmentState.PENDING, **_copy_fields(ContributorDraft, entity)
    )


class PendingEntityLoader(BaseStage[Draft]):
    """Turn stored entities that were never enriched into pending drafts.

    The loader runs once per run: on resume, a non-zero checkpoint means its
    drafts are already part of the restored context.
    """

    name = "pending-loader"
    default_config = StageConfig(abort_on_error=True)

    def __init__(
        self,
        uow_factory: Callable[[], IngestUnitOfWork],
        *,
        limit: int = 1000,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, sleep=sleep)
        self.uow_factory = uow_factory
        self.limit = limit
        self._loaded: list[Draft] = []

    def execute(self, context: PipelineContext, config: StageConfig | None = None) -> StageResult:
        if context.checkpoint_for(self.checkpoint_key) > 0:
            log.info("Pending entities already loaded for run %s", context.run_id)
            return StageResult(stage=self.name, items=0, batches=0)
        return super().execute(context, config)

    def prepare(self, context: PipelineContext) -> None:
        with self.uow_factory() as uow:
            self._loaded = load_pending_drafts(uow.repositories, limit=self.limit)
        log.info("Loaded %s pending entities", len(self._loaded))

    def items(self, context: PipelineContext) -> Sequence[Draft]:
        return self._loaded

    def process_batch(self, batch: Sequence[Draft], context: PipelineContext) -> BatchOutcome:
        return BatchOutcome(entities=list(batch))


def load_pending_drafts(repos: IngestRepositories, *, limit: int) -> list[Draft]:
    drafts: list[Draft] = []
    drafts.extend(repository_draft(row) for row in repos.repositories.list_pending(limit=limit))
    drafts.extend(contributor_draft(row) for row in repos.contributors.list_pending(limit=limit))
    for merge_request in repos.merge_requests.list_pending(limit=limit):
        draft = _merge_request_draft(repos, merge_request)
        if draft is not None:
            drafts.append(draft)
    for commit in repos.commits.list_pending(limit=limit):
        draft = _commit_draft(repos, commit)
        if draft is not None:
            drafts.append(draft)
    return drafts


def _merge_request_draft(
    repos: IngestRepositories, entity: MergeRequest
) -> MergeRequestDraft | None:
    repository = repos.repositories.get(entity.repository_id)
    if repository is None:
        log.warning("Merge request %s has no stored repository", entity.github_id)
        return None
    author = repos.contributors.get(entity.author_id) if entity.author_id else None
    merged_by = repos.contributors.get(entity.merged_by_id) if entity.merged_by_id else None
    return MergeRequestDraft(
        enrichment=EnrichmentState.PENDING,
        repository_github_id=repository.github_id,
        repository_full_name=repository.full_name,
        author_github_id=author.github_id if author else None,
        merged_by_github_id=merged_by.github_id if merged_by else None,
        **_copy_fields(MergeRequestDraft, entity),
    )


def _commit_draft(repos: IngestRepositories, entity: Commit) -> CommitDraft | None:
    repository = repos.repositories.get(entity.repository_id)
    if repository is None:
        log.warning("Commit %s has no stored repository", entity.sha)
        return None
    author = repos.contributors.get(entity.contributor_id) if entity.contributor_id else None
    merge_request = (
        repos.merge_requests.get(entity.merge_request_id) if entity.merge_request_id else None
    )
    return CommitDraft(
        enrichment=EnrichmentState.PENDING,
        repository_github_id=repository.github_id,
        repository_full_name=repository.full_name,
        author_github_id=author.github_id if author else None,
        merge_request_github_id=merge_request.github_id if merge_request else None,
        **_copy_fields(CommitDraft, entity),
    )
