"""Supplemental GitHub lookups used by the enrichment stage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ghexplorer.domain.model import EnrichmentState
from ghexplorer.domain.pipeline.errors import ValidationError

from .translator import commit_draft, contributor_draft, merge_request_draft, repository_draft

if TYPE_CHECKING:
    from ghexplorer.domain.model import (
        CommitDraft,
        ContributorDraft,
        MergeRequestDraft,
        RepositoryDraft,
    )

    from .client import GitHubClient

ENRICHED = EnrichmentState.ENRICHED


class GitHubEnrichmentLookup:
    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    def close(self) -> None:
        self.client.close()

    def repository(self, draft: RepositoryDraft) -> RepositoryDraft:
        payload = self.client.get_repository(draft.github_id)
        return repository_draft(payload, enrichment=ENRICHED)

    def contributor(self, draft: ContributorDraft) -> ContributorDraft:
        payload = self.client.get_user(draft.github_id)
        return contributor_draft(payload, enrichment=ENRICHED)

    def merge_request(self, draft: MergeRequestDraft) -> MergeRequestDraft:
        if draft.repository_full_name is None or draft.number is None:
            raise ValidationError(
                "Merge request lookup needs the repository full name and number",
                item_ref=draft.item_ref,
            )
        payload = self.client.get_pull_request(draft.repository_full_name, draft.number)
        return merge_request_draft(
            payload,
            repository_github_id=draft.repository_github_id,
            repository_full_name=draft.repository_full_name,
            enrichment=ENRICHED,
        )

    def commit(self, draft: CommitDraft) -> CommitDraft:
        if draft.repository_full_name is None:
            raise ValidationError(
                "Commit lookup needs the repository full name", item_ref=draft.item_ref
            )
        payload = self.client.get_commit(draft.repository_full_name, draft.sha)
        return commit_draft(
            payload,
            repository_github_id=draft.repository_github_id,
            repository_full_name=draft.repository_full_name,
            merge_request_github_id=draft.merge_request_github_id,
            enrichment=ENRICHED,
        )
