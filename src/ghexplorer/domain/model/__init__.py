"""Public domain model surface."""

from __future__ import annotations

from ghexplorer.domain.model.drafts import (
    DRAFT_TYPES,
    AnyDraft,
    CommitDraft,
    ContributionDraft,
    ContributorDraft,
    Draft,
    DraftKey,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.model.entity import EnrichableEntity, Entity
from ghexplorer.domain.model.enums import (
    DEPENDENCY_ORDER,
    EnrichmentState,
    EntityKind,
    RunStatus,
    StagingState,
)
from ghexplorer.domain.model.github import (
    Commit,
    Contribution,
    Contributor,
    MergeRequest,
    Repository,
    looks_like_bot,
)
from ghexplorer.domain.model.operations import PipelineRun, PipelineSchedule
from ghexplorer.domain.model.ranking import ContributorRanking
from ghexplorer.domain.model.staging import StagingRecord

__all__ = [  # noqa: RUF022
    # drafts
    "AnyDraft",
    "CommitDraft",
    "ContributionDraft",
    "ContributorDraft",
    "DRAFT_TYPES",
    "Draft",
    "DraftKey",
    "MergeRequestDraft",
    "RepositoryDraft",
    # entities
    "Commit",
    "Contribution",
    "Contributor",
    "ContributorRanking",
    "EnrichableEntity",
    "Entity",
    "MergeRequest",
    "PipelineRun",
    "PipelineSchedule",
    "Repository",
    "StagingRecord",
    # enums
    "DEPENDENCY_ORDER",
    "EnrichmentState",
    "EntityKind",
    "RunStatus",
    "StagingState",
    # helpers
    "looks_like_bot",
]
