"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    """Discriminator for the entity drafts flowing through a pipeline run."""

    REPOSITORY = "repository"
    CONTRIBUTOR = "contributor"
    MERGE_REQUEST = "merge_request"
    COMMIT = "commit"
    CONTRIBUTION = "contribution"


# Parents before children; the writer persists in this order.
DEPENDENCY_ORDER: tuple[EntityKind, ...] = (
    EntityKind.REPOSITORY,
    EntityKind.CONTRIBUTOR,
    EntityKind.MERGE_REQUEST,
    EntityKind.COMMIT,
    EntityKind.CONTRIBUTION,
)


class EnrichmentState(StrEnum):
    """Two-state machine: ``PENDING -> ENRICHED``. There is no way back."""

    PENDING = "pending"
    ENRICHED = "enriched"

    def advance(self, target: EnrichmentState) -> EnrichmentState:
        if self is EnrichmentState.ENRICHED:
            return self
        return target


class StagingState(StrEnum):
    """Two-state machine: ``UNPROCESSED -> PROCESSED``."""

    UNPROCESSED = "unprocessed"
    PROCESSED = "processed"


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING
