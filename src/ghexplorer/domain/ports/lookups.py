"""Ports for decoding raw payloads and for supplemental entity lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ghexplorer.domain.model import (
        CommitDraft,
        ContributorDraft,
        Draft,
        MergeRequestDraft,
        RepositoryDraft,
    )


@runtime_checkable
class PayloadDecoder(Protocol):
    """Turn one raw payload into entity drafts; raise ``ValidationError`` if malformed."""

    def decode(self, payload: Mapping[str, Any]) -> Sequence[Draft]: ...


@runtime_checkable
class EnrichmentLookup(Protocol):
    """Supplemental lookups by external id.

    Each method returns the same draft shape with the extended fields filled in
    and ``enrichment`` set to ``ENRICHED``. Network and HTTP failures surface as
    ``TransientError``; drafts that cannot be looked up at all raise
    ``ValidationError``.
    """

    def repository(self, draft: RepositoryDraft) -> RepositoryDraft: ...

    def contributor(self, draft: ContributorDraft) -> ContributorDraft: ...

    def merge_request(self, draft: MergeRequestDraft) -> MergeRequestDraft: ...

    def commit(self, draft: CommitDraft) -> CommitDraft: ...

    def close(self) -> None:
        """Release connections held for the lookups; later calls may reopen them."""
