"""GitHub adapter: payload decoding, REST client and enrichment lookups."""

from __future__ import annotations

from .client import GitHubAPIError, GitHubClient
from .lookup import GitHubEnrichmentLookup
from .schema import GitHubPayload, classify
from .translator import GitHubPayloadDecoder, parse_payload, translate

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubEnrichmentLookup",
    "GitHubPayload",
    "GitHubPayloadDecoder",
    "classify",
    "parse_payload",
    "translate",
]
