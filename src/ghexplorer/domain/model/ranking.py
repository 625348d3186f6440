"""Contributor ranking snapshot rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ghexplorer.domain.model.entity import Entity

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


@dataclass(eq=False, kw_only=True)
class ContributorRanking(Entity):
    """Immutable once written; newer snapshots supersede by ``calculated_at``."""

    contributor_id: UUID
    contributor_github_id: int
    calculated_at: datetime
    rank_position: int
    total_score: float
    code_volume_score: float
    code_efficiency_score: float
    commit_impact_score: float
    collaboration_score: float
    repo_popularity_score: float
    repo_influence_score: float
    followers_score: float
    profile_completeness_score: float
    followers_count: int
    raw_lines_added: int
    raw_lines_removed: int
    raw_commits_count: int
    repositories_contributed: int
