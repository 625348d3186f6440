"""Contributor ranking: pure scoring functions plus the engine that persists snapshots.

Weights (sum 1.0)::

    volume 0.05, commit impact 0.10, efficiency 0.15, collaboration 0.20,
    repo popularity 0.20, repo influence 0.10, followers 0.15, profile 0.05

Ranking uses standard competition ranking: equal totals share a rank and the
next distinct total takes its position (1, 1, 3).
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ghexplorer.domain.model import ContributorRanking
from ghexplorer.domain.pipeline.stage import BaseStage, BatchOutcome, StageConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from ghexplorer.domain.pipeline.context import PipelineContext
    from ghexplorer.domain.ports import RankingUnitOfWork

log = logging.getLogger(__name__)

TOTAL_PRECISION = 6
POPULAR_REPOSITORY_STARS = 1000

# points per populated profile field
PROFILE_POINTS: dict[str, int] = {
    "username": 10,
    "name": 10,
    "avatar": 10,
    "bio": 15,
    "company": 10,
    "location": 10,
    "blog": 10,
    "twitter_username": 10,
    "top_languages": 15,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class ContributorMetrics:
    """Raw per-contributor inputs collected from persisted entities."""

    contributor_id: UUID
    github_id: int
    username: str | None = None
    name: str | None = None
    avatar: str | None = None
    bio: str | None = None
    company: str | None = None
    location: str | None = None
    blog: str | None = None
    twitter_username: str | None = None
    top_languages: tuple[str, ...] = ()
    followers: int = 0
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    repositories: int = 0
    # (merge request line total, summed line total of its commits by this contributor)
    merge_request_totals: tuple[tuple[int, int], ...] = ()
    # distinct non-bot contributors of each merge request the contributor worked on
    team_sizes: tuple[int, ...] = ()
    # (stars, forks) of each non-fork repository contributed to
    repository_popularity: tuple[tuple[int, int], ...] = ()

    @property
    def total_lines(self) -> int:
        return self.lines_added + self.lines_removed


@dataclass(frozen=True, slots=True)
class CollaborationHighlight:
    merge_request_id: UUID
    github_id: int
    repository_full_name: str | None
    title: str | None
    collaborators: int


@dataclass(frozen=True, slots=True)
class RankingWeights:
    code_volume: float = 0.05
    commit_impact: float = 0.10
    code_efficiency: float = 0.15
    collaboration: float = 0.20
    repo_popularity: float = 0.20
    repo_influence: float = 0.10
    followers: float = 0.15
    profile_completeness: float = 0.05

    def __post_init__(self) -> None:
        total = sum(getattr(self, f.name) for f in fields(self))
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Ranking weights must sum to 1.0, got {total}")


@dataclass(frozen=True, slots=True)
class SubScores:
    code_volume: float = 0.0
    commit_impact: float = 0.0
    code_efficiency: float = 0.0
    collaboration: float = 0.0
    repo_popularity: float = 0.0
    repo_influence: float = 0.0
    followers: float = 0.0
    profile_completeness: float = 0.0

    def total(self, weights: RankingWeights) -> float:
        value = sum(getattr(self, f.name) * getattr(weights, f.name) for f in fields(self))
        return round(value, TOTAL_PRECISION)


def normalize(value: float, maximum: float) -> float:
    return value * 100.0 / (maximum or 1)


def profile_completeness(metrics: ContributorMetrics) -> float:
    score = sum(points for name, points in PROFILE_POINTS.items() if getattr(metrics, name))
    return float(min(score, 100))


def merge_request_efficiency(pr_total: int, commit_total: int) -> float:
    if commit_total == 0:
        return 0.0
    if pr_total == commit_total:
        return 100.0
    return max(0.0, (1 - abs(pr_total - commit_total) / commit_total) * 100)


def code_efficiency(samples: Sequence[tuple[int, int]]) -> float:
    if not samples:
        return 50.0
    return sum(merge_request_efficiency(pr, commit) for pr, commit in samples) / len(samples)


def collaboration(team_sizes: Sequence[int]) -> float:
    if not team_sizes:
        return 0.0
    average = sum(team_sizes) / len(team_sizes)
    if average <= 1:
        return 0.0
    return 100 * (1 - average**-0.8)


def repository_popularity(repositories: Sequence[tuple[int, int]]) -> float:
    if not repositories:
        return 0.0
    weighted = sum(stars * 0.7 + forks * 0.3 for stars, forks in repositories)
    popular = sum(1 for stars, _ in repositories if stars >= POPULAR_REPOSITORY_STARS)
    score = math.log(weighted + 1) / math.log(25000) * 60 + min(popular, 5) * 8
    return min(100.0, score)


def competition_ranks(totals: Sequence[float]) -> list[int]:
    """Ranks for ``totals`` already sorted in descending order."""

    ranks: list[int] = []
    for position, total in enumerate(totals, start=1):
        if ranks and total == totals[position - 2]:
            ranks.append(ranks[-1])
        else:
            ranks.append(position)
    return ranks


@dataclass(frozen=True, slots=True)
class ScoredContributor:
    metrics: ContributorMetrics
    scores: SubScores
    total: float


def score_contributors(
    metrics: Sequence[ContributorMetrics],
    weights: RankingWeights | None = None,
) -> list[ScoredContributor]:
    """Score and order contributors; ties on the total keep github-id order."""

    weights = weights or RankingWeights()
    ordered = sorted(metrics, key=lambda m: m.github_id)
    max_lines = max((m.total_lines for m in ordered), default=0)
    max_commits = max((m.commits for m in ordered), default=0)
    max_followers = max((m.followers for m in ordered), default=0)
    max_repositories = max((m.repositories for m in ordered), default=0)

    scored: list[ScoredContributor] = []
    for item in ordered:
        scores = SubScores(
            code_volume=normalize(item.total_lines, max_lines),
            commit_impact=normalize(item.commits, max_commits),
            code_efficiency=code_efficiency(item.merge_request_totals),
            collaboration=collaboration(item.team_sizes),
            repo_popularity=repository_popularity(item.repository_popularity),
            repo_influence=normalize(item.repositories, max_repositories),
            followers=normalize(item.followers, max_followers),
            profile_completeness=profile_completeness(item),
        )
        scored.append(ScoredContributor(metrics=item, scores=scores, total=scores.total(weights)))
    scored.sort(key=lambda s: (-s.total, s.metrics.github_id))
    return scored


def build_rankings(
    metrics: Sequence[ContributorMetrics],
    *,
    calculated_at: datetime,
    weights: RankingWeights | None = None,
) -> list[ContributorRanking]:
    scored = score_contributors(metrics, weights)
    ranks = competition_ranks([s.total for s in scored])
    return [
        ContributorRanking(
            contributor_id=s.metrics.contributor_id,
            contributor_github_id=s.metrics.github_id,
            calculated_at=calculated_at,
            rank_position=rank,
            total_score=s.total,
            code_volume_score=s.scores.code_volume,
            code_efficiency_score=s.scores.code_efficiency,
            commit_impact_score=s.scores.commit_impact,
            collaboration_score=s.scores.collaboration,
            repo_popularity_score=s.scores.repo_popularity,
            repo_influence_score=s.scores.repo_influence,
            followers_score=s.scores.followers,
            profile_completeness_score=s.scores.profile_completeness,
            followers_count=s.metrics.followers,
            raw_lines_added=s.metrics.lines_added,
            raw_lines_removed=s.metrics.lines_removed,
            raw_commits_count=s.metrics.commits,
            repositories_contributed=s.metrics.repositories,
        )
        for s, rank in zip(scored, ranks, strict=True)
    ]


class RankingEngine:
    """Compute ranking snapshots from persisted entities and query stored ones."""

    def __init__(
        self,
        uow_factory: Callable[[], RankingUnitOfWork],
        *,
        weights: RankingWeights | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.uow_factory = uow_factory
        self.weights = weights or RankingWeights()
        self.clock = clock

    def compute(self, *, calculated_at: datetime | None = None) -> list[ContributorRanking]:
        timestamp = calculated_at or self.clock()
        with self.uow_factory() as uow:
            metrics = uow.repositories.metrics.contributor_metrics()
            rows = build_rankings(metrics, calculated_at=timestamp, weights=self.weights)
            uow.repositories.rankings.add_all(rows)
            uow.commit()
        log.info("Computed rankings for %s contributors at %s", len(rows), timestamp.isoformat())
        return rows

    def latest(self, *, limit: int | None = None) -> list[ContributorRanking]:
        with self.uow_factory() as uow:
            timestamp = uow.repositories.rankings.latest_timestamp()
            if timestamp is None:
                return []
            return uow.repositories.rankings.at(timestamp, limit=limit)

    def at(self, calculated_at: datetime, *, limit: int | None = None) -> list[ContributorRanking]:
        with self.uow_factory() as uow:
            return uow.repositories.rankings.at(calculated_at, limit=limit)

    def most_collaborative_merge_request(
        self, contributor_id: UUID
    ) -> CollaborationHighlight | None:
        with self.uow_factory() as uow:
            return uow.repositories.metrics.most_collaborative_merge_request(contributor_id)


class RankingStage(BaseStage[datetime]):
    """Pipeline wrapper around one ranking computation."""

    name = "contributor-ranking"
    default_config = StageConfig(batch_size=1, abort_on_error=True)

    def __init__(
        self,
        engine: RankingEngine,
        *,
        config: StageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, sleep=sleep)
        self.engine = engine
        self._timestamps: list[datetime] = []

    def prepare(self, context: PipelineContext) -> None:
        self._timestamps = [self.engine.clock()]

    def items(self, context: PipelineContext) -> Sequence[datetime]:
        return self._timestamps

    def process_batch(self, batch: Sequence[datetime], context: PipelineContext) -> BatchOutcome:
        outcome = BatchOutcome()
        for calculated_at in batch:
            outcome.written += len(self.engine.compute(calculated_at=calculated_at))
        return outcome
