from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from ghexplorer.domain.model import (
    CommitDraft,
    ContributionDraft,
    ContributorDraft,
    MergeRequestDraft,
    RepositoryDraft,
)
from ghexplorer.domain.pipeline import DatabaseWriter, PipelineContext
from ghexplorer.domain.ranking import RankingEngine

if TYPE_CHECKING:
    from collections.abc import Callable

    from ghexplorer.adapters.sqlalchemy import (
        SqlAlchemyIngestUnitOfWork,
        SqlAlchemyRankingUnitOfWork,
    )

FIRST = datetime(2024, 8, 1, 9, tzinfo=UTC)
SECOND = datetime(2024, 8, 2, 9, tzinfo=UTC)


@pytest.fixture
def populated(ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork]) -> None:
    context = PipelineContext()
    for draft in (
        RepositoryDraft(github_id=42, full_name="octo/hello", stars=2000, forks=100),
        RepositoryDraft(github_id=43, full_name="alice/hello-fork", is_fork=True, stars=1),
        ContributorDraft(github_id=1, username="alice", name="Alice", bio="Builds things"),
        ContributorDraft(github_id=2, username="dave", followers=10),
        ContributorDraft(github_id=3, username="dependabot[bot]"),
        MergeRequestDraft(
            github_id=500,
            repository_github_id=42,
            author_github_id=1,
            title="Add feature",
            additions=20,
            deletions=0,
        ),
        CommitDraft(
            sha="c1",
            repository_github_id=42,
            author_github_id=1,
            merge_request_github_id=500,
            additions=10,
            deletions=0,
        ),
        CommitDraft(
            sha="c2",
            repository_github_id=42,
            author_github_id=2,
            merge_request_github_id=500,
            additions=5,
            deletions=5,
        ),
        CommitDraft(sha="c3", repository_github_id=42, author_github_id=3, additions=99),
        CommitDraft(sha="c4", repository_github_id=43, author_github_id=1, additions=500),
        ContributionDraft(contributor_github_id=1, repository_github_id=42),
        ContributionDraft(contributor_github_id=2, repository_github_id=42),
    ):
        context.entities.add(draft)
    DatabaseWriter(ingest_uow).execute(context)


@pytest.mark.usefixtures("populated")
def test_metrics_exclude_bots_and_forks(
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
) -> None:
    with ranking_uow() as uow:
        metrics = {m.github_id: m for m in uow.repositories.metrics.contributor_metrics()}

    assert set(metrics) == {1, 2}
    alice = metrics[1]
    assert alice.commits == 1
    assert alice.lines_added == 10
    assert alice.repositories == 1
    assert alice.merge_request_totals == ((20, 10),)
    assert alice.team_sizes == (2,)
    assert alice.repository_popularity == ((2000, 100),)
    assert alice.top_languages == ()
    assert metrics[2].followers == 10
    assert metrics[2].total_lines == 10


@pytest.mark.usefixtures("populated")
def test_engine_persists_snapshots_and_serves_latest(
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
) -> None:
    engine = RankingEngine(ranking_uow)

    first = engine.compute(calculated_at=FIRST)
    engine.compute(calculated_at=SECOND)

    assert [row.rank_position for row in first] == [1, 2]
    latest = engine.latest()
    assert [row.calculated_at for row in latest] == [SECOND, SECOND]
    earlier = engine.at(FIRST)
    assert [row.contributor_github_id for row in earlier] == [
        row.contributor_github_id for row in first
    ]
    assert [row.total_score for row in earlier] == [row.total_score for row in first]
    assert len(engine.latest(limit=1)) == 1


def test_latest_without_snapshots_is_empty(
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
) -> None:
    assert RankingEngine(ranking_uow).latest() == []
    assert RankingEngine(ranking_uow).compute(calculated_at=FIRST) == []


@pytest.mark.usefixtures("populated")
def test_most_collaborative_merge_request(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
    ranking_uow: Callable[[], SqlAlchemyRankingUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        alice = uow.repositories.contributors.get_by_github_id(1)
        bot = uow.repositories.contributors.get_by_github_id(3)
    assert alice is not None
    assert bot is not None
    assert bot.is_bot

    engine = RankingEngine(ranking_uow)
    highlight = engine.most_collaborative_merge_request(alice.id)

    assert highlight is not None
    assert highlight.github_id == 500
    assert highlight.collaborators == 2
    assert highlight.repository_full_name == "octo/hello"
    assert highlight.title == "Add feature"
    assert engine.most_collaborative_merge_request(bot.id) is None
