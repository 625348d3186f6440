"""Store implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import distinct, func, or_, select

from ghexplorer.adapters.sqlalchemy.mappings import (
    commit_table,
    contribution_table,
    contributor_ranking_table,
    contributor_table,
    merge_request_table,
    pipeline_run_table,
    pipeline_schedule_table,
    repository_table,
    staging_record_table,
)
from ghexplorer.domain.model import (
    Commit,
    Contribution,
    Contributor,
    ContributorRanking,
    EnrichmentState,
    MergeRequest,
    PipelineRun,
    PipelineSchedule,
    Repository,
    RunStatus,
    StagingRecord,
    StagingState,
)
from ghexplorer.domain.ranking import CollaborationHighlight, ContributorMetrics

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

    from ghexplorer.domain.model import (
        CommitDraft,
        ContributorDraft,
        MergeRequestDraft,
        RepositoryDraft,
    )


class SqlAlchemyStore[TEntity]:
    """Shared helpers for stores of a single mapped class."""

    def __init__(self, session: Session, entity_cls: type[TEntity], table: Table) -> None:
        self.session = session
        self._entity_cls = entity_cls
        self._table = table

    def add(self, entity: TEntity) -> None:
        self.session.add(entity)

    def get(self, entity_id: UUID) -> TEntity | None:
        return self.session.get(self._entity_cls, entity_id)


class SqlAlchemyGitHubEntityStore[TEntity](SqlAlchemyStore[TEntity]):
    def get_by_github_id(self, github_id: int) -> TEntity | None:
        stmt = select(self._entity_cls).where(self._table.c.github_id == github_id).limit(1)
        return self.session.execute(stmt).scalars().first()

    def list_pending(self, *, limit: int) -> list[TEntity]:
        stmt = (
            select(self._entity_cls)
            .where(self._table.c._enrichment == EnrichmentState.PENDING)  # noqa: SLF001
            .order_by(self._table.c.github_id)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyStagingStore(SqlAlchemyStore[StagingRecord]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, StagingRecord, staging_record_table)

    def list_unprocessed(self, *, limit: int) -> list[StagingRecord]:
        stmt = (
            select(StagingRecord)
            .where(staging_record_table.c._state == StagingState.UNPROCESSED)  # noqa: SLF001
            .order_by(staging_record_table.c.fetched_at, staging_record_table.c.id)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def mark_processed(self, record_ids: Iterable[UUID], *, at: datetime | None = None) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        stmt = select(StagingRecord).where(staging_record_table.c.id.in_(ids))
        flipped = 0
        for record in self.session.execute(stmt).scalars():
            if record.is_processed:
                continue
            record.mark_processed(at=at)
            flipped += 1
        return flipped

    def count_unprocessed(self) -> int:
        stmt = (
            select(func.count())
            .select_from(staging_record_table)
            .where(staging_record_table.c._state == StagingState.UNPROCESSED)  # noqa: SLF001
        )
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyRepositoryStore(SqlAlchemyGitHubEntityStore[Repository]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Repository, repository_table)

    def upsert(self, draft: RepositoryDraft) -> Repository:
        entity = self.get_by_github_id(draft.github_id)
        if entity is None:
            entity = Repository(github_id=draft.github_id)
            self.add(entity)
        entity.apply_fields(draft.record_fields(), enrichment=draft.enrichment)
        return entity


class SqlAlchemyContributorStore(SqlAlchemyGitHubEntityStore[Contributor]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Contributor, contributor_table)

    def upsert(self, draft: ContributorDraft) -> Contributor:
        entity = self.get_by_github_id(draft.github_id)
        if entity is None:
            entity = Contributor(github_id=draft.github_id)
            self.add(entity)
        entity.apply_fields(draft.record_fields(), enrichment=draft.enrichment)
        entity.refresh_bot_flag(flagged=bool(draft.is_bot))
        return entity


class SqlAlchemyMergeRequestStore(SqlAlchemyGitHubEntityStore[MergeRequest]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, MergeRequest, merge_request_table)

    def upsert(
        self,
        draft: MergeRequestDraft,
        *,
        repository_id: UUID,
        author_id: UUID | None,
        merged_by_id: UUID | None,
    ) -> MergeRequest:
        stmt = (
            select(MergeRequest)
            .where(merge_request_table.c.repository_id == repository_id)
            .where(merge_request_table.c.github_id == draft.github_id)
        )
        entity = self.session.execute(stmt).scalar_one_or_none()
        if entity is None:
            entity = MergeRequest(github_id=draft.github_id, repository_id=repository_id)
            self.add(entity)
        values: dict[str, object] = {"author_id": author_id, "merged_by_id": merged_by_id}
        values.update(draft.record_fields())
        entity.apply_fields(values, enrichment=draft.enrichment)
        return entity


class SqlAlchemyCommitStore(SqlAlchemyStore[Commit]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Commit, commit_table)

    def get_by_sha(self, repository_id: UUID, sha: str) -> Commit | None:
        stmt = (
            select(Commit)
            .where(commit_table.c.repository_id == repository_id)
            .where(commit_table.c.sha == sha)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_pending(self, *, limit: int) -> list[Commit]:
        stmt = (
            select(Commit)
            .where(commit_table.c._enrichment == EnrichmentState.PENDING)  # noqa: SLF001
            .order_by(commit_table.c.repository_id, commit_table.c.sha)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def upsert(
        self,
        draft: CommitDraft,
        *,
        repository_id: UUID,
        contributor_id: UUID | None,
        merge_request_id: UUID | None,
    ) -> Commit:
        entity = self.get_by_sha(repository_id, draft.sha)
        if entity is None:
            entity = Commit(sha=draft.sha, repository_id=repository_id)
            self.add(entity)
        values: dict[str, object] = {
            "contributor_id": contributor_id,
            "merge_request_id": merge_request_id,
        }
        values.update(draft.record_fields())
        entity.apply_fields(values, enrichment=draft.enrichment)
        return entity


class SqlAlchemyContributionStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def refresh(self, *, contributor_id: UUID, repository_id: UUID) -> Contribution:
        """Recompute the contributor/repository summary from stored rows."""

        commits = self.session.execute(
            select(
                func.count(commit_table.c.id),
                func.coalesce(func.sum(commit_table.c.additions), 0),
                func.coalesce(func.sum(commit_table.c.deletions), 0),
                func.min(commit_table.c.committed_at),
                func.max(commit_table.c.committed_at),
            )
            .where(commit_table.c.contributor_id == contributor_id)
            .where(commit_table.c.repository_id == repository_id)
        ).one()
        authored = self.session.execute(
            select(
                func.count(merge_request_table.c.id),
                func.min(merge_request_table.c.created_at),
                func.max(merge_request_table.c.created_at),
            )
            .where(merge_request_table.c.author_id == contributor_id)
            .where(merge_request_table.c.repository_id == repository_id)
        ).one()
        reviews = self.session.execute(
            select(func.count(merge_request_table.c.id))
            .where(merge_request_table.c.merged_by_id == contributor_id)
            .where(merge_request_table.c.repository_id == repository_id)
            .where(
                or_(
                    merge_request_table.c.author_id.is_(None),
                    merge_request_table.c.author_id != contributor_id,
                )
            )
        ).scalar_one()

        entity = self._get(contributor_id, repository_id)
        if entity is None:
            entity = Contribution(contributor_id=contributor_id, repository_id=repository_id)
            self.session.add(entity)
        entity.commit_count = int(commits[0])
        entity.lines_added = int(commits[1])
        entity.lines_removed = int(commits[2])
        entity.pull_requests = int(authored[0])
        entity.reviews = int(reviews)
        entity.first_contribution_at = _earliest(commits[3], authored[1])
        entity.last_contribution_at = _latest(commits[4], authored[2])
        return entity

    def list_for_contributor(self, contributor_id: UUID) -> list[Contribution]:
        stmt = (
            select(Contribution)
            .where(contribution_table.c.contributor_id == contributor_id)
            .order_by(contribution_table.c.commit_count.desc(), contribution_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def list_for_repository(self, repository_id: UUID) -> list[Contribution]:
        stmt = (
            select(Contribution)
            .where(contribution_table.c.repository_id == repository_id)
            .order_by(contribution_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def repository_languages(self, contributor_id: UUID) -> list[str | None]:
        stmt = (
            select(repository_table.c.primary_language)
            .join(contribution_table, contribution_table.c.repository_id == repository_table.c.id)
            .where(contribution_table.c.contributor_id == contributor_id)
        )
        return list(self.session.execute(stmt).scalars())

    def _get(self, contributor_id: UUID, repository_id: UUID) -> Contribution | None:
        stmt = (
            select(Contribution)
            .where(contribution_table.c.contributor_id == contributor_id)
            .where(contribution_table.c.repository_id == repository_id)
        )
        return self.session.execute(stmt).scalar_one_or_none()


def _earliest(*values: datetime | None) -> datetime | None:
    present = [_as_utc(value) for value in values if value is not None]
    return min(present) if present else None


def _latest(*values: datetime | None) -> datetime | None:
    present = [_as_utc(value) for value in values if value is not None]
    return max(present) if present else None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class SqlAlchemyRunStore(SqlAlchemyStore[PipelineRun]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, PipelineRun, pipeline_run_table)

    def active(self, pipeline_name: str) -> PipelineRun | None:
        stmt = (
            select(PipelineRun)
            .where(pipeline_run_table.c.pipeline_name == pipeline_name)
            .where(pipeline_run_table.c.status == RunStatus.RUNNING)
            .order_by(pipeline_run_table.c.started_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def running(self) -> list[PipelineRun]:
        stmt = select(PipelineRun).where(pipeline_run_table.c.status == RunStatus.RUNNING)
        return list(self.session.execute(stmt).scalars())

    def history(self, pipeline_name: str | None, *, limit: int) -> list[PipelineRun]:
        stmt = select(PipelineRun)
        if pipeline_name is not None:
            stmt = stmt.where(pipeline_run_table.c.pipeline_name == pipeline_name)
        stmt = stmt.order_by(pipeline_run_table.c.started_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def save_checkpoint(self, run_id: UUID, snapshot: dict[str, Any]) -> bool:
        run = self.get(run_id)
        if run is None:
            return False
        run.checkpoint = snapshot
        return True

    def stop_requested(self, run_id: UUID) -> bool:
        stmt = select(pipeline_run_table.c.stop_requested).where(pipeline_run_table.c.id == run_id)
        return bool(self.session.execute(stmt).scalar_one_or_none())


class SqlAlchemyScheduleStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, schedule: PipelineSchedule) -> None:
        self.session.add(schedule)

    def get(self, pipeline_name: str) -> PipelineSchedule | None:
        stmt = select(PipelineSchedule).where(
            pipeline_schedule_table.c.pipeline_name == pipeline_name
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[PipelineSchedule]:
        stmt = select(PipelineSchedule).order_by(pipeline_schedule_table.c.pipeline_name)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyRankingStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_all(self, rows: Sequence[ContributorRanking]) -> None:
        self.session.add_all(rows)

    def latest_timestamp(self) -> datetime | None:
        stmt = select(func.max(contributor_ranking_table.c.calculated_at))
        return self.session.execute(stmt).scalar_one_or_none()

    def at(self, calculated_at: datetime, *, limit: int | None = None) -> list[ContributorRanking]:
        stmt = (
            select(ContributorRanking)
            .where(contributor_ranking_table.c.calculated_at == calculated_at)
            .order_by(
                contributor_ranking_table.c.rank_position,
                contributor_ranking_table.c.contributor_github_id,
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyContributorMetricsSource:
    """Aggregate queries over commits and merge requests of non-fork repositories."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def contributor_metrics(self) -> list[ContributorMetrics]:
        non_fork = or_(repository_table.c.is_fork.is_(None), repository_table.c.is_fork.is_(False))
        totals_stmt = (
            select(
                commit_table.c.contributor_id,
                func.count(commit_table.c.id),
                func.coalesce(func.sum(commit_table.c.additions), 0),
                func.coalesce(func.sum(commit_table.c.deletions), 0),
                func.count(distinct(commit_table.c.repository_id)),
            )
            .join(repository_table, repository_table.c.id == commit_table.c.repository_id)
            .join(contributor_table, contributor_table.c.id == commit_table.c.contributor_id)
            .where(non_fork)
            .where(contributor_table.c.is_bot.is_(False))
            .group_by(commit_table.c.contributor_id)
        )
        totals = {row[0]: row[1:] for row in self.session.execute(totals_stmt)}
        if not totals:
            return []

        contributors = {
            contributor.id: contributor
            for contributor in self.session.execute(
                select(Contributor).where(contributor_table.c.id.in_(list(totals)))
            ).scalars()
        }
        efficiency = self._merge_request_totals(non_fork)
        teams = self._team_sizes()
        popularity = self._repository_popularity(non_fork)

        metrics: list[ContributorMetrics] = []
        for contributor_id, (commits, added, removed, repositories) in totals.items():
            contributor = contributors[contributor_id]
            metrics.append(
                ContributorMetrics(
                    contributor_id=contributor_id,
                    github_id=contributor.github_id,
                    username=contributor.username,
                    name=contributor.name,
                    avatar=contributor.avatar,
                    bio=contributor.bio,
                    company=contributor.company,
                    location=contributor.location,
                    blog=contributor.blog,
                    twitter_username=contributor.twitter_username,
                    top_languages=tuple(contributor.top_languages or ()),
                    followers=contributor.followers or 0,
                    commits=int(commits),
                    lines_added=int(added),
                    lines_removed=int(removed),
                    repositories=int(repositories),
                    merge_request_totals=tuple(efficiency.get(contributor_id, ())),
                    team_sizes=tuple(teams.get(contributor_id, ())),
                    repository_popularity=tuple(popularity.get(contributor_id, ())),
                )
            )
        return metrics

    def most_collaborative_merge_request(
        self, contributor_id: UUID
    ) -> CollaborationHighlight | None:
        participants = self._participants()
        candidates = [
            (len(members), merge_request_id)
            for merge_request_id, members in participants.items()
            if contributor_id in members
        ]
        if not candidates:
            return None
        merge_requests = {
            mr.id: mr
            for mr in self.session.execute(
                select(MergeRequest).where(
                    merge_request_table.c.id.in_([mr_id for _, mr_id in candidates])
                )
            ).scalars()
        }
        size, best_id = min(
            candidates, key=lambda item: (-item[0], merge_requests[item[1]].github_id)
        )
        best = merge_requests[best_id]
        repository = self.session.get(Repository, best.repository_id)
        return CollaborationHighlight(
            merge_request_id=best.id,
            github_id=best.github_id,
            repository_full_name=repository.full_name if repository else None,
            title=best.title,
            collaborators=size,
        )

    def _merge_request_totals(self, non_fork: Any) -> dict[UUID, list[tuple[int, int]]]:
        stmt = (
            select(
                commit_table.c.contributor_id,
                func.coalesce(merge_request_table.c.additions, 0)
                + func.coalesce(merge_request_table.c.deletions, 0),
                func.sum(
                    func.coalesce(commit_table.c.additions, 0)
                    + func.coalesce(commit_table.c.deletions, 0)
                ),
            )
            .join(merge_request_table, merge_request_table.c.id == commit_table.c.merge_request_id)
            .join(repository_table, repository_table.c.id == commit_table.c.repository_id)
            .where(commit_table.c.contributor_id.is_not(None))
            .where(non_fork)
            .group_by(
                commit_table.c.contributor_id,
                merge_request_table.c.id,
                merge_request_table.c.additions,
                merge_request_table.c.deletions,
            )
            .order_by(commit_table.c.contributor_id, merge_request_table.c.id)
        )
        samples: dict[UUID, list[tuple[int, int]]] = defaultdict(list)
        for contributor_id, pr_total, commit_total in self.session.execute(stmt):
            samples[contributor_id].append((int(pr_total), int(commit_total or 0)))
        return samples

    def _participants(self) -> dict[UUID, set[UUID]]:
        """Distinct non-bot contributors per merge request (commit authors and PR author)."""

        humans = select(contributor_table.c.id).where(contributor_table.c.is_bot.is_(False))
        commit_rows = self.session.execute(
            select(commit_table.c.merge_request_id, commit_table.c.contributor_id)
            .where(commit_table.c.merge_request_id.is_not(None))
            .where(commit_table.c.contributor_id.in_(humans))
        )
        author_rows = self.session.execute(
            select(merge_request_table.c.id, merge_request_table.c.author_id).where(
                merge_request_table.c.author_id.in_(humans)
            )
        )
        participants: dict[UUID, set[UUID]] = defaultdict(set)
        for merge_request_id, contributor_id in [*commit_rows, *author_rows]:
            participants[merge_request_id].add(contributor_id)
        return participants

    def _team_sizes(self) -> dict[UUID, list[int]]:
        sizes: dict[UUID, list[int]] = defaultdict(list)
        for _, members in sorted(self._participants().items(), key=lambda item: str(item[0])):
            for contributor_id in members:
                sizes[contributor_id].append(len(members))
        return sizes

    def _repository_popularity(self, non_fork: Any) -> dict[UUID, list[tuple[int, int]]]:
        stmt = (
            select(
                commit_table.c.contributor_id,
                repository_table.c.id,
                repository_table.c.stars,
                repository_table.c.forks,
            )
            .join(repository_table, repository_table.c.id == commit_table.c.repository_id)
            .where(commit_table.c.contributor_id.is_not(None))
            .where(non_fork)
            .distinct()
            .order_by(commit_table.c.contributor_id, repository_table.c.id)
        )
        popularity: dict[UUID, list[tuple[int, int]]] = defaultdict(list)
        for contributor_id, _, stars, forks in self.session.execute(stmt):
            popularity[contributor_id].append((stars or 0, forks or 0))
        return popularity
