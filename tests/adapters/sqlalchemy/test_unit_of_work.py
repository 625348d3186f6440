from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from ghexplorer.adapters.sqlalchemy.migrations import current_revision
from ghexplorer.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyIngestUnitOfWork,
    SqlAlchemySchedulerUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from ghexplorer.domain.model import PipelineRun, Repository, RunStatus, StagingRecord
from ghexplorer.domain.pipeline import PersistenceError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_unit_of_work_requires_startup() -> None:
    assert is_started() is False
    with pytest.raises(StartupError):
        SqlAlchemyIngestUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b


def test_startup_applies_migrations(sqlite_engine: Engine) -> None:
    assert current_revision(sqlite_engine) == "0001"


def test_unit_of_work_persists_and_reloads(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        uow.repositories.repositories.add(Repository(github_id=42, full_name="octo/hello"))
        uow.commit()

    with ingest_uow() as uow:
        stored = uow.repositories.repositories.get_by_github_id(42)
        assert stored is not None
        assert stored.full_name == "octo/hello"
        assert stored.is_enriched is False


def test_uncommitted_work_is_rolled_back(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        uow.repositories.repositories.add(Repository(github_id=42))

    with ingest_uow() as uow:
        assert uow.repositories.repositories.get_by_github_id(42) is None


def test_constraint_violation_surfaces_as_persistence_error(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    with ingest_uow() as uow:
        uow.repositories.repositories.add(Repository(github_id=42))
        uow.commit()

    with pytest.raises(PersistenceError), ingest_uow() as uow:
        uow.repositories.repositories.add(Repository(github_id=42))
        uow.commit()

    with ingest_uow() as uow:
        assert uow.repositories.repositories.list_pending(limit=10)[0].github_id == 42


def test_session_is_unavailable_outside_context(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    uow = ingest_uow()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_staging_store_orders_and_marks_processed(
    ingest_uow: Callable[[], SqlAlchemyIngestUnitOfWork],
) -> None:
    fetched = datetime(2024, 5, 1, tzinfo=UTC)
    later = StagingRecord(payload={"n": 2}, fetched_at=fetched + timedelta(hours=1))
    earlier = StagingRecord(payload={"n": 1}, entity_type="repository", fetched_at=fetched)
    with ingest_uow() as uow:
        uow.repositories.staging.add(later)
        uow.repositories.staging.add(earlier)
        uow.commit()

    with ingest_uow() as uow:
        staging = uow.repositories.staging
        rows = staging.list_unprocessed(limit=10)
        assert [row.payload for row in rows] == [{"n": 1}, {"n": 2}]
        assert rows[0].fetched_at == fetched
        assert staging.count_unprocessed() == 2
        assert staging.mark_processed([earlier.id, later.id]) == 2
        assert staging.mark_processed([earlier.id]) == 0
        assert staging.mark_processed([]) == 0
        uow.commit()

    with ingest_uow() as uow:
        assert uow.repositories.staging.count_unprocessed() == 0
        stored = uow.repositories.staging.get(earlier.id)
        assert stored is not None
        assert stored.is_processed
        assert stored.processed_at is not None


def test_only_one_running_row_per_pipeline(
    scheduler_uow: Callable[[], SqlAlchemySchedulerUnitOfWork],
) -> None:
    with scheduler_uow() as uow:
        uow.repositories.runs.add(PipelineRun(pipeline_name="demo"))
        uow.repositories.runs.add(PipelineRun(pipeline_name="demo", status=RunStatus.FAILED))
        uow.repositories.runs.add(PipelineRun(pipeline_name="other"))
        uow.commit()

    with pytest.raises(PersistenceError), scheduler_uow() as uow:
        uow.repositories.runs.add(PipelineRun(pipeline_name="demo"))
        uow.commit()

    with scheduler_uow() as uow:
        assert len(uow.repositories.runs.running()) == 2
