from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from ghexplorer.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyIngestUnitOfWork,
    SqlAlchemyRankingUnitOfWork,
    SqlAlchemySchedulerUnitOfWork,
    shutdown,
    startup,
)

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    # one shared connection: worker threads must see the same in-memory database
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    startup(engine=engine, force=True)
    try:
        yield engine
    finally:
        shutdown()


@pytest.fixture
def ingest_uow(sqlite_engine: Engine) -> Callable[[], SqlAlchemyIngestUnitOfWork]:  # noqa: ARG001
    return SqlAlchemyIngestUnitOfWork


@pytest.fixture
def scheduler_uow(
    sqlite_engine: Engine,  # noqa: ARG001
) -> Callable[[], SqlAlchemySchedulerUnitOfWork]:
    return SqlAlchemySchedulerUnitOfWork


@pytest.fixture
def ranking_uow(sqlite_engine: Engine) -> Callable[[], SqlAlchemyRankingUnitOfWork]:  # noqa: ARG001
    return SqlAlchemyRankingUnitOfWork
