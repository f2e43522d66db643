from __future__ import annotations

import os
import sys
from functools import partial
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.pop("DATABASE_READ_URL", None)

from stockdb.database import Base, build_engine  # noqa: E402
from stockdb.apps.inventory import models as inventory_models  # noqa: E402
from stockdb.apps.inventory.memory import InMemoryDatabase, InMemoryUnitOfWork  # noqa: E402
from stockdb.apps.inventory.unit_of_work import SqlAlchemyUnitOfWork  # noqa: E402


@pytest.fixture()
def db_engine():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            inventory_models.Item.__table__,
            inventory_models.InventoryTransaction.__table__,
        ],
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(
        bind=db_engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def memory_database():
    return InMemoryDatabase()


@pytest.fixture(params=["sql", "memory"])
def uow_factory(request):
    """Unit-of-work factory for each storage backend."""
    if request.param == "sql":
        return partial(SqlAlchemyUnitOfWork, request.getfixturevalue("session_factory"))
    return partial(InMemoryUnitOfWork, request.getfixturevalue("memory_database"))
