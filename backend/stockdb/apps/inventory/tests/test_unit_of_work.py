from __future__ import annotations

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stockdb.apps.inventory import models
from stockdb.apps.inventory.memory import InMemoryDatabase, InMemoryUnitOfWork
from stockdb.apps.inventory.unit_of_work import SqlAlchemyUnitOfWork


class _CommitFails(Session):
    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_commit_on_success(uow_factory):
    with uow_factory() as uow:
        item = uow.items.create("Cement", "kg", 10)
        uow.transactions.append(item.id, models.TransactionTypeEnum.ADD, 10)

    assert uow.committed
    with uow_factory() as uow:
        assert uow.items.find_by_id(item.id).quantity == Decimal("10.00")
        assert len(uow.transactions.history_for(item.id)) == 1


def test_rollback_on_error(uow_factory):
    with uow_factory() as uow:
        kept = uow.items.create("Sand", "kg", 5)

    with pytest.raises(RuntimeError):
        with uow_factory() as uow:
            uow.items.create("Cement", "kg", 10)
            uow.items.change_quantity(kept, Decimal("5"))
            uow.transactions.append(kept.id, models.TransactionTypeEnum.ADD, 5)
            raise RuntimeError("boom")

    assert not uow.committed
    with uow_factory() as uow:
        assert uow.items.find_by_name("Cement") is None
        assert uow.items.find_by_id(kept.id).quantity == Decimal("5.00")
        assert uow.transactions.history_for(kept.id) == []


def test_sql_session_is_released(session_factory):
    uow = SqlAlchemyUnitOfWork(session_factory)

    with pytest.raises(ValueError):
        with uow:
            assert uow.session is not None
            raise ValueError("abort")

    assert uow.session is None


def test_sql_commit_failure_rolls_back_and_propagates(db_engine):
    failing = sessionmaker(bind=db_engine, class_=_CommitFails, autoflush=False, expire_on_commit=False)
    uow = SqlAlchemyUnitOfWork(failing)

    with pytest.raises(OperationalError):
        with uow:
            uow.items.create("Cement", "kg", 10)

    assert uow.session is None
    assert not uow.committed
    with SqlAlchemyUnitOfWork(sessionmaker(bind=db_engine)) as check:
        assert check.items.count() == 0


def test_memory_lock_is_released_after_error():
    database = InMemoryDatabase()

    with pytest.raises(RuntimeError):
        with InMemoryUnitOfWork(database) as uow:
            uow.items.create("Cement", "kg", 10)
            raise RuntimeError("boom")

    acquired = []

    def try_acquire():
        if database.lock.acquire(blocking=False):
            acquired.append(True)
            database.lock.release()

    thread = threading.Thread(target=try_acquire)
    thread.start()
    thread.join()

    assert acquired == [True]
    assert database.items == {}
