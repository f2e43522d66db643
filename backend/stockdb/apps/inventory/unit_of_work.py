"""Scoped transactional handle over the item store and the transaction log.

Usage::

    with SqlAlchemyUnitOfWork() as uow:
        item = uow.items.find_by_name("Cement", for_update=True)
        ...

Leaving the block normally commits; any exception rolls item and ledger
changes back together. The underlying session or lock is always released.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .repositories import ItemStore, SqlItemStore, SqlTransactionLog, TransactionLog

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    items: ItemStore
    transactions: TransactionLog

    def __init__(self) -> None:
        self.committed = False

    def __enter__(self) -> "AbstractUnitOfWork":
        self.committed = False
        self._begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                try:
                    self._commit()
                    self.committed = True
                except Exception:
                    logger.exception("Unit of work commit failed; rolling back")
                    self._rollback()
                    raise
            else:
                self._rollback()
        finally:
            self._close()
        return False

    @abstractmethod
    def _begin(self) -> None:
        ...

    @abstractmethod
    def _commit(self) -> None:
        ...

    @abstractmethod
    def _rollback(self) -> None:
        ...

    @abstractmethod
    def _close(self) -> None:
        ...


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        super().__init__()
        if session_factory is None:
            from stockdb.database import WriteSessionLocal

            session_factory = WriteSessionLocal
        self.session_factory = session_factory
        self.session: Optional[Session] = None

    def _begin(self) -> None:
        self.session = self.session_factory()
        self.items = SqlItemStore(self.session)
        self.transactions = SqlTransactionLog(self.session)

    def _commit(self) -> None:
        self.session.commit()

    def _rollback(self) -> None:
        self.session.rollback()

    def _close(self) -> None:
        self.session.close()
        self.session = None
