"""
Transaction handling and auto-commit management.

Connections run in autocommit mode; a `Transaction` switches the connection
out of it until commit or rollback. If the process exits while a transaction
is still active, an exit hook rolls it back.
"""
import atexit
import logging
from enum import Enum
from typing import Any, Self

from dbmanager.exceptions import CommitError, DriverError, NestedTransactionError
from dbmanager.exceptions import RollbackError, TransactionError
from dbmanager.exceptions import TransactionStartError

__all__ = [
    'TransactionState',
    'Transaction',
    'enable_auto_commit',
    'disable_auto_commit',
]

logger = logging.getLogger(__name__)


def enable_auto_commit(cn: Any) -> None:
    """Enable auto-commit mode on a wrapped connection.
    """
    cn.strategy.enable_autocommit(cn.dbapi_connection)
    logger.debug(f'Auto-commit enabled for {cn.dialect} connection {id(cn)}')


def disable_auto_commit(cn: Any) -> None:
    """Disable auto-commit mode on a wrapped connection.
    """
    cn.strategy.disable_autocommit(cn.dbapi_connection)
    logger.debug(f'Auto-commit disabled for {cn.dialect} connection {id(cn)}')


class TransactionState(Enum):
    NONE = 'none'
    ACTIVE = 'active'
    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled back'


class Transaction:
    """Explicit transaction on one wrapped connection.

    Nested transactions on the same connection are not supported. Leaving the
    `with` block without committing rolls back.

    Examples
        with Transaction(cn) as tx:
            db.insert('accounts', {'name': 'alice'})
            db.where('id', 7).update('accounts', {'balance': dec(10)})
            tx.commit()
    """

    def __init__(self, cn: Any) -> None:
        self.cn = cn
        self.state = TransactionState.NONE

    def __repr__(self) -> str:
        return f'Transaction(state={self.state.value!r}, cn={self.cn!r})'

    @property
    def active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def begin(self) -> Self:
        """Leave autocommit mode and register the exit hook."""
        if self.state is not TransactionState.NONE:
            raise TransactionError(f'Transaction cannot be restarted ({self.state.value})')
        if self.cn.in_transaction:
            raise NestedTransactionError('Nested transactions are not supported')

        try:
            disable_auto_commit(self.cn)
        except DriverError as exc:
            raise TransactionStartError(f'Could not start transaction: {exc}') from exc

        self.state = TransactionState.ACTIVE
        self.cn.transaction = self
        atexit.register(self._rollback_at_exit)
        logger.debug(f'Started transaction for connection {id(self.cn)}')
        return self

    def commit(self) -> None:
        if not self.active:
            raise CommitError('No transaction in progress')
        try:
            self.cn.commit()
            enable_auto_commit(self.cn)
        except DriverError as exc:
            raise CommitError(f'Commit failed: {exc}') from exc
        self._finish(TransactionState.COMMITTED)
        logger.debug(f'Committed transaction for connection {id(self.cn)}')

    def rollback(self) -> None:
        if not self.active:
            raise RollbackError('No transaction in progress')
        try:
            self.cn.rollback()
            enable_auto_commit(self.cn)
        except DriverError as exc:
            raise RollbackError(f'Rollback failed: {exc}') from exc
        self._finish(TransactionState.ROLLED_BACK)
        logger.debug(f'Rolled back transaction for connection {id(self.cn)}')

    def _finish(self, state: TransactionState) -> None:
        self.state = state
        atexit.unregister(self._rollback_at_exit)
        if self.cn.transaction is self:
            self.cn.transaction = None

    def _rollback_at_exit(self) -> None:
        if self.active:
            logger.warning('Process exiting with an open transaction, rolling back')
            self.rollback()

    def __enter__(self) -> Self:
        if self.state is TransactionState.NONE:
            self.begin()
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None,
                 traceback: Any | None) -> None:
        if self.active:
            logger.warning('Rolling back the current transaction')
            self.rollback()
