"""
Unit tests for the transaction state machine and its exit hook.
"""
import sqlite3

import pytest
from dbmanager.connection import ConnectionWrapper
from dbmanager.exceptions import CommitError, NestedTransactionError
from dbmanager.exceptions import RollbackError, TransactionError
from dbmanager.exceptions import TransactionStartError
from dbmanager.transaction import Transaction, TransactionState


@pytest.fixture
def exit_hooks(mocker):
    """Capture exit hooks instead of registering them with the interpreter"""
    hooks = []
    mocker.patch('dbmanager.transaction.atexit.register', side_effect=hooks.append)
    mocker.patch('dbmanager.transaction.atexit.unregister', side_effect=hooks.remove)
    return hooks


@pytest.fixture
def cn(fake_connection):
    return ConnectionWrapper(fake_connection('postgresql'))


def test_begin_leaves_autocommit(cn, exit_hooks):
    tx = Transaction(cn).begin()
    assert tx.state is TransactionState.ACTIVE
    assert cn.in_transaction
    assert cn.dbapi_connection.autocommit is False
    assert len(exit_hooks) == 1


def test_commit_restores_autocommit(cn, exit_hooks):
    tx = Transaction(cn).begin()
    tx.commit()
    assert tx.state is TransactionState.COMMITTED
    assert cn.dbapi_connection.commits == 1
    assert cn.dbapi_connection.autocommit is True
    assert not cn.in_transaction
    assert exit_hooks == []


def test_rollback_restores_autocommit(cn, exit_hooks):
    tx = Transaction(cn).begin()
    tx.rollback()
    assert tx.state is TransactionState.ROLLED_BACK
    assert cn.dbapi_connection.rollbacks == 1
    assert cn.dbapi_connection.autocommit is True
    assert exit_hooks == []


def test_nested_transaction_rejected(cn, exit_hooks):
    Transaction(cn).begin()
    with pytest.raises(NestedTransactionError):
        Transaction(cn).begin()


def test_transaction_cannot_restart(cn, exit_hooks):
    tx = Transaction(cn).begin()
    tx.commit()
    with pytest.raises(TransactionError, match='cannot be restarted'):
        tx.begin()


def test_commit_without_transaction(cn):
    with pytest.raises(CommitError, match='No transaction in progress'):
        Transaction(cn).commit()


def test_rollback_without_transaction(cn):
    with pytest.raises(RollbackError, match='No transaction in progress'):
        Transaction(cn).rollback()


def test_refused_start(cn, mocker):
    mocker.patch.object(cn.strategy, 'disable_autocommit',
                        side_effect=sqlite3.OperationalError('cannot change autocommit'))
    tx = Transaction(cn)
    with pytest.raises(TransactionStartError):
        tx.begin()
    assert tx.state is TransactionState.NONE
    assert not cn.in_transaction


def test_refused_commit_stays_active(cn, exit_hooks, mocker):
    tx = Transaction(cn).begin()
    mocker.patch.object(cn.dbapi_connection, 'commit',
                        side_effect=sqlite3.OperationalError('database is locked'))
    with pytest.raises(CommitError, match='Commit failed'):
        tx.commit()
    assert tx.active
    assert len(exit_hooks) == 1


def test_exit_hook_rolls_back_exactly_once(cn, exit_hooks, mocker):
    spy = mocker.spy(cn, 'rollback')
    tx = Transaction(cn).begin()
    hook = exit_hooks[0]

    hook()
    hook()

    assert spy.call_count == 1
    assert tx.state is TransactionState.ROLLED_BACK
    assert exit_hooks == []


def test_exit_hook_after_commit_does_nothing(cn, exit_hooks, mocker):
    spy = mocker.spy(cn, 'rollback')
    tx = Transaction(cn).begin()
    hook = exit_hooks[0]
    tx.commit()

    hook()

    assert spy.call_count == 0


def test_context_manager_rolls_back_uncommitted(cn, exit_hooks):
    with Transaction(cn) as tx:
        assert tx.active
    assert tx.state is TransactionState.ROLLED_BACK
    assert cn.dbapi_connection.rollbacks == 1


def test_context_manager_rolls_back_on_error(cn, exit_hooks):
    with pytest.raises(ZeroDivisionError), Transaction(cn) as tx:
        1 / 0
    assert tx.state is TransactionState.ROLLED_BACK


def test_context_manager_keeps_commit(cn, exit_hooks):
    with Transaction(cn) as tx:
        tx.commit()
    assert tx.state is TransactionState.COMMITTED
    assert cn.dbapi_connection.rollbacks == 0


def test_closing_connection_rolls_back(cn, exit_hooks):
    tx = Transaction(cn).begin()
    cn.close()
    assert tx.state is TransactionState.ROLLED_BACK
    assert cn.dbapi_connection.closed
