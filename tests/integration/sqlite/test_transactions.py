"""
Transactions through the builder on SQLite.
"""
import pytest
from dbmanager import QueryBuilder, connect
from dbmanager.exceptions import CommitError, IntegrityViolationError
from dbmanager.exceptions import NestedTransactionError, RollbackError
from dbmanager.transaction import TransactionState

from tests.fixtures.sqlite import seed


@pytest.fixture
def file_db(tmp_path):
    """Builder over a file database, so a second connection sees committed rows only"""
    path = str(tmp_path / 'tx.db')
    writer = connect({'drivername': 'sqlite', 'database': path})
    seed(writer)
    db = QueryBuilder(writer)
    db.add_connection('reader', connect({'drivername': 'sqlite', 'database': path}))

    yield db
    db.disconnect_all()


def user_count(db, name='default'):
    db.set_connection(name)
    try:
        return db.select_value('users', 'COUNT(*)')
    finally:
        db.set_default_connection()


def test_commit_persists(file_db):
    file_db.start_transaction()
    file_db.insert('users', {'name': 'Dave'})
    assert file_db.in_transaction
    assert user_count(file_db, 'reader') == 3

    file_db.commit()

    assert not file_db.in_transaction
    assert user_count(file_db, 'reader') == 4


def test_rollback_discards(db):
    db.start_transaction()
    db.insert('users', {'name': 'Dave'})
    db.where('name', 'Alice').delete('users')
    db.rollback()

    assert db.order_by('id').select_value('users', 'name', 10) == ['Alice', 'Bob', 'Charlie']


def test_autocommit_restored_after_transaction(file_db):
    file_db.start_transaction()
    file_db.rollback()
    file_db.insert('users', {'name': 'Dave'})
    assert user_count(file_db, 'reader') == 4


def test_context_manager_rolls_back_on_error(db):
    with pytest.raises(IntegrityViolationError), db.start_transaction():
        db.insert('users', {'name': 'Dave'})
        db.insert('users', {'name': 'Alice'})

    assert db.where('name', 'Dave').has('users') is False
    assert not db.in_transaction


def test_context_manager_with_commit(db):
    with db.start_transaction() as tx:
        db.where('name', 'Bob').update('users', {'logins': 7})
        tx.commit()

    assert tx.state is TransactionState.COMMITTED
    assert db.where('name', 'Bob').select_value('users', 'logins') == 7


def test_nested_start_rejected(db):
    tx = db.start_transaction()
    with pytest.raises(NestedTransactionError):
        db.start_transaction()
    tx.rollback()


def test_commit_and_rollback_need_a_transaction(db):
    with pytest.raises(CommitError):
        db.commit()
    with pytest.raises(RollbackError):
        db.rollback()


def test_exit_hook_rolls_back_once(db, mocker):
    hooks = []
    mocker.patch('dbmanager.transaction.atexit.register', side_effect=hooks.append)
    mocker.patch('dbmanager.transaction.atexit.unregister', side_effect=hooks.remove)
    spy = mocker.spy(db.current_connection(), 'rollback')

    tx = db.start_transaction()
    db.insert('users', {'name': 'Dave'})
    hook = hooks[0]
    hook()
    hook()

    assert spy.call_count == 1
    assert tx.state is TransactionState.ROLLED_BACK
    assert db.select_value('users', 'COUNT(*)') == 3


def test_transactions_are_per_connection(db, raw_sqlite_conn):
    db.add_connection('other', raw_sqlite_conn)
    tx = db.start_transaction()
    db.set_connection('other')
    assert not db.in_transaction
    other = db.start_transaction()
    other.rollback()
    db.set_default_connection()
    tx.rollback()
