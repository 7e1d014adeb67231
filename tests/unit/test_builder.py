"""
Unit tests for the builder against a recording fake connection.
"""
import sqlite3

import pytest
from dbmanager import QueryBuilder
from dbmanager.clauses import OutputFormat
from dbmanager.exceptions import ConnectionNotFound, NoActiveConnection
from dbmanager.exceptions import ParameterMismatchError, PrepareError


@pytest.fixture
def pg(fake_connection):
    return fake_connection('postgresql', results=[(['id', 'name'], [(1, 'Alice')])])


@pytest.fixture
def db(pg):
    return QueryBuilder(pg)


def test_statement_uses_driver_placeholders(db, pg):
    db.where('id', 1).where('name', 'x%', 'LIKE').select('users')
    assert pg.executed == [('SELECT * FROM users WHERE id = %s AND name LIKE %s', (1, 'x%'))]


def test_fluent_calls_return_builder(db):
    assert db.where('a', 1).or_where('b', 2).join('t', 'x = y').order_by('a') \
        .group_by('a').having('COUNT(*)', 1, '>').or_having('MAX(a)', 2) is db


def test_state_is_reset_after_success(db, pg):
    db.where('id', 1).order_by('name').as_json().select('users')
    pg.results.append((['id'], [(1,)]))
    result = db.select('users')
    assert pg.statements[-1] == 'SELECT * FROM users'
    assert result == [{'id': 1}]


def test_state_is_reset_after_compile_error(db, pg):
    with pytest.raises(ParameterMismatchError):
        db.where('id = ?').select('users')
    db.select('users')
    assert pg.statements == ['SELECT * FROM users']


def test_state_is_reset_after_driver_error(db, pg):
    pg.errors.append(sqlite3.OperationalError('no such column: nope'))
    with pytest.raises(PrepareError):
        db.where('nope', 1).map('id').as_object().select('users')

    assert db.get_last_error() == 'no such column: nope'
    assert db._state.is_empty()
    assert db._state.output is OutputFormat.ARRAY
    assert db._state.map_key is None


def test_last_error_cleared_by_success(db, pg):
    pg.errors.append(sqlite3.OperationalError('boom'))
    with pytest.raises(PrepareError):
        db.select('users')
    db.select('users')
    assert db.get_last_error() is None
    assert db.get_last_errno() is None


def test_last_query_substitutes_values(db):
    db.where('id', 1).where('name', 'Alice').select('users')
    assert db.get_last_query() == "SELECT * FROM users WHERE id = '1' AND name = 'Alice'"


def test_insert_returns_last_row_id(fake_connection):
    raw = fake_connection('sqlite', lastrowid=42)
    db = QueryBuilder(raw)
    assert db.insert('users', {'name': 'Dave'}) == 42
    assert db.get_insert_id() == 42
    assert raw.executed == [('INSERT INTO users ("name") VALUES (?)', ('Dave',))]


def test_insert_without_generated_id(fake_connection):
    db = QueryBuilder(fake_connection('sqlite', lastrowid=None))
    assert db.insert('users', {'name': 'Dave'}) == 0


def test_update_and_delete_return_affected_rows(fake_connection):
    raw = fake_connection('sqlite', rowcount=3)
    db = QueryBuilder(raw)
    assert db.where('active', 0).update('users', {'status': 'gone'}) == 3
    assert db.where('active', 0).delete('users') == 3
    assert db.count == 3


def test_no_connection(fake_connection):
    db = QueryBuilder()
    with pytest.raises(NoActiveConnection):
        db.select('users')


def test_switching_connections(fake_connection):
    main, other = fake_connection('sqlite'), fake_connection('postgresql')
    db = QueryBuilder(main)
    db.add_connection('other', other)

    db.set_connection('other').select('a')
    db.set_default_connection().select('b')

    assert other.statements == ['SELECT * FROM a']
    assert main.statements == ['SELECT * FROM b']


def test_set_unknown_connection(db):
    with pytest.raises(ConnectionNotFound):
        db.set_connection('missing')


def test_disconnect_then_use(db, pg):
    db.disconnect()
    assert pg.closed
    assert not db.has_connection('default')
    with pytest.raises(NoActiveConnection):
        db.select('users')


def test_subquery_does_not_execute(db, pg):
    sub = db.subquery().where('status', 'active').select('users', columns='id')
    assert pg.executed == []
    db.where('user_id', sub, 'IN').select('orders')
    assert pg.executed == [
        ('SELECT * FROM orders WHERE user_id IN (SELECT id FROM users WHERE status = %s)', ('active',)),
    ]


def test_trace_records_every_statement(db, pg):
    pg.errors.extend([None, sqlite3.OperationalError('boom')])
    db.where('id', 1).select('users')
    with pytest.raises(PrepareError):
        db.select('missing')

    trace = db.get_trace()
    assert [t.query for t in trace] == ["SELECT * FROM users WHERE id = '1'", 'SELECT * FROM missing']
    assert trace[0].clauses['WHERE'][0].field == 'id'
    assert all(t.execution is not None for t in trace)


def test_trace_can_be_disabled(fake_connection):
    db = QueryBuilder(fake_connection(), trace=False)
    db.select('users')
    assert db.get_trace() == []

    db.set_trace(True).select('users')
    assert len(db.get_trace()) == 1
    db.set_trace(False)
    assert db.get_trace() == []
