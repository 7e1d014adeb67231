"""
Fluent query builder.

Clauses accumulate through chained calls and are consumed by the next
statement method, which compiles, executes and resets them:

    db = QueryBuilder(connect(options))
    users = db.where('status', 'active').order_by('name').select('users', 10)
    db.where('id', 7).update('users', {'logins': inc()})
    names = db.map('id').select('users', columns=['id', 'name'])

The builder state is reset after every statement, whether it succeeded or
failed, so clauses never leak from one statement into the next.
"""
import logging
import re
import time
from collections.abc import Callable, Mapping
from typing import Any, Self

from dbmanager.clauses import NOVALUE, Direction, JoinType, OutputFormat
from dbmanager.clauses import QueryState
from dbmanager.compiler import CompiledStatement, compile_delete, compile_insert
from dbmanager.compiler import compile_select, compile_update
from dbmanager.connection import DEFAULT_CONNECTION, ConnectionRegistry
from dbmanager.connection import ConnectionWrapper
from dbmanager.cursor import execute_statement, materialize
from dbmanager.exceptions import CommitError, QueryError, RollbackError
from dbmanager.options import DatabaseOptions, pandas_numpy_data_loader
from dbmanager.sql import interpolate_params
from dbmanager.strategy import DatabaseStrategy
from dbmanager.trace import TraceEntry
from dbmanager.transaction import Transaction
from dbmanager.types import ParameterBuffer

__all__ = ['QueryBuilder', 'Subquery']

logger = logging.getLogger(__name__)

_LIMIT_ONE = re.compile(r'limit\s+1;?$', re.IGNORECASE)


class _ClauseChain:
    """Fluent clause methods shared by the builder and sub-queries."""

    _state: QueryState

    def where(self, field: str, value: Any = NOVALUE, operator: str = '=',
              conjunction: str = 'AND') -> Self:
        """Add a WHERE condition.

        Args:
            field: column or expression; may contain its own ``?`` placeholders
                when `value` is a sequence of their values
            value: compared value, a sub-query, None for ``<op> NULL``, or
                NOVALUE for a bare expression
            operator: comparison operator, including IN, NOT IN, BETWEEN,
                NOT BETWEEN, EXISTS and NOT EXISTS
            conjunction: AND or OR; ignored for the first condition
        """
        self._state.add_where(field, value, operator, conjunction)
        return self

    def or_where(self, field: str, value: Any = NOVALUE, operator: str = '=') -> Self:
        return self.where(field, value, operator, 'OR')

    def having(self, field: str, value: Any = NOVALUE, operator: str = '=',
               conjunction: str = 'AND') -> Self:
        """Add a HAVING condition; same rules as `where()`."""
        self._state.add_having(field, value, operator, conjunction)
        return self

    def or_having(self, field: str, value: Any = NOVALUE, operator: str = '=') -> Self:
        return self.having(field, value, operator, 'OR')

    def join(self, table: str, condition: str,
             join_type: JoinType | str = JoinType.INNER) -> Self:
        self._state.add_join(table, condition, join_type)
        return self

    def order_by(self, field: str, direction: Direction | str = Direction.ASC) -> Self:
        self._state.add_order_by(field, direction)
        return self

    def group_by(self, field: str) -> Self:
        self._state.add_group_by(field)
        return self


class Subquery(_ClauseChain):
    """Builds a statement to embed in a condition instead of executing it.

    Examples
        active = db.subquery().where('status', 'active').select('users', columns='id')
        db.where('user_id', active, 'IN').select('orders')
    """

    def __init__(self, strategy: DatabaseStrategy) -> None:
        self._strategy = strategy
        self._state = QueryState()

    def select(self, table: str, num_rows: Any = None,
               columns: str | list[str] = '*') -> CompiledStatement:
        state, self._state = self._state, QueryState()
        return compile_select(state, self._strategy, table, num_rows, columns)


class QueryBuilder(_ClauseChain):
    """Fluent SQL builder over one or more named connections.

    Args:
        connection: optional connection registered under `name`; a
            ConnectionWrapper, SQLAlchemy connection or raw DB-API connection
        name: registry name for `connection`
        options: DatabaseOptions supplying the data-frame loader and the
            tracing default
        trace: record a TraceEntry per statement (defaults to options.trace,
            else True)
    """

    def __init__(self, connection: Any = None, name: str = DEFAULT_CONNECTION,
                 options: DatabaseOptions | None = None, trace: bool | None = None) -> None:
        self.connections = ConnectionRegistry()
        self.options = options
        if trace is None:
            trace = options.trace if options is not None else True
        self.trace_enabled = trace
        self.count = 0
        self._state = QueryState()
        self._trace: list[TraceEntry] = []
        self._last_query: str | None = None
        self._last_error: str | None = None
        self._last_errno: Any = None
        self._insert_id = 0
        self._started: float | None = None
        if connection is not None:
            self.add_connection(name, connection, options)

    def __repr__(self) -> str:
        return f'QueryBuilder(connections={self.connections.names()}, current={self.connections.current_name!r})'

    # connections

    def add_connection(self, name: str, connection: Any,
                       options: DatabaseOptions | None = None) -> ConnectionWrapper:
        return self.connections.add(name, connection, options or self.options)

    def has_connection(self, name: str) -> bool:
        return self.connections.has(name)

    def set_connection(self, name: str) -> Self:
        """Direct the following statements to the named connection."""
        self.connections.select(name)
        return self

    def set_default_connection(self) -> Self:
        self.connections.select_default()
        return self

    def current_connection(self) -> ConnectionWrapper:
        return self.connections.current()

    def disconnect(self, name: str = DEFAULT_CONNECTION) -> None:
        self.connections.disconnect(name)

    def disconnect_all(self) -> None:
        self.connections.disconnect_all()

    def ping(self) -> bool:
        return self.connections.current().ping()

    def subquery(self) -> Subquery:
        return Subquery(self.connections.current().strategy)

    # output shaping

    def map(self, key: str) -> Self:
        """Key the next result by `key`."""
        self._state.map_key = key
        return self

    def as_array(self) -> Self:
        self._state.output = OutputFormat.ARRAY
        return self

    def as_object(self) -> Self:
        self._state.output = OutputFormat.OBJECT
        return self

    def as_json(self) -> Self:
        self._state.output = OutputFormat.JSON
        return self

    def as_dataframe(self) -> Self:
        self._state.output = OutputFormat.DATAFRAME
        return self

    # statement lifecycle

    def _begin(self) -> QueryState:
        """Hand the accumulated state to a statement; pair with `_reset()`."""
        self._last_query = None
        return self._state

    def _reset(self, state: QueryState) -> None:
        """Trace the finished statement and start a fresh state."""
        elapsed = None
        if self._started is not None:
            elapsed = time.perf_counter() - self._started
        if self.trace_enabled:
            self._trace.append(TraceEntry.capture(self._last_query, state.snapshot(), elapsed))
        self._state = QueryState()
        self._started = None
        logger.debug(f'Builder state reset after: {self._last_query}')

    def _run(self, cn: ConnectionWrapper, sql: str, params: ParameterBuffer) -> Any:
        self._last_query = interpolate_params(sql, params.values)
        self._started = time.perf_counter()
        try:
            cursor = execute_statement(cn, sql, params)
        except QueryError as exc:
            self._last_error = exc.driver_message
            self._last_errno = exc.driver_code
            raise
        self._last_error = None
        self._last_errno = None
        return cursor

    def _data_loader(self, cn: ConnectionWrapper) -> Callable[..., Any]:
        options = cn.options or self.options
        if options is not None and options.data_loader is not None:
            return options.data_loader
        return pandas_numpy_data_loader

    def _fetch(self, cn: ConnectionWrapper, state: QueryState, sql: str,
               params: ParameterBuffer) -> Any:
        cursor = self._run(cn, sql, params)
        try:
            self.count = cursor.rowcount
            result, rows = materialize(cursor, state.output, state.map_key,
                                       self._data_loader(cn))
        finally:
            cursor.close()
        if rows is not None:
            self.count = rows
        return result

    def _modify(self, cn: ConnectionWrapper, statement: CompiledStatement,
                generated_id: bool = False) -> int:
        """Run a data-changing statement.

        Returns the generated row id when `generated_id` is set, else the
        affected row count.
        """
        cursor = self._run(cn, statement.sql, statement.params)
        try:
            self.count = cursor.rowcount
            if generated_id:
                return cn.strategy.last_insert_id(cursor)
            return self.count
        finally:
            cursor.close()

    # statements

    def select(self, table: str, num_rows: Any = None,
               columns: str | list[str] = '*') -> Any:
        """Run a SELECT with the accumulated clauses.

        Args:
            table: table name, optionally with an alias
            num_rows: row count or (offset, count) pair
            columns: column list or expression string

        Returns
            Rows in the selected output shape
        """
        state = self._begin()
        try:
            cn = self.connections.current()
            statement = compile_select(state, cn.strategy, table, num_rows, columns)
            return self._fetch(cn, state, statement.sql, statement.params)
        finally:
            self._reset(state)

    def select_one(self, table: str, columns: str | list[str] = '*') -> Any:
        """First row of a SELECT limited to one row, or None."""
        result = self.select(table, 1, columns)
        if isinstance(result, list):
            return result[0] if result else None
        return result

    def select_value(self, table: str, column: str, limit: Any = 1) -> Any:
        """Value of `column`: a scalar when limit is 1, else a list."""
        self._state.output = OutputFormat.ARRAY
        self._state.map_key = None
        rows = self.select(table, limit, column)
        values = [next(iter(row.values())) for row in rows]
        if limit == 1:
            return values[0] if values else None
        return values

    def has(self, table: str) -> bool:
        """Whether any row of `table` matches the accumulated clauses."""
        self.select_one(table, '1')
        return self.count >= 1

    def insert(self, table: str, data: Mapping[str, Any] | None) -> int:
        """Insert one row and return the generated id (0 when there is none).

        Values may be directives such as `inc()`, `func()` or `not_()`.
        """
        return self._insert(table, data, 'INSERT')

    def replace(self, table: str, data: Mapping[str, Any] | None) -> int:
        return self._insert(table, data, 'REPLACE')

    def _insert(self, table: str, data: Mapping[str, Any] | None, operation: str) -> int:
        state = self._begin()
        try:
            cn = self.connections.current()
            statement = compile_insert(state, cn.strategy, table, data, operation)
            self._insert_id = self._modify(cn, statement, generated_id=True)
            return self._insert_id
        finally:
            self._reset(state)

    def update(self, table: str, data: Mapping[str, Any], num_rows: Any = None) -> int:
        """Update matching rows and return the affected row count."""
        state = self._begin()
        try:
            cn = self.connections.current()
            statement = compile_update(state, cn.strategy, table, data, num_rows)
            return self._modify(cn, statement)
        finally:
            self._reset(state)

    def delete(self, table: str, num_rows: Any = None) -> int:
        """Delete matching rows and return the affected row count."""
        state = self._begin()
        try:
            cn = self.connections.current()
            statement = compile_delete(state, cn.strategy, table, num_rows)
            return self._modify(cn, statement)
        finally:
            self._reset(state)

    def raw_query(self, sql: str, params: Any = None) -> Any:
        """Run caller-written SQL with ``?`` placeholders.

        Accumulated clauses are discarded; the output shape and map key still
        apply.
        """
        state = self._begin()
        try:
            cn = self.connections.current()
            if params is not None:
                state.params.bind_all(params)
            return self._fetch(cn, state, sql, state.params)
        finally:
            self._reset(state)

    def raw_query_one(self, sql: str, params: Any = None) -> Any:
        result = self.raw_query(sql, params)
        if isinstance(result, list):
            return result[0] if result else None
        return result

    def raw_query_value(self, sql: str, params: Any = None) -> Any:
        """First column of the result.

        A scalar (or None) when the SQL ends in ``LIMIT 1``, else a list.
        """
        self._state.output = OutputFormat.ARRAY
        self._state.map_key = None
        rows = self.raw_query(sql, params)
        values = [next(iter(row.values())) for row in rows]
        if _LIMIT_ONE.search(sql.strip()):
            return values[0] if values else None
        return values

    # transactions

    def start_transaction(self) -> Transaction:
        """Start a transaction on the current connection.

        The returned Transaction can be used as a context manager; leaving it
        without committing rolls back.
        """
        return Transaction(self.connections.current()).begin()

    def commit(self) -> None:
        cn = self.connections.current()
        if not cn.in_transaction:
            raise CommitError('No transaction in progress')
        cn.transaction.commit()

    def rollback(self) -> None:
        cn = self.connections.current()
        if not cn.in_transaction:
            raise RollbackError('No transaction in progress')
        cn.transaction.rollback()

    @property
    def in_transaction(self) -> bool:
        return self.connections.current().in_transaction

    # diagnostics

    def get_last_query(self) -> str | None:
        """Last statement with its values substituted, for display."""
        return self._last_query

    def get_last_error(self) -> str | None:
        return self._last_error

    def get_last_errno(self) -> Any:
        return self._last_errno

    def get_insert_id(self) -> int:
        return self._insert_id

    def get_trace(self) -> list[TraceEntry]:
        return list(self._trace)

    def set_trace(self, enabled: bool) -> Self:
        """Turn tracing on or off; turning it off clears the log."""
        self.trace_enabled = enabled
        if not enabled:
            self._trace.clear()
        return self
