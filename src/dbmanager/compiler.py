"""
SQL assembly for SELECT, INSERT/REPLACE, UPDATE and DELETE.

Clauses are always emitted in the same order:

    base -> JOIN -> column values -> WHERE -> GROUP BY -> HAVING -> ORDER BY -> LIMIT

and every value is bound into the statement's `ParameterBuffer` at the moment
its ``?`` is written, so the text and the parameters can never drift apart.
The compiled text always uses ``?``; the dialect strategy converts it for the
driver at execution time.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dbmanager.clauses import LEGACY_NOVALUE, NOVALUE, Condition, QueryState
from dbmanager.directives import Increment, Negate, Placeholder, RawExpr
from dbmanager.directives import as_directive
from dbmanager.exceptions import ParameterMismatchError, UnsupportedOperationError
from dbmanager.sql import count_placeholders
from dbmanager.strategy import DatabaseStrategy
from dbmanager.types import ParameterBuffer

from libb import issequence

__all__ = [
    'CompiledStatement',
    'compile_select',
    'compile_insert',
    'compile_update',
    'compile_delete',
    'render_limit',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledStatement:
    """SQL text plus the parameters bound for its placeholders.

    Also accepted as a condition value, where it is rendered as a
    parenthesised sub-query.
    """
    sql: str
    params: ParameterBuffer

    def __str__(self) -> str:
        return self.sql


def _is_sequence(value: Any) -> bool:
    return issequence(value) and not isinstance(value, str | bytes | bytearray)


class _Writer:
    """Collects SQL fragments and binds parameters as they are written."""

    def __init__(self, state: QueryState, strategy: DatabaseStrategy) -> None:
        self.parts: list[str] = []
        self.params = state.params
        self.strategy = strategy

    def write(self, *fragments: str) -> None:
        self.parts.extend(f for f in fragments if f)

    def placeholder(self, value: Any) -> str:
        self.params.bind(value)
        return '?'

    def subquery(self, statement: CompiledStatement) -> str:
        self.params.extend(statement.params)
        return f'({statement.sql})'

    def enclose(self, start: int) -> None:
        """Parenthesise everything written since `start` as one fragment."""
        inner = ' '.join(self.parts[start:])
        del self.parts[start:]
        self.parts.append(f'({inner})')

    def finish(self) -> CompiledStatement:
        sql = ' '.join(self.parts)
        found = count_placeholders(sql)
        if found != len(self.params):
            raise ParameterMismatchError(
                f'Statement has {found} placeholders but {len(self.params)} bound parameters',
                sql=sql)
        logger.debug(f'Compiled: {sql} types: {self.params.types!r}')
        return CompiledStatement(sql, self.params)


def _render_condition(w: _Writer, cond: Condition) -> str:
    """Render the operator and value part of a condition, binding as needed.
    """
    op = cond.operator
    key = ' '.join(op.lower().split())
    value = cond.value

    if key in {'in', 'not in'}:
        if isinstance(value, CompiledStatement):
            return f'{op} {w.subquery(value)}'
        values = list(value) if _is_sequence(value) else [value]
        if not values:
            return f'{op} (NULL)'
        return f"{op} ({', '.join(w.placeholder(v) for v in values)})"

    if key in {'between', 'not between'}:
        if not _is_sequence(value) or len(value) != 2:
            raise ValueError(f'{op.upper()} needs exactly two values, got {value!r}')
        low, high = value
        return f'{op} {w.placeholder(low)} AND {w.placeholder(high)}'

    if key in {'exists', 'not exists'}:
        if not isinstance(value, CompiledStatement):
            raise TypeError(f'{op.upper()} needs a sub-query, got {type(value).__name__}')
        return f'{op} {w.subquery(value)}'

    if isinstance(value, CompiledStatement):
        return f'{op} {w.subquery(value)}'
    if _is_sequence(value):
        # placeholders are already in the field text
        w.params.bind_all(value)
        return ''
    if value is None:
        return f'{op} NULL'
    if value is NOVALUE or (isinstance(value, str) and value == LEGACY_NOVALUE):
        return ''
    return f'{op} {w.placeholder(value)}'


def _write_conditions(w: _Writer, keyword: str, conditions: list[Condition]) -> None:
    if not conditions:
        return
    w.write(keyword)
    for cond in conditions:
        w.write(cond.conjunction, cond.field)
        w.write(_render_condition(w, cond))


def _write_joins(w: _Writer, state: QueryState) -> None:
    for join in state.joins:
        w.write(f'{join.join_type.value} JOIN {join.table} ON {join.condition}')


def _write_grouping(w: _Writer, state: QueryState) -> None:
    if state.group_by:
        w.write('GROUP BY ' + ', '.join(state.group_by))


def _write_ordering(w: _Writer, state: QueryState) -> None:
    if not state.order_by:
        return
    parts = []
    for field_name, direction in state.order_by.items():
        if w.strategy.is_random_order(field_name):
            parts.append(field_name)
        else:
            parts.append(f'{field_name} {direction.value}')
    w.write('ORDER BY ' + ', '.join(parts))


def render_limit(num_rows: Any) -> str | None:
    """Render a LIMIT clause from a row count or an ``(offset, count)`` pair.

    >>> render_limit(10)
    'LIMIT 10'
    >>> render_limit((20, 10))
    'LIMIT 10 OFFSET 20'
    """
    if num_rows is None:
        return None
    if _is_sequence(num_rows):
        if len(num_rows) == 1:
            return f'LIMIT {int(num_rows[0])}'
        if len(num_rows) != 2:
            raise ValueError(f'LIMIT takes a count or an (offset, count) pair, got {num_rows!r}')
        offset, count = num_rows
        return f'LIMIT {int(count)} OFFSET {int(offset)}'
    return f'LIMIT {int(num_rows)}'


def _write_tail(w: _Writer, state: QueryState, num_rows: Any = None) -> None:
    """Everything after the column-value section."""
    _write_conditions(w, 'WHERE', state.where)
    _write_grouping(w, state)
    _write_conditions(w, 'HAVING', state.having)
    _write_ordering(w, state)
    w.write(render_limit(num_rows))


def _is_narrowed(state: QueryState, table: str, num_rows: Any) -> bool:
    """UPDATE/DELETE shapes that must pick their rows through a sub-select.

    Neither dialect accepts a join, an ORDER BY or a LIMIT on these
    statements, and SQLite takes no alias on their target.
    """
    return (len(table.split()) > 1 or bool(state.joins) or bool(state.order_by)
            or num_rows is not None)


def _write_row_filter(w: _Writer, state: QueryState, table: str, num_rows: Any) -> None:
    """Restrict an UPDATE/DELETE to the rows a SELECT with the clauses finds.

    Rows are matched on the dialect's row identifier:
    ``WHERE rowid IN (SELECT u.rowid FROM users u INNER JOIN ... LIMIT 5)``.
    """
    row_id = w.strategy.row_identifier
    reference = table.split()[-1]
    w.write(f'WHERE {row_id} IN')
    start = len(w.parts)
    w.write(f'SELECT {reference}.{row_id} FROM {table}')
    _write_joins(w, state)
    _write_tail(w, state, num_rows)
    w.enclose(start)


def _render_value(w: _Writer, column: str, value: Any) -> str:
    """Render one INSERT/UPDATE column value."""
    directive = as_directive(value)
    column = column.rsplit('.', 1)[-1]
    match directive:
        case Placeholder(value=bound):
            return w.placeholder(bound)
        case Increment(expression=expression):
            return f'{column}{expression}'
        case RawExpr(sql=sql, params=params):
            w.params.bind_all(params)
            return sql
        case Negate(expression=expression):
            return w.strategy.negate(expression or column)


def compile_select(state: QueryState, strategy: DatabaseStrategy, table: str,
                   num_rows: Any = None, columns: str | list[str] = '*') -> CompiledStatement:
    """Compile a SELECT over `table` with the accumulated clauses.

    >>> from dbmanager.strategy import get_strategy
    >>> state = QueryState()
    >>> _ = state.add_where('id', 5)
    >>> compile_select(state, get_strategy('sqlite'), 'users').sql
    'SELECT * FROM users WHERE id = ?'
    """
    w = _Writer(state, strategy)
    column_list = columns if isinstance(columns, str) else ', '.join(columns)
    w.write(f'SELECT {column_list} FROM {table}')
    _write_joins(w, state)
    _write_tail(w, state, num_rows)
    return w.finish()


def compile_insert(state: QueryState, strategy: DatabaseStrategy, table: str,
                   data: Mapping[str, Any] | None,
                   operation: str = 'INSERT') -> CompiledStatement:
    """Compile an INSERT (or REPLACE) of one row.

    Values may be directives; see `dbmanager.directives`.

    Raises
        ValueError: unknown operation
        UnsupportedOperationError: REPLACE on a dialect without it
    """
    operation = operation.upper()
    if operation not in {'INSERT', 'REPLACE'}:
        raise ValueError(f'Unsupported insert operation: {operation}')
    if operation == 'REPLACE' and not strategy.supports_replace:
        raise UnsupportedOperationError(
            f'REPLACE is not available on {strategy.dialect_name}; '
            'use raw_query() with INSERT ... ON CONFLICT')

    w = _Writer(state, strategy)
    w.write(f'{operation} INTO {table}')
    _write_joins(w, state)
    if not data:
        w.write('DEFAULT VALUES')
    else:
        names = ', '.join(strategy.quote_identifier(column) for column in data)
        values = ', '.join(_render_value(w, column, value) for column, value in data.items())
        w.write(f'({names}) VALUES ({values})')
    _write_tail(w, state)
    return w.finish()


def compile_update(state: QueryState, strategy: DatabaseStrategy, table: str,
                   data: Mapping[str, Any], num_rows: Any = None) -> CompiledStatement:
    """Compile an UPDATE of `table` setting the columns in `data`.

    With an alias, joins, ordering or a row limit the target rows are
    picked by a sub-select on the row identifier:

    >>> from dbmanager.strategy import get_strategy
    >>> state = QueryState()
    >>> _ = state.add_join('orders o', 'o.user_id = u.id')
    >>> compile_update(state, get_strategy('postgresql'), 'users u', {'status': 'buyer'}).sql
    'UPDATE users SET "status" = ? WHERE ctid IN (SELECT u.ctid FROM users u INNER JOIN orders o ON o.user_id = u.id)'
    """
    if not data:
        raise ValueError(f'No columns to update in {table}')

    w = _Writer(state, strategy)
    w.write(f'UPDATE {table.split()[0]}')
    assignments = ', '.join(f'{strategy.assignment_target(column)} = {_render_value(w, column, value)}'
                            for column, value in data.items())
    w.write(f'SET {assignments}')
    if _is_narrowed(state, table, num_rows):
        _write_row_filter(w, state, table, num_rows)
    else:
        _write_tail(w, state)
    return w.finish()


def compile_delete(state: QueryState, strategy: DatabaseStrategy, table: str,
                   num_rows: Any = None) -> CompiledStatement:
    """Compile a DELETE from `table`.

    Narrowed the same way as `compile_update()`.
    """
    w = _Writer(state, strategy)
    w.write(f'DELETE FROM {table.split()[0]}')
    if _is_narrowed(state, table, num_rows):
        _write_row_filter(w, state, table, num_rows)
    else:
        _write_tail(w, state)
    return w.finish()
