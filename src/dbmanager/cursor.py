"""
Statement execution and result materialisation.

`execute_statement()` runs compiled SQL on a fresh DB-API cursor of a wrapped
connection; `materialize()` turns the cursor's rows into the requested output
shape.
"""
import json
import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from dbmanager.clauses import OutputFormat
from dbmanager.exceptions import DriverError, translate_driver_error
from dbmanager.options import pandas_numpy_data_loader
from dbmanager.types import ParameterBuffer

from libb import attrdict

__all__ = [
    'dumpsql',
    'execute_statement',
    'column_names',
    'materialize',
]

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging SQL statements and parameters."""
    @wraps(func)
    def wrapper(cn, sql: str, params: ParameterBuffer, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {params.values} types: {params.types!r}')
        try:
            return func(cn, sql, params, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params.values}')
            raise
        finally:
            elapsed = time.time() - start
            cn.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


@dumpsql
def execute_statement(cn, sql: str, params: ParameterBuffer) -> Any:
    """Execute SQL with bound parameters and return the open DB-API cursor.

    Driver errors are translated to `QueryError` subclasses carrying the
    driver message and code.
    """
    strategy = cn.strategy
    cursor = cn.cursor()
    try:
        cursor.execute(strategy.standardize_sql(sql), params.driver_values())
    except DriverError as exc:
        cursor.close()
        raise translate_driver_error(exc, strategy.error_code(exc), sql) from exc
    return cursor


def column_names(cursor: Any) -> list[str] | None:
    """Result column names, or None when the statement returned no rows."""
    if cursor.description is None:
        return None
    return [desc[0] for desc in cursor.description]


def _keyed(rows: list, columns: list[str], map_key: str) -> dict:
    if map_key not in columns:
        raise KeyError(f'Map key {map_key!r} is not a result column: {columns}')
    if len(columns) == 2:
        other = columns[1] if columns[0] == map_key else columns[0]
        return {row[map_key]: row[other] for row in rows}
    return {row[map_key]: row for row in rows}


def _empty(output: OutputFormat, map_key: str | None,
           data_loader: Callable[..., Any]) -> Any:
    if output is OutputFormat.DATAFRAME:
        return data_loader([], [])
    result = {} if map_key else []
    if output is OutputFormat.JSON:
        return json.dumps(result)
    return result


def materialize(cursor: Any, output: OutputFormat = OutputFormat.ARRAY,
                map_key: str | None = None,
                data_loader: Callable[..., Any] | None = None) -> tuple[Any, int | None]:
    """Convert the cursor's rows into the requested output shape.

    Args:
        cursor: executed DB-API cursor
        output: ARRAY (list of dicts), OBJECT (list of attrdicts), JSON (text)
            or DATAFRAME (whatever `data_loader` builds)
        map_key: key the result by this column; with exactly two columns the
            value is the other column, otherwise the whole row. Later rows
            overwrite earlier ones with the same key.
        data_loader: callable(records, columns) used for DATAFRAME

    Returns
        (result, number of rows fetched). The row count is None when the
        cursor carries no result metadata.
    """
    data_loader = data_loader or pandas_numpy_data_loader
    columns = column_names(cursor)
    if columns is None:
        logger.debug('Statement returned no result set')
        return _empty(output, map_key, data_loader), None

    records = [dict(zip(columns, row)) for row in cursor.fetchall()]
    count = len(records)
    logger.debug(f'Fetched {count} rows with columns {columns}')

    if output is OutputFormat.DATAFRAME:
        df = data_loader(records, columns)
        if map_key:
            df = df.set_index(map_key)
        return df, count

    rows = [attrdict(r) for r in records] if output is OutputFormat.OBJECT else records
    result = _keyed(rows, columns, map_key) if map_key else rows

    if output is OutputFormat.JSON:
        return json.dumps(result, default=str), count
    return result, count
