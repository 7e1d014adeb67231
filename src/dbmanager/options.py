from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pandas as pd
import pyarrow as pa
from dbmanager.strategy import strategy_class

from libb import ConfigOptions, scriptname

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame that keeps the column names."""
    return pd.DataFrame(columns=list(columns))


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    return pd.DataFrame.from_records(list(data), columns=list(columns))


def pandas_pyarrow_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """PyArrow-based pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return _empty_dataframe(columns)

    column_names = list(columns)
    columns_data = [[row[col] for row in data] for col in column_names]
    return pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`

    - data_loader: callable turning (records, column names) into the
      data-frame output shape (default: pandas_numpy_data_loader)
    - trace: record a TraceEntry for every statement (default: True)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    data_loader: Callable[..., Any] | None = None
    trace: bool = True

    def __post_init__(self):
        try:
            strategy_cls = strategy_class(self.drivername)
        except ValueError as exc:
            raise ValueError(f'drivername must be one of the registered dialects ({exc})') from None
        self.appname = self.appname or scriptname() or 'python_console'
        strategy_cls.validate_options(self)
        if self.data_loader is None:
            self.data_loader = pandas_numpy_data_loader
