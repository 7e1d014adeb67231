"""
Database connection handling.

This module provides:
1. The `connect()` function for creating new database connections
2. The `ConnectionWrapper` class that wraps SQLAlchemy or raw DBAPI connections
3. Engine creation and caching through a thread-safe registry
4. The `ConnectionRegistry` of named connections used by the query builder

The builder talks to the raw DBAPI connection; SQLAlchemy is only used to turn
options into a URL and to open the connection.
"""
import atexit
import logging
import threading
from collections.abc import Callable
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from dbmanager.exceptions import ConnectionAlreadyExists, ConnectionNotFound
from dbmanager.exceptions import NoActiveConnection
from dbmanager.options import DatabaseOptions
from dbmanager.strategy import DatabaseStrategy, get_db_strategy, get_strategy
from dbmanager.utils import get_dialect_name, get_raw_connection
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionWrapper',
    'ConnectionRegistry',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
    'DEFAULT_CONNECTION',
]

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = 'default'

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.make_url) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    strategy = get_strategy(options.drivername)
    return url_creator(strategy.build_connection_url(options))


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines never pool: one engine connection is one registered connection.
    """
    url = create_url_from_options(options)
    key = url.render_as_string(hide_password=False)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """Wraps a database connection to track calls and execution time

    This class provides a thin wrapper around connection objects that:
    1. Accepts a SQLAlchemy connection or a raw DBAPI connection
    2. Tracks query execution counts and timing
    3. Switches the driver into autocommit mode, the builder's default
    4. Supports context manager protocol for explicit resource management
    5. Delegates unknown attribute access to the DBAPI connection
    """

    def __init__(self, handle: Any, options: DatabaseOptions | None = None) -> None:
        """Initialize a connection wrapper

        Args:
            handle: SQLAlchemy connection or raw DBAPI connection to wrap
            options: The DatabaseOptions used to create this connection
        """
        is_sqlalchemy = isinstance(handle, sa.engine.Connection)
        self.sa_connection = handle if is_sqlalchemy else None
        self.dbapi_connection = get_raw_connection(handle)
        self.options = options
        self._dialect = get_dialect_name(self.dbapi_connection)
        self.calls = 0
        self.time = 0
        self.transaction = None
        self.closed = False
        configure_connection(self)

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        self.close()
        logger.debug('Closed connection via context manager')

    def __getattr__(self, name: str) -> Any:
        """Delegate attribute access to the raw connection.
        """
        if name == 'dbapi_connection':
            raise AttributeError(name)
        return getattr(self.dbapi_connection, name)

    def __repr__(self) -> str:
        return f'ConnectionWrapper(dialect={self._dialect!r}, calls={self.calls})'

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        return get_db_strategy(self)

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None and self.transaction.active

    def cursor(self) -> Any:
        """Get a new DBAPI cursor for this connection
        """
        return self.dbapi_connection.cursor()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def commit(self) -> None:
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.dbapi_connection.rollback()

    def ping(self) -> bool:
        """Check the connection is alive."""
        return self.strategy.ping(self.dbapi_connection)

    def close(self) -> None:
        """Close the connection.
        """
        if self.closed:
            return
        if self.in_transaction:
            logger.warning('Closing connection with an open transaction, rolling back')
            self.transaction.rollback()
        if self.sa_connection is not None:
            self.sa_connection.close()
        else:
            self.dbapi_connection.close()
        self.closed = True
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')


def configure_connection(cn: ConnectionWrapper) -> None:
    """Configure a wrapped connection with database-specific settings.
    """
    strategy = cn.strategy
    strategy.register_type_adapters()
    strategy.enable_autocommit(cn.dbapi_connection)


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy to open the connection

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        ConnectionWrapper object for connecting to the database
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    engine = get_engine_for_options(options)
    sa_connection = engine.connect()

    return ConnectionWrapper(sa_connection, options)


class ConnectionRegistry:
    """Named connections with one current selection.

    Not thread-safe: share a registry across threads only with external
    locking.

    Examples
        registry = ConnectionRegistry()
        registry.add('default', connect(options))
        registry.add('reporting', sqlite3.connect('reports.db'))
        registry.select('reporting')
        cn = registry.current()
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionWrapper] = {}
        self.current_name = DEFAULT_CONNECTION

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._connections)

    def has(self, name: str) -> bool:
        return name in self._connections

    def names(self) -> list[str]:
        return list(self._connections)

    def add(self, name: str, handle: Any,
            options: DatabaseOptions | None = None) -> ConnectionWrapper:
        """Register a connection under `name`.

        Raw DBAPI and SQLAlchemy connections are wrapped.
        """
        if self.has(name):
            raise ConnectionAlreadyExists(name)

        cn = handle if isinstance(handle, ConnectionWrapper) else ConnectionWrapper(handle, options)
        self._connections[name] = cn
        logger.debug(f'Registered {cn.dialect} connection {name!r}')
        return cn

    def get(self, name: str) -> ConnectionWrapper:
        if not self.has(name):
            raise ConnectionNotFound(name)
        return self._connections[name]

    def select(self, name: str) -> None:
        """Make `name` the current connection."""
        if not self.has(name):
            raise ConnectionNotFound(name)
        self.current_name = name

    def select_default(self) -> None:
        self.current_name = DEFAULT_CONNECTION

    def current(self) -> ConnectionWrapper:
        """The currently selected connection."""
        if not self.has(self.current_name):
            raise NoActiveConnection()
        return self._connections[self.current_name]

    def disconnect(self, name: str = DEFAULT_CONNECTION) -> None:
        """Close the named connection and remove it."""
        cn = self.get(name)
        del self._connections[name]
        cn.close()
        logger.debug(f'Disconnected {name!r}')

    def disconnect_all(self) -> None:
        for name in self.names():
            self.disconnect(name)
