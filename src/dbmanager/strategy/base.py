"""
Dialect strategies and their registry.

The compiler emits one portable statement shape; a strategy supplies the
parts that differ between drivers: placeholder conversion, identifier
quoting, the physical row identifier used to narrow UPDATE/DELETE,
autocommit switching, error codes and generated ids.

Concrete strategies register themselves by dialect name:

    @register_strategy('sqlite')
    class SQLiteStrategy(DatabaseStrategy):
        ...

    get_strategy('sqlite').quote_identifier('users')
"""
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from dbmanager.sql import quote_identifier as sql_quote_identifier
from dbmanager.utils import get_dialect_name

if TYPE_CHECKING:
    from dbmanager.options import DatabaseOptions

__all__ = [
    'DatabaseStrategy',
    'register_strategy',
    'strategy_class',
    'get_strategy',
    'get_db_strategy',
]

_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Class decorator registering a strategy under `dialect`."""
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


def strategy_class(dialect: str) -> type['DatabaseStrategy']:
    """Registered strategy class for a dialect name.

    Raises
        ValueError: the dialect has no registered strategy
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {sorted(_STRATEGY_REGISTRY)}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> 'DatabaseStrategy':
    """Shared strategy instance for a dialect name."""
    return strategy_class(dialect)()


def get_db_strategy(cn: Any) -> 'DatabaseStrategy':
    """Strategy for a wrapped, SQLAlchemy or raw DB-API connection."""
    return get_strategy(get_dialect_name(cn))


class DatabaseStrategy(ABC):
    """Base class for database-specific operations.
    """

    # ORDER BY expressions rendered without a direction suffix
    random_functions = frozenset({'rand()', 'random()'})

    # Hidden per-row column that identifies a row of any table
    row_identifier: str

    supports_replace = True

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            SQLAlchemy connection URL string
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return dialect-specific kwargs for SQLAlchemy create_engine()."""
        return {}

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Option fields that must be set for this dialect."""

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on the raw DBAPI connection.
        """

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on the raw DBAPI connection.
        """

    @abstractmethod
    def error_code(self, exc: BaseException) -> Any:
        """Return the driver's error code for an exception, if it has one."""

    def register_type_adapters(self) -> None:
        """Register dialect-specific driver adapters. No-op by default."""

    def standardize_sql(self, sql: str) -> str:
        """Convert builder SQL (``?`` placeholders) to the driver's style."""
        return sql

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier with double quotes."""
        return sql_quote_identifier(identifier, self.dialect_name)

    def assignment_target(self, column: str) -> str:
        """Quoted SET target of an UPDATE.

        Neither dialect accepts a table-qualified target, so any qualifier
        is dropped.

        >>> from dbmanager.strategy import get_strategy
        >>> get_strategy('sqlite').assignment_target('u.name')
        '"name"'
        """
        return self.quote_identifier(column.rsplit('.', 1)[-1])

    def negate(self, expression: str) -> str:
        """Render the boolean negation of an SQL expression."""
        return f'NOT {expression}'

    def is_random_order(self, expression: str) -> bool:
        """Check for a random-ordering function call."""
        return expression.replace(' ', '').lower() in self.random_functions

    def last_insert_id(self, cursor: Any) -> int:
        """Row id generated by the last INSERT on this cursor."""
        return getattr(cursor, 'lastrowid', None) or 0

    def ping(self, raw_conn: Any) -> bool:
        """Check the connection answers a trivial query.

        Driver errors are reported as a dead connection.
        """
        from dbmanager.exceptions import DriverError

        cursor = raw_conn.cursor()
        try:
            cursor.execute('SELECT 1')
            cursor.fetchall()
            return True
        except DriverError:
            return False
        finally:
            cursor.close()
