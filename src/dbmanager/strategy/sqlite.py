"""
SQLite-specific strategy implementation.

SQLite takes the builder's ``?`` placeholders as-is. Autocommit is controlled
through the sqlite3 module's ``isolation_level``: ``None`` commits every
statement, ``'DEFERRED'`` opens a transaction on the first write.
"""
import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from dbmanager.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbmanager.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    row_identifier = 'rowid'

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for SQLite."""
        return f'sqlite:///{options.database}'

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    def register_type_adapters(self) -> None:
        """Store dict and list values as JSON text.
        """
        sqlite3.register_adapter(dict, json.dumps)
        sqlite3.register_adapter(list, json.dumps)

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = 'DEFERRED'

    def error_code(self, exc: BaseException) -> int | None:
        """Extended result code (Python 3.11+), e.g. 1 for SQLITE_ERROR."""
        return getattr(exc, 'sqlite_errorcode', None)
