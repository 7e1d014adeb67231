"""
PostgreSQL-specific strategy implementation.

psycopg uses format-style ``%s`` placeholders, so builder SQL is rewritten
before execution. Autocommit maps directly onto ``Connection.autocommit``,
which psycopg refuses to change while a transaction is open.
"""
import logging
from typing import TYPE_CHECKING, Any

import psycopg
from dbmanager.sql import standardize_placeholders
from dbmanager.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbmanager.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    row_identifier = 'ctid'
    supports_replace = False

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query_parts = []
        if options.timeout:
            query_parts.append(f'connect_timeout={options.timeout}')
        if options.appname:
            query_parts.append(f'application_name={options.appname}')

        url = (f'postgresql+psycopg://{options.username}:{options.password}'
               f'@{options.hostname}:{options.port}/{options.database}')

        if query_parts:
            url += '?' + '&'.join(query_parts)

        return url

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for PostgreSQL.
        """
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for PostgreSQL.
        """
        raw_conn.autocommit = False

    def error_code(self, exc: BaseException) -> str | None:
        """Five-character SQLSTATE, e.g. '42P01' for an undefined table."""
        return getattr(exc, 'sqlstate', None)

    def standardize_sql(self, sql: str) -> str:
        """Convert builder placeholders (?) to psycopg's %s.
        """
        return standardize_placeholders(sql, dialect='postgresql')

    def last_insert_id(self, cursor: Any) -> int:
        """Value most recently produced by a sequence in this session.

        psycopg cursors carry no ``lastrowid``; ``lastval()`` reports the id
        of a serial/identity column filled by the INSERT. The lookup runs in
        its own transaction block (a savepoint inside an open transaction),
        so a session that has not used a sequence yet yields 0 without
        aborting the caller's transaction.
        """
        conn = cursor.connection
        try:
            with conn.transaction(), conn.cursor() as lookup:
                lookup.execute('SELECT lastval()')
                row = lookup.fetchone()
        except psycopg.errors.ObjectNotInPrerequisiteState:
            logger.debug('No sequence value in this session; insert id is 0')
            return 0
        return row[0] if row else 0
