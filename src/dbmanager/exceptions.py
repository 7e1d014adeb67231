"""
Database-specific exception classes.
"""
import sqlite3
from typing import Any

import psycopg


class DatabaseError(Exception):
    """Base class for all dbmanager errors.
    """


class ConnectionFailure(DatabaseError):
    """Error registering, selecting or using a named connection.
    """


class ConnectionNotFound(ConnectionFailure):
    """The named connection is not registered.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f'Connection {name} is not found!')
        self.name = name


class ConnectionAlreadyExists(ConnectionFailure):
    """A connection is already registered under this name.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f'Connection {name} already exists!')
        self.name = name


class NoActiveConnection(ConnectionFailure):
    """The currently selected connection name is not registered.
    """

    def __init__(self, message: str = 'No connections found!') -> None:
        super().__init__(message)


UnknownConnection = ConnectionNotFound
DuplicateConnection = ConnectionAlreadyExists
NoConnections = NoActiveConnection


class QueryError(DatabaseError):
    """Error in query compilation or execution.

    Carries the driver's message and error code when the driver raised it,
    and the SQL text that was being run.
    """

    def __init__(self, message: str, code: Any = None, sql: str | None = None) -> None:
        super().__init__(message if sql is None else f'{message} - Query: {sql}')
        self.driver_message = message
        self.driver_code = code
        self.sql = sql


class PrepareError(QueryError):
    """The driver rejected the SQL text.
    """


class IntegrityViolationError(QueryError):
    """Database constraint violation error.
    """


class InvalidValueDirective(QueryError):
    """Unknown directive used as an INSERT/UPDATE column value.
    """


class ParameterMismatchError(QueryError):
    """Compiled SQL and bound parameters are out of step.
    """


class UnsupportedOperationError(QueryError):
    """The statement has no equivalent on the connection's dialect.
    """


class TransactionError(DatabaseError):
    """Base class for transaction state errors.
    """


class TransactionStartError(TransactionError):
    """The driver refused to leave autocommit mode.
    """


class CommitError(TransactionError):
    """The driver refused to commit.
    """


class RollbackError(TransactionError):
    """The driver refused to roll back.
    """


class NestedTransactionError(TransactionError):
    """A transaction is already active on this connection.
    """


DriverError = (
    psycopg.Error,
    sqlite3.Error,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    IntegrityViolationError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    sqlite3.ProgrammingError,
    QueryError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    )


def translate_driver_error(exc: BaseException, code: Any = None,
                           sql: str | None = None) -> QueryError:
    """Map a driver exception to the matching dbmanager error.

    Integrity violations keep their own class; errors raised while the
    driver parses or plans the statement become `PrepareError`.
    """
    message = str(exc)
    if isinstance(exc, IntegrityError):
        return IntegrityViolationError(message, code, sql)
    if isinstance(exc, ProgrammingError + OperationalError):
        return PrepareError(message, code, sql)
    return QueryError(message, code, sql)
