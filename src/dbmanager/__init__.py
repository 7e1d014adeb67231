"""
Fluent SQL builder with named connections, for PostgreSQL and SQLite.

    from dbmanager import QueryBuilder, connect, inc

    db = QueryBuilder(connect('postgresql', hostname='localhost', ...))
    rows = db.where('status', 'active').order_by('id', 'DESC').select('users', 10)
    db.where('id', rows[0]['id']).update('users', {'logins': inc()})
"""
__version__ = '0.1.1'

from dbmanager.builder import QueryBuilder, Subquery
from dbmanager.clauses import NOVALUE, Direction, JoinType, OutputFormat
from dbmanager.compiler import CompiledStatement
from dbmanager.connection import ConnectionRegistry, ConnectionWrapper, connect
from dbmanager.directives import Increment, Negate, Placeholder, RawExpr, dec
from dbmanager.directives import func, inc, not_
from dbmanager.exceptions import CommitError, ConnectionAlreadyExists
from dbmanager.exceptions import ConnectionFailure, ConnectionNotFound
from dbmanager.exceptions import DatabaseError
from dbmanager.exceptions import DuplicateConnection, IntegrityError
from dbmanager.exceptions import IntegrityViolationError, InvalidValueDirective
from dbmanager.exceptions import NestedTransactionError, NoActiveConnection
from dbmanager.exceptions import NoConnections, OperationalError
from dbmanager.exceptions import ParameterMismatchError, PrepareError
from dbmanager.exceptions import ProgrammingError, QueryError, RollbackError
from dbmanager.exceptions import TransactionError, TransactionStartError
from dbmanager.exceptions import UnknownConnection, UnsupportedOperationError
from dbmanager.options import DatabaseOptions
from dbmanager.trace import TraceEntry
from dbmanager.transaction import Transaction, TransactionState

__all__ = [
    'connect',
    'QueryBuilder',
    'Subquery',
    'CompiledStatement',
    'ConnectionWrapper',
    'ConnectionRegistry',
    'DatabaseOptions',
    'Transaction',
    'TransactionState',
    'TraceEntry',
    'NOVALUE',
    'JoinType',
    'Direction',
    'OutputFormat',
    'Placeholder',
    'Increment',
    'RawExpr',
    'Negate',
    'inc',
    'dec',
    'func',
    'not_',
    'DatabaseError',
    'ConnectionFailure',
    'ConnectionNotFound',
    'ConnectionAlreadyExists',
    'NoActiveConnection',
    'UnknownConnection',
    'DuplicateConnection',
    'NoConnections',
    'QueryError',
    'PrepareError',
    'IntegrityViolationError',
    'InvalidValueDirective',
    'ParameterMismatchError',
    'UnsupportedOperationError',
    'TransactionError',
    'TransactionStartError',
    'CommitError',
    'RollbackError',
    'NestedTransactionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
