"""
Dialect strategies. Importing this package registers PostgreSQL and SQLite.
"""
from dbmanager.strategy.base import DatabaseStrategy, get_db_strategy, get_strategy
from dbmanager.strategy.base import register_strategy, strategy_class
from dbmanager.strategy.postgres import PostgresStrategy
from dbmanager.strategy.sqlite import SQLiteStrategy

__all__ = [
    'DatabaseStrategy',
    'PostgresStrategy',
    'SQLiteStrategy',
    'get_db_strategy',
    'get_strategy',
    'register_strategy',
    'strategy_class',
]
