"""
Clause accumulation for one statement.

A `QueryState` collects WHERE/HAVING conditions, joins, ordering and grouping
between fluent calls and holds the parameter buffer the compiler binds into.
A builder replaces its state with a fresh one after every statement, so
nothing leaks from one statement into the next.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dbmanager.types import ParameterBuffer

__all__ = [
    'NOVALUE',
    'LEGACY_NOVALUE',
    'JoinType',
    'Direction',
    'OutputFormat',
    'Condition',
    'Join',
    'QueryState',
]


class _NoValue:
    """Marker for a condition without a right-hand value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'NOVALUE'

    def __bool__(self) -> bool:
        return False


NOVALUE = _NoValue()

# String form of the marker accepted from older callers.
LEGACY_NOVALUE = 'DBNULL'


class _CaseInsensitiveEnum(str, Enum):

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class JoinType(_CaseInsensitiveEnum):
    INNER = 'INNER'
    LEFT = 'LEFT'
    RIGHT = 'RIGHT'


class Direction(_CaseInsensitiveEnum):
    ASC = 'ASC'
    DESC = 'DESC'


class OutputFormat(_CaseInsensitiveEnum):
    ARRAY = 'ARRAY'
    OBJECT = 'OBJECT'
    JSON = 'JSON'
    DATAFRAME = 'DATAFRAME'


@dataclass(frozen=True, slots=True)
class Condition:
    """One WHERE or HAVING condition."""
    conjunction: str
    field: str
    operator: str
    value: Any = NOVALUE


@dataclass(frozen=True, slots=True)
class Join:
    join_type: JoinType
    table: str
    condition: str


@dataclass
class QueryState:
    """Mutable per-statement accumulator.
    """
    where: list[Condition] = field(default_factory=list)
    having: list[Condition] = field(default_factory=list)
    joins: list[Join] = field(default_factory=list)
    order_by: dict[str, Direction] = field(default_factory=dict)
    group_by: list[str] = field(default_factory=list)
    params: ParameterBuffer = field(default_factory=ParameterBuffer)
    output: OutputFormat = OutputFormat.ARRAY
    map_key: str | None = None

    @staticmethod
    def _condition(conditions: list[Condition], field_name: str, value: Any,
                   operator: str, conjunction: str) -> Condition:
        # the compiler supplies WHERE/HAVING in place of the first conjunction
        conjunction = conjunction.strip().upper() if conditions else ''
        return Condition(conjunction, field_name or '', operator.strip(), value)

    def add_where(self, field_name: str, value: Any = NOVALUE, operator: str = '=',
                  conjunction: str = 'AND') -> Condition:
        cond = self._condition(self.where, field_name, value, operator, conjunction)
        self.where.append(cond)
        return cond

    def add_having(self, field_name: str, value: Any = NOVALUE, operator: str = '=',
                   conjunction: str = 'AND') -> Condition:
        cond = self._condition(self.having, field_name, value, operator, conjunction)
        self.having.append(cond)
        return cond

    def add_join(self, table: str, condition: str,
                 join_type: JoinType | str = JoinType.INNER) -> Join:
        join = Join(JoinType(join_type), table, condition)
        self.joins.append(join)
        return join

    def add_order_by(self, field_name: str, direction: Direction | str = Direction.ASC) -> None:
        self.order_by[field_name] = Direction(direction)

    def add_group_by(self, field_name: str) -> None:
        self.group_by.append(field_name)

    def is_empty(self) -> bool:
        return not (self.where or self.having or self.joins or self.order_by
                    or self.group_by or len(self.params))

    def snapshot(self) -> dict[str, Any]:
        """Copy of the clause state, used for tracing."""
        return {
            'WHERE': list(self.where),
            'HAVING': list(self.having),
            'JOIN': list(self.joins),
            'ORDER_BY': {k: v.value for k, v in self.order_by.items()},
            'GROUP_BY': list(self.group_by),
        }
