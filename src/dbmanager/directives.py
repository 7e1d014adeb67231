"""
Column value directives for INSERT, REPLACE and UPDATE.

A column value is normally bound as a parameter. These directives render
something else in its place:

    db.update('counters', {'hits': inc(), 'seen': not_(), 'at': func('CURRENT_TIMESTAMP')})

The single-key mapping form used by older callers is still understood:
``{'[I]': '+1'}``, ``{'[F]': ('NOW()', [])}`` and ``{'[N]': None}``.
"""
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dbmanager.exceptions import InvalidValueDirective

__all__ = [
    'Placeholder',
    'Increment',
    'RawExpr',
    'Negate',
    'Directive',
    'inc',
    'dec',
    'func',
    'not_',
    'as_directive',
]


@dataclass(frozen=True, slots=True)
class Placeholder:
    """Bind the value as a parameter."""
    value: Any


@dataclass(frozen=True, slots=True)
class Increment:
    """Render ``<column><expression>``, e.g. ``hits+1``."""
    expression: str


@dataclass(frozen=True, slots=True)
class RawExpr:
    """Render the SQL fragment verbatim and bind its parameters."""
    sql: str
    params: tuple = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Negate:
    """Render the negation of the column itself, or of an expression."""
    expression: str | None = None


Directive = Placeholder | Increment | RawExpr | Negate


def inc(num: int | float = 1) -> Increment:
    """Increment the column by `num`."""
    return Increment(f'+{num}')


def dec(num: int | float = 1) -> Increment:
    """Decrement the column by `num`."""
    return Increment(f'-{num}')


def func(sql: str, *params: Any) -> RawExpr:
    """Use a raw SQL expression, optionally with ``?`` parameters."""
    return RawExpr(sql, tuple(params))


def not_(expression: str | None = None) -> Negate:
    """Negate the column (or `expression`)."""
    return Negate(expression)


def _raw_from_legacy(value: Any) -> RawExpr:
    if isinstance(value, str):
        return RawExpr(value)
    if not isinstance(value, Sequence) or not value:
        raise InvalidValueDirective(f'Invalid function directive: {value!r}')
    params = value[1] if len(value) > 1 and value[1] else ()
    return RawExpr(value[0], tuple(params))


_LEGACY_KEYS = {
    '[I]': lambda v: Increment(str(v)),
    '[F]': _raw_from_legacy,
    '[N]': lambda v: Negate(v or None),
}


def as_directive(value: Any) -> Directive:
    """Resolve a column value to a directive.

    Mappings are always read as directives; any other value is bound.

    >>> as_directive(5)
    Placeholder(value=5)
    >>> as_directive({'[I]': '+1'})
    Increment(expression='+1')
    """
    if isinstance(value, Placeholder | Increment | RawExpr | Negate):
        return value
    if isinstance(value, Mapping):
        if len(value) != 1:
            raise InvalidValueDirective(f'Wrong operation: {dict(value)!r}')
        key, inner = next(iter(value.items()))
        if key not in _LEGACY_KEYS:
            raise InvalidValueDirective(f'Wrong operation: {key!r}')
        return _LEGACY_KEYS[key](inner)
    return Placeholder(value)
