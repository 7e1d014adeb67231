"""
Type inference and positional parameter binding.

Every value bound into a statement gets a single-character type tag:

- ``s`` string (also used for ``None``)
- ``i`` integer (also used for booleans)
- ``b`` blob (bytes-like values and readable streams)
- ``d`` double (floating-point)
- empty string for anything the driver must adapt on its own

The tags are kept beside the values in a `ParameterBuffer`, whose order is the
order the compiler wrote ``?`` placeholders.
"""
import logging
import numbers
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)

STRING = 's'
INTEGER = 'i'
BLOB = 'b'
DOUBLE = 'd'
UNTYPED = ''


def _is_stream(value: Any) -> bool:
    return callable(getattr(value, 'read', None))


def determine_type(value: Any) -> str:
    """Return the driver type tag for a value.

    >>> [determine_type(v) for v in (None, 'x', True, 3, b'x', 1.5, object())]
    ['s', 's', 'i', 'i', 'b', 'd', '']
    """
    if value is None or isinstance(value, str):
        return STRING
    if isinstance(value, bool | numbers.Integral):
        return INTEGER
    if isinstance(value, bytes | bytearray | memoryview) or _is_stream(value):
        return BLOB
    if isinstance(value, float | np.floating):
        return DOUBLE
    return UNTYPED


@dataclass(frozen=True, slots=True)
class BindParameter:
    """A bound value with its inferred type tag."""
    value: Any
    type: str


class ParameterBuffer:
    """Ordered bound parameters for one statement.
    """

    def __init__(self, values: Iterable[Any] = ()) -> None:
        self._params: list[BindParameter] = []
        self.bind_all(values)

    def bind(self, value: Any) -> BindParameter:
        """Append a value, inferring its type tag."""
        param = BindParameter(value, determine_type(value))
        self._params.append(param)
        return param

    def bind_all(self, values: Iterable[Any]) -> None:
        for value in values:
            self.bind(value)

    def extend(self, other: 'ParameterBuffer') -> None:
        """Append already-typed parameters from another buffer."""
        self._params.extend(other)

    @property
    def types(self) -> str:
        return ''.join(p.type for p in self._params)

    @property
    def values(self) -> list[Any]:
        return [p.value for p in self._params]

    def driver_values(self) -> tuple:
        return tuple(to_driver_value(p) for p in self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[BindParameter]:
        return iter(self._params)

    def __repr__(self) -> str:
        return f'ParameterBuffer(types={self.types!r}, values={self.values!r})'


def to_driver_value(param: BindParameter) -> Any:
    """Convert a bound parameter into something the DB-API driver accepts.
    """
    value = param.value
    if param.type == BLOB and _is_stream(value):
        logger.debug(f'Reading stream parameter of type {type(value).__name__}')
        return value.read()
    if isinstance(value, np.generic):
        return value.item()
    return value
