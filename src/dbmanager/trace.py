"""
Statement tracing.
"""
import inspect
import os
from dataclasses import dataclass, field
from typing import Any

__all__ = ['TraceEntry', 'caller_location']

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def caller_location() -> tuple[str | None, int | None, str | None]:
    """File, line and function of the first frame outside this package."""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = os.path.abspath(frame.f_code.co_filename)
            if not filename.startswith(_PACKAGE_DIR + os.sep):
                return filename, frame.f_lineno, frame.f_code.co_name
            frame = frame.f_back
        return None, None, None
    finally:
        del frame


@dataclass(frozen=True)
class TraceEntry:
    """One executed (or attempted) statement."""
    query: str | None
    clauses: dict[str, Any] = field(default_factory=dict)
    execution: float | None = None
    file: str | None = None
    line: int | None = None
    function: str | None = None

    @classmethod
    def capture(cls, query: str | None, clauses: dict[str, Any],
                execution: float | None) -> 'TraceEntry':
        file, line, function = caller_location()
        return cls(query, clauses, execution, file, line, function)

    @property
    def location(self) -> str:
        return f'{self.file}:{self.line} ({self.function})'
