"""
Literal-aware SQL text helpers.

The builder always writes ``?`` placeholders. These helpers work on that text
without touching quoted string literals:

- `count_placeholders()` - Number of positional placeholders
- `standardize_placeholders()` - Convert ``?`` to ``%s`` for format-style drivers
- `interpolate_params()` - Substitute values for display in traces and logs
- `quote_identifier()` - Quote table/column names
"""
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

__all__ = [
    'tokenize_sql',
    'count_placeholders',
    'has_placeholders',
    'standardize_placeholders',
    'interpolate_params',
    'quote_identifier',
]


class TokenType(Enum):
    """Token types identified during SQL scanning."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # ?
    PERCENT = auto()            # bare % outside literals


@dataclass(slots=True)
class Token:
    type: TokenType
    text: str


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*"|`(?:[^`]|``)*`)
    |(?P<qmark>\?)
    |(?P<percent>%)
""", re.VERBOSE)

_HAS_PLACEHOLDER = re.compile(r'\?')


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into literal, placeholder and plain-text tokens.

    >>> [t.type.name for t in tokenize_sql("a = ? and b = '?'")]
    ['SQL_TEXT', 'POSITIONAL_PH', 'SQL_TEXT', 'STRING_LITERAL']
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()
        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start]))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('qmark'):
            ttype = TokenType.POSITIONAL_PH
        else:
            ttype = TokenType.PERCENT

        tokens.append(Token(ttype, match.group(0)))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:]))

    return tokens


def has_placeholders(sql: str | None) -> bool:
    """Quick check for a ``?`` anywhere in the text."""
    if not sql:
        return False
    return bool(_HAS_PLACEHOLDER.search(sql))


def count_placeholders(sql: str) -> int:
    """Count ``?`` placeholders outside string literals.

    >>> count_placeholders("SELECT * FROM t WHERE a = ? AND b IN (?, ?) AND c = 'why?'")
    3
    """
    if not has_placeholders(sql):
        return 0
    return sum(1 for t in tokenize_sql(sql) if t.type == TokenType.POSITIONAL_PH)


def standardize_placeholders(sql: str, dialect: str = 'sqlite') -> str:
    """Convert placeholders for the dialect's DB-API parameter style.

    PostgreSQL (psycopg) uses ``%s``; literal percent signs are doubled so the
    driver does not read them as placeholders.

    >>> standardize_placeholders("SELECT * FROM t WHERE a = ? AND b LIKE 'x%'", 'postgresql')
    "SELECT * FROM t WHERE a = %s AND b LIKE 'x%%'"
    """
    if not sql or dialect != 'postgresql':
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            result.append('%s')
        elif token.type == TokenType.PERCENT:
            result.append('%%')
        elif token.type == TokenType.STRING_LITERAL:
            result.append(token.text.replace('%', '%%'))
        else:
            result.append(token.text)
    return ''.join(result)


def interpolate_params(sql: str | None, values: Iterable[Any]) -> str | None:
    """Substitute bound values into placeholders as quoted literals.

    Only for display: the result is never executed. Placeholders left over
    once the values run out are kept as ``?``. None is shown as NULL.

    >>> interpolate_params('SELECT * FROM t WHERE a = ? AND b = ?', [1, 'x'])
    "SELECT * FROM t WHERE a = '1' AND b = 'x'"
    """
    if not sql:
        return None

    remaining = iter(values)
    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            try:
                value = next(remaining)
            except StopIteration:
                result.append(token.text)
                continue
            result.append('NULL' if value is None else f"'{value}'")
        else:
            result.append(token.text)
    return ''.join(result)


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    Parameters
        identifier: Table or column name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect in {'postgresql', 'sqlite'}:
        return '"' + identifier.replace('"', '""') + '"'

    raise ValueError(f'Unknown dialect: {dialect}')
