import pytest
from dbmanager.directives import Increment, Negate, Placeholder, RawExpr
from dbmanager.directives import as_directive, dec, func, inc, not_
from dbmanager.exceptions import InvalidValueDirective, QueryError


def test_helpers():
    assert inc() == Increment('+1')
    assert inc(5) == Increment('+5')
    assert dec(2) == Increment('-2')
    assert func('COALESCE(?, 0)', 3) == RawExpr('COALESCE(?, 0)', (3,))
    assert not_() == Negate(None)
    assert not_('flag') == Negate('flag')


@pytest.mark.parametrize('value', [1, 'x', None, [1, 2], b'raw'])
def test_plain_values_become_placeholders(value):
    assert as_directive(value) == Placeholder(value)


def test_directives_pass_through():
    directive = inc(3)
    assert as_directive(directive) is directive


@pytest.mark.parametrize(('legacy', 'expected'), [
    ({'[I]': '+1'}, Increment('+1')),
    ({'[I]': '-3'}, Increment('-3')),
    ({'[F]': 'NOW()'}, RawExpr('NOW()')),
    ({'[F]': ['NOW() - ?', [5]]}, RawExpr('NOW() - ?', (5,))),
    ({'[F]': ('UPPER(name)',)}, RawExpr('UPPER(name)')),
    ({'[N]': None}, Negate(None)),
    ({'[N]': 'other'}, Negate('other')),
])
def test_legacy_mapping_form(legacy, expected):
    assert as_directive(legacy) == expected


@pytest.mark.parametrize('bad', [
    {'[X]': 1},
    {'[I]': '+1', '[N]': None},
    {},
])
def test_unknown_directive(bad):
    with pytest.raises(InvalidValueDirective, match='Wrong operation'):
        as_directive(bad)


def test_invalid_function_directive():
    with pytest.raises(InvalidValueDirective):
        as_directive({'[F]': []})


def test_directive_error_is_a_query_error():
    assert issubclass(InvalidValueDirective, QueryError)
