"""Search conditions and their compilation to Exchange SQL WHERE clauses.

Conditions are immutable tuples tagged by ``kind``; ``ConditionCompiler``
dispatches on the tag. Values are emitted verbatim between single quotes,
embedded quotes are NOT escaped, so never build conditions from untrusted
input without doubling quotes first (``get_item`` does this for display names).
"""
from collections import namedtuple
from enum import Enum
from types import MappingProxyType

from davgate import errors
from davgate.fields import DEFAULT_FIELDS


class Operator(Enum):
    AND = 'AND'
    OR = 'OR'
    EQUAL = 'equal'
    GTE = 'gte'
    GT = 'gt'
    LT = 'lt'
    LIKE = 'like'
    IS_NULL = 'isnull'
    IS_TRUE = 'istrue'
    IS_FALSE = 'isfalse'


# IS_TRUE has no token on purpose, see ConditionCompiler.token()
OPERATOR_TOKENS = MappingProxyType({
    Operator.EQUAL: ' = ',
    Operator.GTE: ' >= ',
    Operator.GT: ' > ',
    Operator.LT: ' < ',
    Operator.LIKE: ' like ',
    Operator.IS_NULL: ' is null',
    Operator.IS_FALSE: ' is false',
})


class Attribute(namedtuple('Attribute', 'name operator value')):
    __slots__ = ()
    kind = 'attribute'

class Header(namedtuple('Header', 'name operator value')):
    __slots__ = ()
    kind = 'header'

class Mono(namedtuple('Mono', 'name operator')):
    __slots__ = ()
    kind = 'mono'

class Not(namedtuple('Not', 'condition')):
    __slots__ = ()
    kind = 'not'

class Multi(namedtuple('Multi', 'operator conditions')):
    __slots__ = ()
    kind = 'multi'


def and_(*conditions):
    return Multi(Operator.AND, tuple(conditions))

def or_(*conditions):
    return Multi(Operator.OR, tuple(conditions))

def not_(condition):
    if condition is None:
        return None
    return Not(condition)

def equals(name, value):
    return Attribute(name, Operator.EQUAL, value)

def header_equals(name, value):
    return Header(name, Operator.EQUAL, value)

def gte(name, value):
    return Attribute(name, Operator.GTE, value)

def gt(name, value):
    return Attribute(name, Operator.GT, value)

def lt(name, value):
    return Attribute(name, Operator.LT, value)

def like(name, value):
    return Attribute(name, Operator.LIKE, value)

def is_null(name):
    return Mono(name, Operator.IS_NULL)

def is_true(name):
    return Mono(name, Operator.IS_TRUE)

def is_false(name):
    return Mono(name, Operator.IS_FALSE)


class ConditionCompiler:
    def __init__(self, fields=DEFAULT_FIELDS, tokens=OPERATOR_TOKENS):
        self.fields = fields
        self.tokens = tokens

    def compile(self, condition):
        parts = []
        self.append(parts, condition)
        return ''.join(parts)

    def append(self, parts, condition):
        getattr(self, f'append_{condition.kind}')(parts, condition)

    def token(self, operator):
        try:
            return self.tokens[operator]
        except KeyError:
            # Exchange may accept "is true", it was never verified
            raise errors.UnsupportedOperatorError(f'No query token for operator {operator.value}')

    def append_attribute(self, parts, condition):
        self._append_comparison(parts, self.fields[condition.name].uri, condition)

    def append_header(self, parts, condition):
        self._append_comparison(parts, self.fields.header(condition.name), condition)

    def _append_comparison(self, parts, uri, condition):
        parts.append(f'"{uri}"')
        parts.append(self.token(condition.operator))
        if condition.operator is Operator.LIKE:
            parts.append(f"'%{condition.value}%'")
        else:
            parts.append(f"'{condition.value}'")

    def append_mono(self, parts, condition):
        parts.append(f'"{self.fields[condition.name].uri}"')
        parts.append(self.token(condition.operator))

    def append_not(self, parts, condition):
        parts.append('( Not ')
        self.append(parts, condition.condition)
        parts.append(')')

    def append_multi(self, parts, condition):
        first = True
        for child in condition.conditions:
            if child is None:
                continue
            if first:
                parts.append('(')
                first = False
            else:
                parts.append(f' {condition.operator.value} ')
            self.append(parts, child)
        if not first:
            parts.append(')')
