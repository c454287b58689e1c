"""
Validator primitives: opaque value predicates attached to columns.

Each format declaration appends one of these to its column. A column accepts
a value when ANY of its validators accepts it (see Group).
"""

import re
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal as _Decimal
from numbers import Number as _Number


class Validator:
    """Base predicate. Subclasses implement __call__(value) -> bool."""

    def __call__(self, value) -> bool:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class _Bounded(Validator):
    """Shared min/max handling for numeric, length and date bounds."""

    def __init__(self, min=None, max=None):
        self.minimum = min
        self.maximum = max

    def _within(self, measure) -> bool:
        if self.minimum is not None and measure < self.minimum:
            return False
        if self.maximum is not None and measure > self.maximum:
            return False
        return True

    def __repr__(self):
        return f"{type(self).__name__}(min={self.minimum!r}, max={self.maximum!r})"


class Any(Validator):
    def __call__(self, value) -> bool:
        return True


class Null(Validator):
    def __call__(self, value) -> bool:
        return value is None


class Boolean(Validator):
    def __call__(self, value) -> bool:
        return isinstance(value, bool)


def _is_number(value) -> bool:
    # bool is an int subclass but never a numeric column value
    return isinstance(value, _Number) and not isinstance(value, bool)


class Integer(_Bounded):
    def __call__(self, value) -> bool:
        return isinstance(value, int) and not isinstance(value, bool) and self._within(value)


class Decimal(_Bounded):
    def __call__(self, value) -> bool:
        return isinstance(value, (float, _Decimal, int)) and _is_number(value) and self._within(value)


class Number(_Bounded):
    def __call__(self, value) -> bool:
        return _is_number(value) and self._within(value)


class String(_Bounded):
    """String with optional length bounds."""

    def __call__(self, value) -> bool:
        return isinstance(value, str) and self._within(len(value))


class Enumeration(Validator):
    def __init__(self, *values):
        self.values = tuple(values)

    def __call__(self, value) -> bool:
        return value in self.values

    def __repr__(self):
        return f"Enumeration{self.values!r}"


class Pattern(Validator):
    """String matching a regular expression. *alias* names the pattern in messages."""

    def __init__(self, pattern, alias=None):
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.alias = alias

    def __call__(self, value) -> bool:
        return isinstance(value, str) and self.pattern.search(value) is not None

    def __repr__(self):
        return f"Pattern({self.alias or self.pattern.pattern!r})"


class Timestamp(_Bounded):
    def __call__(self, value) -> bool:
        return isinstance(value, (datetime, date)) and self._within(value)


class InstanceOf(Validator):
    def __init__(self, *types):
        self.types = types

    def __call__(self, value) -> bool:
        return isinstance(value, self.types)

    def __repr__(self):
        names = ", ".join(t.__name__ for t in self.types)
        return f"InstanceOf({names})"


class Structure(Validator):
    """A mapping or a plain object carrying attributes (an entity instance)."""

    def __call__(self, value) -> bool:
        if isinstance(value, Mapping):
            return True
        if isinstance(value, (str, bytes, list, tuple)) or _is_number(value):
            return False
        return hasattr(value, "__dict__")


class Group(Validator):
    """OR-combination: accepts a value when any member accepts it."""

    def __init__(self, *validators):
        self.validators = tuple(validators)

    def __call__(self, value) -> bool:
        return any(v(value) for v in self.validators)

    def __repr__(self):
        return " | ".join(repr(v) for v in self.validators) or "Group()"
