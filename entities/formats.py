"""
Format catalog: the closed set of column semantic tags.

Tags are only ever appended to this enumeration; external code matches on
them, so existing members are never renamed or removed.
"""

from enum import Enum


class Format(Enum):
    """Semantic tag recorded on a column by each format declaration."""
    ID = 0
    NULL = 1
    BINARY = 2
    BOOLEAN = 3
    INTEGER = 4
    DECIMAL = 5
    NUMBER = 6
    STRING = 7
    ENUMERATION = 8
    PATTERN = 9
    TIMESTAMP = 10
    DATE = 11
    ARRAY = 12
    MAP = 13
    OBJECT = 14

    @classmethod
    def is_nested(cls, fmt) -> bool:
        """True for formats whose column carries a nested model."""
        return fmt in (cls.ARRAY, cls.MAP, cls.OBJECT)
