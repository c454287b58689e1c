"""
Entity base class and the Field descriptor.

Declare an entity by combining Schema declarations on Field descriptors:

    @SCHEMA.entity("users")
    class User(Entity):
        id = Field(SCHEMA.id(), SCHEMA.primary())
        name = Field(SCHEMA.string(), SCHEMA.required())
        email = Field(SCHEMA.string(), SCHEMA.alias("mail"), SCHEMA.hidden())

Each declaration fires from Field.__set_name__, i.e. at class-definition time
and in the order written. Values live in the instance __dict__, so an unset
column is distinguishable from a column explicitly set to None.
"""

from collections.abc import Mapping

from entities import validators
from entities.registry import type_key


class _Missing:
    """Marker for "no value present"; never stored and never emitted."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


class ColumnValidationError(ValueError):
    """Raised when a value assigned to a Field is rejected by every validator."""

    def __init__(self, owner, name, value, checks):
        self.owner = owner
        self.name = name
        self.value = value
        super().__init__(
            f"{owner.__name__}.{name}: value {value!r} does not match "
            f"any of {list(checks)!r}"
        )


def get_value(source, name):
    """Read name from a mapping or an entity instance; MISSING when absent."""
    if isinstance(source, Mapping):
        return source.get(name, MISSING)
    if hasattr(source, "__dict__"):
        return vars(source).get(name, MISSING)
    return getattr(source, name, MISSING)


class Field:
    """Column descriptor applying schema declarations at class-definition time."""

    def __init__(self, *declarations):
        self.declarations = declarations
        self.name = None
        self.owner = None
        self.column = None

    def __set_name__(self, owner, name):
        self.owner = owner
        self.name = name
        for declare in self.declarations:
            touched = declare(owner, name)
            if touched is not None:
                self.column = touched

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.__dict__.get(self.name)

    def __set__(self, obj, value):
        if value is MISSING:
            obj.__dict__.pop(self.name, None)
            return
        checks = getattr(self.column, "validators", ())
        if checks and not validators.Group(*checks)(value):
            raise ColumnValidationError(self.owner, self.name, value, checks)
        obj.__dict__[self.name] = value

    def __delete__(self, obj):
        obj.__dict__.pop(self.name, None)


class Entity:
    """
    Base class for mapped entities.

    Keyword arguments are assigned through the class descriptors, so declared
    columns are validated on construction:

        user = User(id=1, name="A")
    """

    def __init__(self, **values):
        for name, value in values.items():
            setattr(self, name, value)

    @classmethod
    def type_name(cls) -> str:
        """The stable identifier the registry keys this type by."""
        return type_key(cls)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{type(self).__name__}({fields})"
