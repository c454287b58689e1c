"""
Schema declarations: the write API entity classes use to describe columns.

Every method returns a declaration: a callable (owner, name) that performs
exactly one kind of registry mutation and returns the record it touched.
Declarations are applied by Field.__set_name__ (see entities.base), or can be
called directly for classes that do not use Field:

    SCHEMA.integer(0)(Order, "quantity")

Format declarations accumulate: NULL plus INTEGER on one column means
"nullable integer", and the column accepts a value if any validator does.
"""

from collections.abc import Mapping

from entities import validators
from entities.formats import Format
from entities.registry import REGISTRY, RegistryError


class Schema:
    """Declaration catalog bound to one SchemaRegistry."""

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else REGISTRY

    # ── Entity / column flags ─────────────────────────────────────

    def entity(self, name: str):
        """Class decorator naming the storage of the decorated entity."""
        def decorate(cls):
            self.registry.register_entity(cls, name)
            return cls
        return decorate

    def alias(self, name: str):
        """External name used for the column in storage/output rows."""
        def declare(owner, prop):
            return self.registry.update_column(owner, prop, alias=name)
        return declare

    def required(self):
        def declare(owner, prop):
            return self.registry.update_column(owner, prop, required=True)
        return declare

    def hidden(self):
        """Exclude the column from normalized output unless unsafe is requested."""
        def declare(owner, prop):
            return self.registry.update_column(owner, prop, hidden=True)
        return declare

    def read_only(self):
        """Column is read back from storage but never written by the mapper."""
        def declare(owner, prop):
            return self._access(owner, prop, "read_only", "write_only")
        return declare

    def write_only(self):
        """Column is written to storage but never read back or normalized."""
        def declare(owner, prop):
            return self._access(owner, prop, "write_only", "read_only")
        return declare

    def _access(self, owner, prop, flag, opposite):
        column = self.registry.get_column(owner, prop)
        if column is not None and getattr(column, opposite):
            raise RegistryError(
                f"Column '{prop}' of {owner.__name__} is already "
                f"{opposite.replace('_', '-')}"
            )
        return self.registry.update_column(owner, prop, **{flag: True})

    def primary(self):
        def declare(owner, prop):
            self.registry.set_primary(owner, prop)
        return declare

    def join(self, foreign: str, model, local=None):
        """Virtual column filled with the model rows whose foreign column
        matches the local column (the primary column when local is None)."""
        def declare(owner, prop):
            return self.registry.register_virtual_column(
                owner, prop, foreign, model, local
            )
        return declare

    # ── Formats ───────────────────────────────────────────────────

    def _format(self, fmt: Format, validator, **facts):
        def declare(owner, prop):
            if facts:
                self.registry.update_column(owner, prop, **facts)
            return self.registry.append_format(owner, prop, fmt, validator)
        return declare

    def id(self):
        return self._format(Format.ID, validators.Any())

    def null(self):
        return self._format(Format.NULL, validators.Null())

    def binary(self):
        return self._format(Format.BINARY, validators.InstanceOf(bytes, bytearray))

    def boolean(self):
        return self._format(Format.BOOLEAN, validators.Boolean())

    def integer(self, min=None, max=None):
        return self._format(Format.INTEGER, validators.Integer(min, max),
                            minimum=min, maximum=max)

    def decimal(self, min=None, max=None):
        return self._format(Format.DECIMAL, validators.Decimal(min, max),
                            minimum=min, maximum=max)

    def number(self, min=None, max=None):
        return self._format(Format.NUMBER, validators.Number(min, max),
                            minimum=min, maximum=max)

    def string(self, min=None, max=None):
        """String column; min/max bound its length."""
        return self._format(Format.STRING, validators.String(min, max),
                            minimum=min, maximum=max)

    def enumeration(self, *values):
        return self._format(Format.ENUMERATION, validators.Enumeration(*values),
                            values=tuple(values))

    def pattern(self, pattern, alias=None):
        return self._format(Format.PATTERN, validators.Pattern(pattern, alias),
                            pattern=pattern)

    def timestamp(self, min=None, max=None):
        return self._format(Format.TIMESTAMP, validators.Timestamp(min, max))

    def date(self, min=None, max=None):
        return self._format(Format.DATE, validators.Timestamp(min, max))

    def array(self, model, unique=None, min=None, max=None):
        """List column of model items; min/max bound the item count."""
        return self._format(Format.ARRAY, validators.InstanceOf(list, tuple),
                            model=model, unique=unique, minimum=min, maximum=max)

    def map(self, model):
        """Dict column mapping arbitrary keys to model items."""
        return self._format(Format.MAP, validators.InstanceOf(Mapping), model=model)

    def object(self, model):
        return self._format(Format.OBJECT, validators.Structure(), model=model)


# Declarations against the process-wide registry
SCHEMA = Schema()
