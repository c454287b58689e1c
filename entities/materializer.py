"""
Inbound materialization: raw row -> typed entity instance.

Two directions share one walk over the real row of the model:

  input=True   entity/logical names -> external (alias) names, building the
               row handed to a driver for insert/update
  input=False  external (alias) names -> logical names, building an entity
               from a row a driver returned

strict=True demands every required column (inserts, reads); strict=False is
patch semantics (updates) and never complains about missing columns.
Read-only columns are skipped on input, write-only columns on output, and
None items of lists and maps stay None.
"""

from entities.base import MISSING, get_value
from entities.normalizer import nested_kind, storage_label
from entities.registry import REGISTRY


class MissingRequiredColumnError(Exception):
    """Raised in strict mode when a required column has no value."""

    def __init__(self, column, storage):
        self.column = column
        self.storage = storage
        super().__init__(
            f"Required column '{column}' for entity '{storage}' was not supplied."
        )


class Materializer:
    """Builds entity instances from raw data using one registry's metadata."""

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else REGISTRY

    def create(self, model, data, input: bool, strict: bool):
        """Return a new model() populated from data.

        Raises MissingRequiredColumnError (strict only) on the first required
        column without a value.
        """
        entity = model()
        row = self.registry.get_real_row(model) or {}
        for name, column in row.items():
            # read-only columns are never written, write-only never read back
            if (column.read_only if input else column.write_only):
                continue
            source = name if input else column.external_name
            target = column.external_name if input else name
            value = get_value(data, source)
            if value is not MISSING:
                setattr(entity, target, self._value(model, column, value, input, strict))
            elif strict and column.required:
                raise MissingRequiredColumnError(name, storage_label(self.registry, model))
        return entity

    def create_list(self, model, values, input: bool, strict: bool) -> list:
        return [
            None if value is None else self.create(model, value, input, strict)
            for value in values
        ]

    def create_map(self, model, values, input: bool, strict: bool) -> dict:
        return {
            key: None if value is None else self.create(model, value, input, strict)
            for key, value in values.items()
        }

    def _value(self, model, column, value, input, strict):
        kind = nested_kind(self.registry, model, column, value)
        if kind == "array":
            return self.create_list(column.model, value, input, strict)
        if kind == "map":
            return self.create_map(column.model, value, input, strict)
        if kind == "object":
            return self.create(column.model, value, input, strict)
        if kind == "null":
            return None
        return value

    def assign_virtual(self, model, entity, data):
        """Copy join results (virtual columns) from data onto entity verbatim."""
        for name in self.registry.get_virtual_row(model) or {}:
            value = get_value(data, name)
            if value is not MISSING:
                setattr(entity, name, value)
        return entity
