"""
Outbound normalization: entity (or entity-shaped mapping) -> plain dict.

Only declared real columns are copied; hidden and write-only columns are
dropped unless unsafe is set, and absent values are skipped (never defaulted).
None items of lists and maps stay None. Columns whose model is a registered
entity are rebuilt recursively, dispatching on the declared format and
rejecting values whose runtime shape disagrees with it.
"""

from entities import validators
from entities.base import MISSING, get_value
from entities.formats import Format
from entities.registry import REGISTRY

_STRUCTURE = validators.Structure()


class SchemaViolationError(Exception):
    """Raised when a value's runtime shape disagrees with its declared format."""

    def __init__(self, column, storage, message):
        self.column = column
        self.storage = storage
        super().__init__(f"Column '{column}@{storage}' {message}")


def storage_label(registry, model) -> str:
    return registry.get_storage_name(model) or model.__name__


def nested_kind(registry, model, column, value):
    """Classify value for a column: "array", "map", "object", "null" or None.

    None means the column holds a plain value (no registered nested model).
    Raises SchemaViolationError when the declared formats do not allow the
    runtime shape of value.
    """
    formats = column.types
    if column.model is None or not any(Format.is_nested(f) for f in formats):
        return None
    if not registry.is_entity(column.model):
        return None
    if isinstance(value, (list, tuple)):
        if Format.ARRAY in formats:
            return "array"
        raise SchemaViolationError(
            column.name, storage_label(registry, model),
            "doesn't support array types.",
        )
    if _STRUCTURE(value):
        if Format.OBJECT in formats:
            return "object"
        if Format.MAP in formats:
            return "map"
        raise SchemaViolationError(
            column.name, storage_label(registry, model),
            "doesn't support object types.",
        )
    if value is None and Format.NULL in formats:
        return "null"
    declared = ", ".join(f.name for f in formats) or "nothing"
    raise SchemaViolationError(
        column.name, storage_label(registry, model),
        f"expects {declared} but got {type(value).__name__}.",
    )


def _plain(value):
    """Copy containers so output never aliases the source."""
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value


class Normalizer:
    """Builds normalized dicts from entities using one registry's metadata."""

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else REGISTRY

    def create(self, model, entity, alias=False, unsafe=False, unroll=False,
               joins=False) -> dict:
        """Normalize entity as an instance of model.

        alias:  emit external (alias) names instead of property names.
        unsafe: include hidden and write-only columns.
        unroll: flatten OBJECT columns into dotted keys ("address.city").
        joins:  also normalize virtual-column values present on entity.
        """
        return self._entry(model, entity, alias, unsafe, unroll, joins)

    def create_list(self, model, entities, alias=False, unsafe=False) -> list:
        return [
            None if entity is None
            else self._entry(model, entity, alias, unsafe, False, False)
            for entity in entities
        ]

    def create_map(self, model, entities, alias=False, unsafe=False) -> dict:
        return {
            key: None if entity is None
            else self._entry(model, entity, alias, unsafe, False, False)
            for key, entity in entities.items()
            if entity is not MISSING
        }

    def _entry(self, model, entity, alias, unsafe, unroll, joins,
               path=None, entry=None) -> dict:
        row = self.registry.get_real_row(model) or {}
        entry = {} if entry is None else entry
        for name, column in row.items():
            value = get_value(entity, name)
            if value is MISSING or ((column.hidden or column.write_only) and not unsafe):
                continue
            key = column.external_name if alias else name
            if unroll and path:
                key = f"{path}.{key}"
            kind = nested_kind(self.registry, model, column, value)
            if kind == "object" and unroll:
                self._entry(column.model, value, alias, unsafe, True, joins, key, entry)
            elif kind == "object":
                entry[key] = self._entry(column.model, value, alias, unsafe, False, joins)
            elif kind == "array":
                entry[key] = self.create_list(column.model, value, alias, unsafe)
            elif kind == "map":
                entry[key] = self.create_map(column.model, value, alias, unsafe)
            elif kind == "null":
                entry[key] = None
            else:
                entry[key] = _plain(value)
        if joins:
            self._joins(model, entity, alias, unsafe, path if unroll else None, entry)
        return entry

    def _joins(self, model, entity, alias, unsafe, path, entry):
        for name, virtual in (self.registry.get_virtual_row(model) or {}).items():
            value = get_value(entity, name)
            if value is MISSING:
                continue
            key = f"{path}.{name}" if path else name
            if isinstance(value, (list, tuple)):
                entry[key] = self.create_list(virtual.model, value, alias, unsafe)
            elif _STRUCTURE(value):
                entry[key] = self._entry(virtual.model, value, alias, unsafe, False, False)
            else:
                entry[key] = value
