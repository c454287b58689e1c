"""
Schema Registry: per-entity-type column metadata.

Every entity type owns one Storage record holding its real columns (stored in
the row) and virtual columns (joins resolved by a driver). Records accumulate
incrementally as declarations fire at class-definition time:

  A. Storage identity (storage name, primary column)
  B. Real columns (formats, validators, alias, required/hidden, constraints)
  C. Virtual columns (foreign column, foreign model, local column)

Readers never see internal records: every lookup returns a frozen snapshot,
with nested entity models resolved recursively into ColumnSchema.schema.
"""

import dataclasses
import logging
import threading
from types import MappingProxyType
from typing import Any, Optional

from entities import validators
from entities.formats import Format

logger = logging.getLogger(__name__)

# Placeholder row handed out when a type is revisited during nested resolution
_EMPTY_ROW = MappingProxyType({})


class RegistryError(Exception):
    """Raised when an entity or column definition is invalid."""


class ConflictError(RegistryError):
    """Raised when a name collides between the real and virtual namespaces."""

    def __init__(self, storage, name, existing):
        self.storage = storage
        self.name = name
        self.existing = existing
        super().__init__(
            f"A {existing} column with the name '{name}' already exists "
            f"on '{storage}'"
        )


def type_key(model) -> str:
    """Stable identifier of an entity type."""
    return f"{model.__module__}.{model.__qualname__}"


@dataclasses.dataclass
class Column:
    """Mutable real-column record owned by the registry."""

    name: str
    alias: Optional[str] = None
    types: list = dataclasses.field(default_factory=list)
    validators: list = dataclasses.field(default_factory=list)
    required: bool = False
    hidden: bool = False
    read_only: bool = False
    write_only: bool = False
    model: Optional[type] = None

    # ── Format constraints ────────────────────────────────────────
    unique: Optional[bool] = None
    minimum: Any = None
    maximum: Any = None
    pattern: Any = None
    values: Optional[tuple] = None

    @property
    def external_name(self) -> str:
        return self.alias or self.name


# Column fields a declaration may overwrite
_COLUMN_FACTS = frozenset(
    f.name for f in dataclasses.fields(Column)
    if f.name not in ("name", "types", "validators")
)


@dataclasses.dataclass(frozen=True)
class ColumnSchema:
    """Read-only snapshot of a Column.

    schema holds the resolved real row of model when model is a registered
    entity type. A type already being resolved higher up the same call path
    resolves to an empty row instead, so self-referencing and mutually
    referencing models terminate with a truncated (but valid) snapshot.

    schema is for introspection only. The normalizer and materializer look up
    the nested row per level through the registry, since a truncated snapshot
    would drop columns of self-referencing data below the first level.
    """

    name: str
    alias: Optional[str] = None
    types: tuple = ()
    validators: tuple = ()
    required: bool = False
    hidden: bool = False
    read_only: bool = False
    write_only: bool = False
    model: Optional[type] = None
    unique: Optional[bool] = None
    minimum: Any = None
    maximum: Any = None
    pattern: Any = None
    values: Optional[tuple] = None
    schema: Optional[MappingProxyType] = None

    @property
    def external_name(self) -> str:
        return self.alias or self.name


@dataclasses.dataclass(frozen=True)
class Virtual:
    """Virtual (join) column. local=None means the primary column."""

    name: str
    foreign: str
    model: type
    local: Optional[str] = None


@dataclasses.dataclass
class Storage:
    """All metadata for one entity type."""

    name: Optional[str] = None
    primary: Optional[str] = None
    real: dict = dataclasses.field(default_factory=dict)
    virtual: dict = dataclasses.field(default_factory=dict)
    lock: Any = dataclasses.field(
        default_factory=threading.RLock, repr=False, compare=False
    )


class SchemaRegistry:
    """
    Process-local store mapping entity types to their Storage.

    Mutations on one Storage are serialized by that Storage's lock; creating
    a Storage is serialized by the registry lock. Lookups on types that were
    never declared return None and never create anything.
    """

    def __init__(self):
        self._storages: dict[str, Storage] = {}
        self._types: dict[str, type] = {}
        self._lock = threading.Lock()

    # ── Storage records ───────────────────────────────────────────

    def _storage(self, model) -> Storage:
        key = type_key(model)
        with self._lock:
            storage = self._storages.get(key)
            if storage is None:
                storage = Storage()
                self._storages[key] = storage
                self._types[key] = model
                logger.debug("Created storage record for %s", key)
            return storage

    def _find(self, model) -> Optional[Storage]:
        return self._storages.get(type_key(model))

    @staticmethod
    def _label(model, storage) -> str:
        return storage.name or model.__name__

    # ── Entity mutations ──────────────────────────────────────────

    def register_entity(self, model, name: str) -> None:
        """Set the storage name of model. Repeated calls: last write wins."""
        storage = self._storage(model)
        with storage.lock:
            if storage.name is not None and storage.name != name:
                logger.warning(
                    "Renaming storage of %s from '%s' to '%s'",
                    type_key(model), storage.name, name,
                )
            storage.name = name
        logger.debug("Registered entity %s as '%s'", type_key(model), name)

    def set_primary(self, model, name: str) -> None:
        storage = self._storage(model)
        with storage.lock:
            storage.primary = name
        logger.debug("Primary column of %s is '%s'", type_key(model), name)

    # ── Column mutations ──────────────────────────────────────────

    def register_column(self, model, name: str) -> Column:
        """Return the real column name of model, creating it if needed.

        Raises ConflictError if name is already a virtual column.
        """
        storage = self._storage(model)
        with storage.lock:
            if name in storage.virtual:
                raise ConflictError(self._label(model, storage), name, "virtual")
            column = storage.real.get(name)
            if column is None:
                column = Column(name=name)
                storage.real[name] = column
                logger.debug("Registered column %s.%s", type_key(model), name)
            return column

    def register_virtual_column(self, model, name: str, foreign: str,
                                foreign_model, local: Optional[str] = None) -> Virtual:
        """Return the virtual column name of model, creating it on first call.

        Raises ConflictError if name is already a real column.
        """
        storage = self._storage(model)
        with storage.lock:
            if name in storage.real:
                raise ConflictError(self._label(model, storage), name, "real")
            virtual = storage.virtual.get(name)
            if virtual is None:
                virtual = Virtual(name=name, foreign=foreign,
                                  model=foreign_model, local=local)
                storage.virtual[name] = virtual
                logger.debug(
                    "Registered virtual column %s.%s -> %s.%s",
                    type_key(model), name, type_key(foreign_model), foreign,
                )
            return virtual

    def update_column(self, model, name: str, /, **facts) -> Column:
        """Overwrite scalar facts (alias, required, model, minimum, ...) of a column."""
        unknown = set(facts) - _COLUMN_FACTS
        if unknown:
            raise RegistryError(
                f"Column '{name}': unknown column facts {sorted(unknown)}"
            )
        column = self.register_column(model, name)
        storage = self._storage(model)
        with storage.lock:
            for fact, value in facts.items():
                setattr(column, fact, value)
        return column

    def append_format(self, model, name: str, fmt: Format, validator) -> Column:
        """Append a format tag and its validator to a column.

        Duplicate tags are kept: the tag list records declaration order.
        """
        column = self.register_column(model, name)
        storage = self._storage(model)
        with storage.lock:
            column.types.append(fmt)
            column.validators.append(validator)
        return column

    # ── Builder API ───────────────────────────────────────────────

    def define_entity(self, model, name: str) -> None:
        """Explicit equivalent of the Schema.entity() class decorator."""
        self.register_entity(model, name)

    def define_column(self, model, name: str, /, formats=(), primary: bool = False,
                      **facts) -> Column:
        """Declare a real column in one call.

        formats: iterable of Format tags or (Format, validator) pairs, appended
        in order. A bare tag gets an accept-anything validator.
        """
        column = self.update_column(model, name, **facts)
        for entry in formats:
            if isinstance(entry, Format):
                fmt, validator = entry, validators.Any()
            else:
                fmt, validator = entry
            self.append_format(model, name, fmt, validator)
        if primary:
            self.set_primary(model, name)
        return column

    # ── Snapshots ─────────────────────────────────────────────────

    def get_real_row(self, model, _resolving: frozenset = frozenset()):
        """Return {name: ColumnSchema} for model, or None if unknown.

        Nested models are resolved recursively; a type already on the
        current resolution path yields an empty row.
        """
        key = type_key(model)
        if key in _resolving:
            return _EMPTY_ROW
        storage = self._find(model)
        if storage is None:
            return None
        with storage.lock:
            copies = [self._copy(column) for column in storage.real.values()]
        resolving = _resolving | {key}
        row = {c["name"]: self._resolve(c, resolving) for c in copies}
        return MappingProxyType(row)

    def get_virtual_row(self, model):
        """Return {name: Virtual} for model, or None if unknown."""
        storage = self._find(model)
        if storage is None:
            return None
        with storage.lock:
            return MappingProxyType(dict(storage.virtual))

    def get_column(self, model, name: Optional[str]) -> Optional[ColumnSchema]:
        storage = self._find(model)
        if storage is None or name is None:
            return None
        with storage.lock:
            column = storage.real.get(name)
            if column is None:
                return None
            copy = self._copy(column)
        return self._resolve(copy, frozenset({type_key(model)}))

    def get_primary_column(self, model) -> Optional[ColumnSchema]:
        storage = self._find(model)
        if storage is None:
            return None
        return self.get_column(model, storage.primary)

    def get_storage_name(self, model) -> Optional[str]:
        storage = self._find(model)
        return storage.name if storage is not None else None

    @staticmethod
    def _copy(column: Column) -> dict:
        data = {f.name: getattr(column, f.name) for f in dataclasses.fields(column)}
        data["types"] = tuple(column.types)
        data["validators"] = tuple(column.validators)
        if column.values is not None:
            data["values"] = tuple(column.values)
        return data

    def _resolve(self, data: dict, resolving: frozenset) -> ColumnSchema:
        model = data["model"]
        schema = None
        if model is not None and self.is_entity(model):
            schema = self.get_real_row(model, resolving)
        return ColumnSchema(schema=schema, **data)

    # ── Introspection / lifetime ──────────────────────────────────

    def is_entity(self, model) -> bool:
        """True if any declaration has touched model."""
        return isinstance(model, type) and type_key(model) in self._storages

    def entities(self) -> list:
        """Return all types with a storage record."""
        with self._lock:
            return list(self._types.values())

    def evict(self, model) -> bool:
        """Drop the storage record of model. Returns False if there was none."""
        key = type_key(model)
        with self._lock:
            self._types.pop(key, None)
            removed = self._storages.pop(key, None) is not None
        if removed:
            logger.debug("Evicted storage record for %s", key)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._storages.clear()
            self._types.clear()


# Process-wide registry used by the default Schema and Mapper instances
REGISTRY = SchemaRegistry()
