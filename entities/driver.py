"""
Driver ABC: the storage contract the Mapper talks to.

Concrete drivers (in-memory, PostgreSQL JSONB) live in separate modules.
Rows crossing this boundary use external (alias) column names. Filters and
aggregations are passed through from the mapper untouched.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

from entities import validators
from entities.registry import REGISTRY

_STRUCTURE = validators.Structure()


class DriverError(Exception):
    """Raised when a driver cannot serve a request (e.g. unnamed storage)."""


def to_document(value):
    """Convert materialized entities (and containers of them) to plain data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {key: to_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document(item) for item in value]
    if _STRUCTURE(value):
        return {key: to_document(item) for key, item in vars(value).items()}
    return value


def _hashable(value):
    try:
        hash(value)
    except TypeError:
        return False
    return True


def attach_aggregations(rows, aggregations, lookup):
    """Attach join results to rows in place.

    lookup(storage, column, values) must return the rows of storage whose
    column equals one of values. A multiple aggregation attaches a list (one
    entry per matched item); a single one attaches the first match, or
    nothing when there is none.
    """
    for aggregation in aggregations:
        keys = []
        for row in rows:
            local = row.get(aggregation.local)
            items = (local or []) if aggregation.multiple else [local]
            for key in items:
                if key is not None and _hashable(key) and key not in keys:
                    keys.append(key)
        index = {}
        if keys:
            for foreign in lookup(aggregation.storage, aggregation.foreign, keys):
                value = foreign.get(aggregation.foreign)
                if _hashable(value):
                    index.setdefault(value, []).append(foreign)
        for row in rows:
            local = row.get(aggregation.local)
            if aggregation.multiple:
                row[aggregation.virtual] = [
                    match for item in (local or []) if _hashable(item)
                    for match in index.get(item, [])
                ]
            elif _hashable(local) and index.get(local):
                row[aggregation.virtual] = index[local][0]
    return rows


class Driver(ABC):
    """Storage backend for Mapper.

    Implementations must override every abstract method. Each driver resolves
    storage names and primary columns through its registry.
    """

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else REGISTRY

    # ── Shared helpers ────────────────────────────────────────────

    def storage_name(self, model) -> str:
        name = self.registry.get_storage_name(model)
        if not name:
            raise DriverError(f"{model.__name__} has no storage name")
        return name

    def primary_name(self, model) -> Optional[str]:
        column = self.registry.get_primary_column(model)
        return column.external_name if column is not None else None

    # ── Contract ──────────────────────────────────────────────────

    @abstractmethod
    def insert(self, model, rows) -> list:
        """Store rows; return the id of each, in order.

        A batch is stored whole or not at all; a repeated id fails it.
        """

    @abstractmethod
    def find(self, model, aggregations, filters) -> list:
        """Return raw rows matching every filter, with aggregations attached."""

    @abstractmethod
    def find_by_id(self, model, aggregations, id: Any) -> Optional[dict]:
        """Return the raw row with the given id, or None."""

    @abstractmethod
    def update(self, model, patch, filter) -> int:
        """Merge patch into every matching row; return the number updated."""

    @abstractmethod
    def update_by_id(self, model, patch, id: Any) -> bool:
        """Merge patch into the row with the given id."""

    @abstractmethod
    def delete(self, model, filter) -> int:
        """Delete every matching row; return the number deleted."""

    @abstractmethod
    def delete_by_id(self, model, id: Any) -> bool:
        """Delete the row with the given id."""
