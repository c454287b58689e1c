"""
In-process driver keeping rows in dicts, one table per storage name.

Useful for tests and prototyping: filters match by equality, sorting is
stable per key, and aggregations are joined against the other tables.
Rows are deep-copied on the way in and out.
"""

import copy
import logging
import threading
import uuid

from entities.driver import Driver, DriverError, attach_aggregations, to_document
from entities.filters import Order

logger = logging.getLogger(__name__)


def _sort_key(column):
    def key(row):
        value = row.get(column)
        return (value is None, value)
    return key


class MemoryDriver(Driver):
    """Dict-backed Driver. Ids are the primary value, or a generated uuid hex."""

    def __init__(self, registry=None):
        super().__init__(registry)
        self._tables: dict[str, dict] = {}
        self._lock = threading.RLock()

    def _table(self, model) -> dict:
        return self._tables.setdefault(self.storage_name(model), {})

    def _select(self, table, filters) -> list:
        return [
            (key, row) for key, row in table.items()
            if all(f.matches(row) for f in filters if f is not None)
        ]

    def _lookup(self, storage, column, values):
        table = self._tables.get(storage, {})
        return [copy.deepcopy(row) for row in table.values()
                if row.get(column) in values]

    # ── Contract ──────────────────────────────────────────────────

    def insert(self, model, rows) -> list:
        primary = self.primary_name(model)
        ids, staged = [], {}
        with self._lock:
            table = self._table(model)
            for row in rows:
                data = copy.deepcopy(to_document(row))
                id = data.get(primary) if primary else None
                if id is None:
                    id = uuid.uuid4().hex
                    if primary:
                        data[primary] = id
                if str(id) in table or str(id) in staged:
                    raise DriverError(
                        f"Duplicate id {id!r} in '{self.storage_name(model)}'"
                    )
                staged[str(id)] = data
                ids.append(id)
            # all-or-nothing: nothing is stored when any row is rejected
            table.update(staged)
        logger.debug("Inserted %d rows into '%s'", len(ids), self.storage_name(model))
        return ids

    def find(self, model, aggregations, filters) -> list:
        filters = [f for f in filters if f is not None]
        with self._lock:
            selected = self._select(self._table(model), filters)
            rows = [copy.deepcopy(row) for _, row in selected]
            for f in filters:
                for column, order in reversed(list(f.sort.items())):
                    rows.sort(key=_sort_key(column), reverse=order == Order.DESCENDING)
            limits = [f.limit for f in filters if f.limit is not None]
            if limits:
                limit = limits[-1]
                end = None if limit.count is None else limit.start + limit.count
                rows = rows[limit.start:end]
            return attach_aggregations(rows, aggregations, self._lookup)

    def find_by_id(self, model, aggregations, id):
        with self._lock:
            row = self._table(model).get(str(id))
            if row is None:
                return None
            return attach_aggregations([copy.deepcopy(row)], aggregations, self._lookup)[0]

    def update(self, model, patch, filter) -> int:
        data = to_document(patch)
        with self._lock:
            selected = self._select(self._table(model), [filter])
            for _, row in selected:
                row.update(copy.deepcopy(data))
        return len(selected)

    def update_by_id(self, model, patch, id) -> bool:
        with self._lock:
            row = self._table(model).get(str(id))
            if row is None:
                return False
            row.update(copy.deepcopy(to_document(patch)))
            return True

    def delete(self, model, filter) -> int:
        with self._lock:
            table = self._table(model)
            selected = self._select(table, [filter])
            for key, _ in selected:
                del table[key]
        return len(selected)

    def delete_by_id(self, model, id) -> bool:
        with self._lock:
            return self._table(model).pop(str(id), None) is not None
