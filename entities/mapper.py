"""
Mapper: generic data mapper between a Driver and one entity type.

Writes materialize entities in input direction (logical -> external names):
inserts demand every required column, updates are patches and do not.
Reads materialize driver rows in output direction and copy join results
(virtual columns) onto the entities. Aggregations are derived on every call.
"""

import logging

from entities.aggregation import get_aggregations
from entities.materializer import Materializer
from entities.normalizer import Normalizer
from entities.registry import REGISTRY

logger = logging.getLogger(__name__)


class UnregisteredEntityError(Exception):
    """Raised when a Mapper is built for a type without a storage name."""

    def __init__(self, model):
        self.model = model
        super().__init__(
            f"There is no storage name for {model.__name__}, "
            f"make sure your entity model is valid."
        )


class Mapper:
    """
    CRUD over one entity type.

        users = Mapper(MemoryDriver(), User)
        user_id = users.insert(User(name="A"))
        user = users.find_by_id(user_id)
    """

    def __init__(self, driver, model, registry=None):
        self.registry = registry if registry is not None else REGISTRY
        if not self.registry.get_storage_name(model):
            raise UnregisteredEntityError(model)
        self.driver = driver
        self.model = model
        self.normalizer = Normalizer(self.registry)
        self.materializer = Materializer(self.registry)

    @property
    def storage(self) -> str:
        return self.registry.get_storage_name(self.model)

    def get_aggregations(self) -> list:
        return get_aggregations(self.model, self.registry)

    def _read(self, row):
        entity = self.materializer.create(self.model, row, input=False, strict=True)
        return self.materializer.assign_virtual(self.model, entity, row)

    # ── Writes ────────────────────────────────────────────────────

    def insert_many(self, *entities) -> list:
        """Insert entities; returns their ids in order."""
        rows = [
            self.materializer.create(self.model, entity, input=True, strict=True)
            for entity in entities
        ]
        logger.debug("Inserting %d rows into '%s'", len(rows), self.storage)
        return self.driver.insert(self.model, rows)

    def insert(self, entity):
        return self.insert_many(entity)[0]

    def update(self, filter, entity) -> int:
        """Apply entity as a patch to every row matching filter."""
        patch = self.materializer.create(self.model, entity, input=True, strict=False)
        count = self.driver.update(self.model, patch, filter)
        logger.debug("Updated %d rows in '%s'", count, self.storage)
        return count

    def update_by_id(self, id, entity) -> bool:
        patch = self.materializer.create(self.model, entity, input=True, strict=False)
        return self.driver.update_by_id(self.model, patch, id)

    def delete(self, filter) -> int:
        count = self.driver.delete(self.model, filter)
        logger.debug("Deleted %d rows from '%s'", count, self.storage)
        return count

    def delete_by_id(self, id) -> bool:
        return self.driver.delete_by_id(self.model, id)

    # ── Reads ─────────────────────────────────────────────────────

    def find(self, *filters) -> list:
        rows = self.driver.find(self.model, self.get_aggregations(), list(filters))
        return [self._read(row) for row in rows]

    def find_by_id(self, id):
        """Return the entity with the given id, or None."""
        row = self.driver.find_by_id(self.model, self.get_aggregations(), id)
        return self._read(row) if row is not None else None

    # ── Normalization ─────────────────────────────────────────────

    def normalize(self, entity, **options) -> dict:
        """Normalize one entity; options as for Normalizer.create()."""
        return self.normalizer.create(self.model, entity, **options)

    def normalize_all(self, *entities, **options) -> list:
        return [self.normalize(entity, **options) for entity in entities]
