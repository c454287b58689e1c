"""
Entity mapper: column metadata registry plus a generic data mapper.
"""

from entities.formats import Format
from entities.registry import (
    REGISTRY, ColumnSchema, ConflictError, RegistryError, SchemaRegistry,
)
from entities.base import MISSING, ColumnValidationError, Entity, Field
from entities.schema import SCHEMA, Schema
from entities.normalizer import Normalizer, SchemaViolationError
from entities.materializer import Materializer, MissingRequiredColumnError
from entities.aggregation import Aggregation, get_aggregations
from entities.filters import Filter, Limit, Order
from entities.driver import Driver, DriverError
from entities.memory import MemoryDriver
from entities.mapper import Mapper, UnregisteredEntityError
