"""
Aggregations: join descriptors derived from virtual columns.

A driver executes one foreign lookup per Aggregation: rows of `storage` whose
`foreign` column matches the `local` column of each result row, attached
under the `virtual` name. Descriptors are derived on every call, so columns
declared after a Mapper was built are picked up.
"""

import dataclasses

from entities.formats import Format
from entities.registry import REGISTRY, RegistryError


@dataclasses.dataclass(frozen=True)
class Aggregation:
    """One foreign lookup, expressed in external (alias-aware) column names."""
    local: str
    foreign: str
    virtual: str
    storage: str
    multiple: bool  # local column is an array: fan out one lookup per item


def get_aggregations(model, registry=None) -> list:
    """Derive the ordered list of Aggregations for model's virtual columns.

    Raises RegistryError when a virtual column points at an unknown local or
    foreign column, or at a foreign model without a storage name.
    """
    registry = registry if registry is not None else REGISTRY
    result = []
    for name, virtual in (registry.get_virtual_row(model) or {}).items():
        if virtual.local is None:
            local = registry.get_primary_column(model)
        else:
            local = registry.get_column(model, virtual.local)
        if local is None:
            raise RegistryError(
                f"{model.__name__}.{name}: local column "
                f"'{virtual.local or '<primary>'}' is not defined"
            )
        foreign = registry.get_column(virtual.model, virtual.foreign)
        if foreign is None:
            raise RegistryError(
                f"{model.__name__}.{name}: foreign column '{virtual.foreign}' "
                f"is not defined on {virtual.model.__name__}"
            )
        storage = registry.get_storage_name(virtual.model)
        if not storage:
            raise RegistryError(
                f"{model.__name__}.{name}: {virtual.model.__name__} has no "
                f"storage name"
            )
        result.append(Aggregation(
            local=local.external_name,
            foreign=foreign.external_name,
            virtual=name,
            storage=storage,
            multiple=Format.ARRAY in local.types,
        ))
    return result
