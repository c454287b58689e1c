"""
Filter statements handed through the mapper to a driver.

The mapper never inspects a Filter; drivers interpret it. Column names are
external (alias) names, as stored.

    Filter(match={"status": "open"}, sort={"created": Order.DESCENDING},
           limit=Limit(0, 10))

match is either one dict (all pairs must be equal) or a list of such dicts,
any of which may match.
"""

import dataclasses
from enum import Enum
from typing import Optional, Union

from entities.base import MISSING


class Order(str, Enum):
    ASCENDING = "ASC"
    DESCENDING = "DESC"


@dataclasses.dataclass(frozen=True)
class Limit:
    start: int = 0
    count: Optional[int] = None


@dataclasses.dataclass
class Filter:
    match: Union[dict, list] = dataclasses.field(default_factory=dict)
    sort: dict = dataclasses.field(default_factory=dict)
    limit: Optional[Limit] = None

    def alternatives(self) -> list:
        """The match dicts of this filter, OR-combined."""
        if isinstance(self.match, dict):
            return [self.match] if self.match else []
        return [m for m in self.match if m]

    def matches(self, row) -> bool:
        alternatives = self.alternatives()
        if not alternatives:
            return True
        return any(
            all(row.get(key, MISSING) == value for key, value in match.items())
            for match in alternatives
        )
