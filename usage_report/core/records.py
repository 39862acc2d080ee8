"""
Usage record model and measurement dispatch.

Defines the immutable record produced by the CSV source and the two
enumerations used to pick a grouping key and a usage field.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class UsageRecord:
    """One line of a usage-billing export.

    Records are never mutated after parsing. Only one of ``time_usage`` or
    ``capacity_usage`` is normally populated, depending on the category the
    file was requested for; both may be absent.
    """
    actor_name: str
    resource_name: str
    cost: float
    time_usage: Optional[float] = None
    capacity_usage: Optional[float] = None

    @property
    def cost_amount(self) -> float:
        """Cost as a float, whatever numeric type the record was built with."""
        return float(self.cost)


class MeasurementKind(Enum):
    """Field that carries the usage amount for a category."""
    TIME = "time"
    CAPACITY = "capacity"

    def value_of(self, record: UsageRecord) -> Optional[float]:
        """Return the usage value this kind reads from ``record``."""
        if self is MeasurementKind.TIME:
            return record.time_usage
        return record.capacity_usage

    def amount_of(self, record: UsageRecord) -> float:
        """Usage value with a missing field counted as zero."""
        value = self.value_of(record)
        return float(value) if value is not None else 0.0


class Dimension(Enum):
    """Grouping dimension for aggregation."""
    ACTOR = "user"
    RESOURCE = "repository"

    def key_of(self, record: UsageRecord) -> str:
        if self is Dimension.ACTOR:
            return record.actor_name
        return record.resource_name
