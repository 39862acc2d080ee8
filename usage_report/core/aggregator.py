"""
Cost and usage aggregation.

Groups usage records by user or repository and computes cost shares and
free quota consumption for the presentation layer.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .records import Dimension, UsageRecord
from usage_report.config.categories import CategoryConfig


@dataclass(frozen=True)
class AggregatedEntry:
    """Totals for one user or repository."""
    group_name: str
    total_cost: float
    percentage_of_total: float
    total_usage: Optional[float] = None
    usage_unit: Optional[str] = None
    # Not clamped: values above 100 indicate overage
    free_quota_usage_percent: Optional[float] = None


def _require_records(records) -> None:
    if records is None:
        raise ValueError("records cannot be None")


def _quota_percent(usage: float, config: CategoryConfig) -> Optional[float]:
    quota = config.free_quota
    if quota is None or quota.limit <= 0:
        return None
    return (usage / float(quota.limit)) * 100


def aggregate_by_dimension(
    records: Iterable[UsageRecord],
    dimension: Dimension,
    config: Optional[CategoryConfig] = None,
) -> List[AggregatedEntry]:
    """Aggregate records per user or per repository.

    Groups are matched by exact, case-sensitive name. When ``config`` is
    given, the usage field it names is summed as well (missing values count
    as zero) and the free quota ratio is computed for each group.

    Args:
        records: Validated usage records
        dimension: Grouping key (actor or resource)
        config: Optional category configuration for usage and quota figures

    Returns:
        Entries sorted by total cost descending; equal costs keep the order
        in which their group was first seen
    """
    _require_records(records)

    costs: Dict[str, float] = {}
    usages: Dict[str, float] = {}
    measurement = config.measurement_field if config is not None else None

    for record in records:
        key = dimension.key_of(record)
        costs[key] = costs.get(key, 0.0) + record.cost_amount
        if measurement is not None:
            usages[key] = usages.get(key, 0.0) + measurement.amount_of(record)

    overall = sum(costs.values())

    entries = []
    for name, cost in costs.items():
        percentage = (cost / overall) * 100 if overall > 0 else 0.0
        if config is None:
            entries.append(AggregatedEntry(
                group_name=name,
                total_cost=cost,
                percentage_of_total=percentage,
            ))
            continue
        usage = usages[name]
        entries.append(AggregatedEntry(
            group_name=name,
            total_cost=cost,
            percentage_of_total=percentage,
            total_usage=usage,
            usage_unit=config.unit,
            free_quota_usage_percent=_quota_percent(usage, config),
        ))

    # sorted() is stable, including with reverse=True
    return sorted(entries, key=lambda entry: entry.total_cost, reverse=True)


def filter_by_group_name(
    records: Iterable[UsageRecord],
    name: str,
    dimension: Dimension,
) -> List[UsageRecord]:
    """Keep only the records whose user or repository name equals ``name``."""
    _require_records(records)
    return [record for record in records if dimension.key_of(record) == name]


def limit_to_top(entries: Sequence[AggregatedEntry], max_count: int) -> List[AggregatedEntry]:
    """Return the first ``max_count`` entries of an already sorted sequence."""
    if max_count < 0:
        raise ValueError("max_count cannot be negative")
    return list(entries[:max_count])


def total_cost(records: Iterable[UsageRecord]) -> float:
    """Sum of record costs; 0 for no records."""
    _require_records(records)
    return sum((record.cost_amount for record in records), 0.0)


def free_quota_usage_percent(
    records: Iterable[UsageRecord],
    config: CategoryConfig,
) -> Optional[float]:
    """Share of the category's free quota consumed by ``records``.

    Args:
        records: Usage records to total
        config: Category configuration providing the quota

    Returns:
        None when the category has no free quota, 0.0 when the quota limit
        is 0, otherwise usage / limit * 100 (may exceed 100)
    """
    _require_records(records)
    if config is None:
        raise ValueError("config cannot be None")

    quota = config.free_quota
    if quota is None:
        return None

    # A zero limit reports 0% rather than an undefined ratio
    if quota.limit == 0:
        return 0.0

    usage = sum(quota.measurement_field.amount_of(record) for record in records)
    return (usage / float(quota.limit)) * 100


def unique_group_names(records: Iterable[UsageRecord], dimension: Dimension) -> List[str]:
    """Distinct user or repository names, sorted."""
    _require_records(records)
    return sorted({dimension.key_of(record) for record in records})
