"""
Multi-month aggregation.

Builds month-by-month trend series for a single user or repository and
cross-category cost summaries from per-period record sets.
"""

from collections import abc
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .aggregator import filter_by_group_name, total_cost
from .records import Dimension, MeasurementKind, UsageRecord
from usage_report.config.categories import CategoryConfig

RecordsByKey = Union[Mapping[str, Sequence[UsageRecord]], Iterable[Tuple[str, Sequence[UsageRecord]]]]


@dataclass(frozen=True)
class MonthlyTrendPoint:
    """Totals for one period (YYYY-MM) of a trend series."""
    period_key: str
    cost: float
    record_count: int
    usage: Optional[float] = None
    usage_unit: Optional[str] = None
    free_quota_usage_percent: Optional[float] = None


@dataclass(frozen=True)
class CategorySummary:
    """Cost total for one billing category."""
    category: str
    total_cost: float
    item_count: int


def _items(data: RecordsByKey) -> List[Tuple[str, Sequence[UsageRecord]]]:
    if data is None:
        raise ValueError("data cannot be None")
    if isinstance(data, abc.Mapping):
        return list(data.items())
    return list(data)


def _detect_measurement(records: Sequence[UsageRecord]) -> Optional[MeasurementKind]:
    # Record sets populate a single usage field, so the first record decides
    if not records:
        return None
    first = records[0]
    if first.time_usage is not None:
        return MeasurementKind.TIME
    if first.capacity_usage is not None:
        return MeasurementKind.CAPACITY
    return None


def to_period_key(date_key: str) -> str:
    """Convert a YYYYMMDD file date into a YYYY-MM period key."""
    if len(date_key) < 6 or not date_key[:6].isdigit():
        raise ValueError(f"Invalid date key: {date_key!r}")
    return f"{date_key[:4]}-{date_key[4:6]}"


def yearly_trend(
    period_map: RecordsByKey,
    target_group_name: str,
    dimension: Dimension,
) -> List[MonthlyTrendPoint]:
    """Monthly cost (and detected usage) for one user or repository.

    Every period in the input produces a point, including periods where
    nothing matches (cost 0, no usage). Usage is summed from whichever field
    the matching records populate, time taking precedence over capacity.

    Args:
        period_map: Records per period key (YYYY-MM), in any order
        target_group_name: User or repository name to follow
        dimension: Whether the name is a user or a repository

    Returns:
        One point per period, sorted by period key ascending
    """
    points = []
    for period_key, records in _items(period_map):
        matching = filter_by_group_name(records, target_group_name, dimension)
        measurement = _detect_measurement(matching)
        usage = None
        if measurement is not None:
            usage = sum(measurement.amount_of(record) for record in matching)
        points.append(MonthlyTrendPoint(
            period_key=period_key,
            cost=total_cost(matching),
            record_count=len(matching),
            usage=usage,
        ))

    # YYYY-MM sorts chronologically as a plain string
    return sorted(points, key=lambda point: point.period_key)


def monthly_trend_with_usage(
    period_map: RecordsByKey,
    target_group_name: str,
    dimension: Dimension,
    config: CategoryConfig,
) -> List[MonthlyTrendPoint]:
    """Monthly cost, usage and free quota ratio using a known category.

    Args:
        period_map: Records per period key (YYYY-MM), in any order
        target_group_name: User or repository name to follow
        dimension: Whether the name is a user or a repository
        config: Category whose measurement field and quota apply

    Returns:
        One point per period, sorted by period key ascending
    """
    if config is None:
        raise ValueError("config cannot be None")

    measurement = config.measurement_field
    quota = config.free_quota

    points = []
    for period_key, records in _items(period_map):
        matching = filter_by_group_name(records, target_group_name, dimension)
        usage = sum((measurement.amount_of(record) for record in matching), 0.0)

        quota_percent = None
        if quota is not None and quota.limit > 0:
            quota_percent = (usage / float(quota.limit)) * 100

        points.append(MonthlyTrendPoint(
            period_key=period_key,
            cost=total_cost(matching),
            record_count=len(matching),
            usage=usage,
            usage_unit=config.unit,
            free_quota_usage_percent=quota_percent,
        ))

    return sorted(points, key=lambda point: point.period_key)


def category_summary(category_map: RecordsByKey) -> List[CategorySummary]:
    """Total cost and record count per category.

    Args:
        category_map: Records per category id; a mapping or ordered pairs

    Returns:
        Summaries sorted by total cost descending; ties keep input order
    """
    summaries = [
        CategorySummary(
            category=category,
            total_cost=total_cost(records),
            item_count=len(records),
        )
        for category, records in _items(category_map)
    ]
    return sorted(summaries, key=lambda summary: summary.total_cost, reverse=True)
