"""
Record validation.

Checks parsed usage records for structural validity and drops the ones
that cannot be aggregated. Problems are returned as values, never raised,
so a single bad line cannot abort a batch.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Tuple

from .records import UsageRecord

logger = logging.getLogger(__name__)


class RecordError(Enum):
    """Reasons a usage record is rejected."""
    EMPTY_ACTOR_NAME = "empty actor name"
    EMPTY_RESOURCE_NAME = "empty resource name"
    INVALID_COST = "invalid cost"
    INVALID_TIME_USAGE = "invalid time usage"
    INVALID_CAPACITY_USAGE = "invalid capacity usage"


@dataclass(frozen=True)
class RecordValidation:
    """Outcome of validating a single record."""
    valid: bool
    errors: List[RecordError] = field(default_factory=list)


@dataclass(frozen=True)
class FilterResult:
    """Records split into accepted and rejected sets."""
    valid: List[UsageRecord]
    rejected: List[Tuple[UsageRecord, List[RecordError]]]

    @property
    def dropped_count(self) -> int:
        return len(self.rejected)


def _is_blank(value) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def _is_non_negative_number(value) -> bool:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    if isinstance(value, Decimal):
        return value.is_finite() and value >= 0
    return math.isfinite(value) and value >= 0


def validate_record(record: UsageRecord) -> RecordValidation:
    """Validate one usage record.

    Every rule is checked independently so all problems are reported at once.

    Args:
        record: Record to check

    Returns:
        RecordValidation with the list of failed rules (empty if valid)
    """
    errors: List[RecordError] = []

    if _is_blank(record.actor_name):
        errors.append(RecordError.EMPTY_ACTOR_NAME)

    if _is_blank(record.resource_name):
        errors.append(RecordError.EMPTY_RESOURCE_NAME)

    if not _is_non_negative_number(record.cost):
        errors.append(RecordError.INVALID_COST)

    if record.time_usage is not None and not _is_non_negative_number(record.time_usage):
        errors.append(RecordError.INVALID_TIME_USAGE)

    if record.capacity_usage is not None and not _is_non_negative_number(record.capacity_usage):
        errors.append(RecordError.INVALID_CAPACITY_USAGE)

    return RecordValidation(valid=not errors, errors=errors)


def partition_records(records: Iterable[UsageRecord]) -> FilterResult:
    """Split records into valid ones and rejected ones with their reasons."""
    if records is None:
        raise ValueError("records cannot be None")

    valid: List[UsageRecord] = []
    rejected: List[Tuple[UsageRecord, List[RecordError]]] = []
    for record in records:
        result = validate_record(record)
        if result.valid:
            valid.append(record)
        else:
            rejected.append((record, result.errors))
    return FilterResult(valid=valid, rejected=rejected)


def filter_valid(records: Iterable[UsageRecord]) -> List[UsageRecord]:
    """Drop invalid records, logging each one that is excluded.

    Args:
        records: Records to filter

    Returns:
        Valid records in their original order
    """
    result = partition_records(records)
    for record, errors in result.rejected:
        logger.warning(
            "Dropping invalid usage record %r: %s",
            record,
            ", ".join(error.value for error in errors),
        )
    if result.dropped_count:
        logger.warning("%d invalid usage record(s) excluded", result.dropped_count)
    return result.valid
