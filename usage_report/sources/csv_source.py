"""
CSV usage export source.

Reads monthly usage-billing exports named ``<YYYYMMDD>-<category>.csv``
from a data directory and turns them into validated usage records.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from usage_report.config.categories import CategoryConfig
from usage_report.core.records import MeasurementKind, UsageRecord
from usage_report.core.trends import to_period_key
from usage_report.core.validator import filter_valid

logger = logging.getLogger(__name__)

EXPECTED_FIELD_COUNT = 4
MONTHLY_SUBDIR = "monthly"
_DATE_PREFIX = re.compile(r"^(\d{8})-")
# Plain decimals only: no exponents, digit separators, inf or nan
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


class SourceUnavailable(Exception):
    """Raised when a usage export cannot be read."""
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class ParsedCsv:
    """Records parsed from one export plus the lines that were skipped."""
    records: List[UsageRecord]
    skipped_lines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BatchLoad:
    """Result of loading several exports; failed ones map to no records."""
    records_by_key: Dict[str, List[UsageRecord]]
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def file_name_for(date_key: str, category_id: str) -> str:
    """Export file name for a YYYYMMDD date and category."""
    return f"{date_key}-{category_id}.csv"


def _parse_number(value: str) -> Optional[float]:
    if not _PLAIN_NUMBER.match(value):
        return None
    return float(value)


def parse_usage_csv(text: str, config: CategoryConfig) -> ParsedCsv:
    """Parse the text of a usage export.

    The first line is a header. Each data line holds
    ``user, repository, measurement, cost``; the measurement is stored as
    time or capacity according to the category. Lines with the wrong field
    count or a non-numeric cost are skipped; a non-numeric measurement keeps
    the record without usage.

    Args:
        text: Raw CSV text
        config: Category the export was requested for

    Returns:
        ParsedCsv with records in file order and the skipped lines
    """
    lines = text.strip().splitlines()
    records: List[UsageRecord] = []
    skipped: List[str] = []

    for line in lines[1:]:
        if line.strip() == "":
            continue

        # Fields are never quoted, so every comma separates columns
        columns = [column.strip() for column in line.split(",")]
        if len(columns) != EXPECTED_FIELD_COUNT:
            logger.warning("Invalid CSV line format: %s", line)
            skipped.append(line)
            continue

        actor_name, resource_name, measurement_str, cost_str = columns
        cost = _parse_number(cost_str)
        if cost is None:
            logger.warning("Invalid cost value %r in line: %s", cost_str, line)
            skipped.append(line)
            continue

        measurement = _parse_number(measurement_str)
        if config.measurement_field is MeasurementKind.TIME:
            record = UsageRecord(actor_name, resource_name, cost, time_usage=measurement)
        else:
            record = UsageRecord(actor_name, resource_name, cost, capacity_usage=measurement)
        records.append(record)

    return ParsedCsv(records=records, skipped_lines=skipped)


class CsvUsageSource:
    """Filesystem source of monthly usage exports.

    Files are looked up in ``<base_dir>/monthly/``. Loading several periods
    runs the reads on a thread pool; a failing period never affects the
    others.
    """

    def __init__(self, base_dir: Union[str, Path], max_workers: int = 4):
        """Initialize the source.

        Args:
            base_dir: Directory containing the ``monthly`` export folder
            max_workers: Upper bound on concurrent file reads
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self.base_dir = Path(base_dir)
        self.max_workers = max_workers

    @property
    def monthly_dir(self) -> Path:
        return self.base_dir / MONTHLY_SUBDIR

    def path_for(self, config: CategoryConfig, date_key: str) -> Path:
        return self.monthly_dir / file_name_for(date_key, config.id)

    def read_export(self, config: CategoryConfig, date_key: str) -> ParsedCsv:
        """Read and parse one export without validating its records.

        Raises:
            SourceUnavailable: If the file is missing, unreadable or not UTF-8
        """
        path = self.path_for(config, date_key)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnavailable(f"Failed to load CSV file: {path} ({e})", path) from e
        return parse_usage_csv(text, config)

    def load(self, config: CategoryConfig, date_key: str) -> List[UsageRecord]:
        """Load and validate one export.

        Raises:
            SourceUnavailable: If the file is missing or cannot be read
        """
        return filter_valid(self.read_export(config, date_key).records)

    def load_many(self, config: CategoryConfig, date_keys: Iterable[str]) -> BatchLoad:
        """Load several exports concurrently, keyed by date.

        Each failure is logged and yields an empty record list for its date.
        """
        keys = list(date_keys)
        if not keys:
            return BatchLoad(records_by_key={})

        records_by_key: Dict[str, List[UsageRecord]] = {}
        failures: Dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(keys))) as executor:
            futures = {key: executor.submit(self.load, config, key) for key in keys}
            for key in keys:
                try:
                    records_by_key[key] = futures[key].result()
                except SourceUnavailable as e:
                    logger.warning("Failed to load data for %s: %s", key, e)
                    records_by_key[key] = []
                    failures[key] = str(e)

        return BatchLoad(records_by_key=records_by_key, failures=failures)

    def load_year(self, config: CategoryConfig, year: int) -> BatchLoad:
        """Load the twelve monthly exports of ``year`` keyed by YYYY-MM."""
        date_keys = [f"{year:04d}{month:02d}01" for month in range(1, 13)]
        batch = self.load_many(config, date_keys)
        return BatchLoad(
            records_by_key={
                to_period_key(key): records for key, records in batch.records_by_key.items()
            },
            failures={to_period_key(key): reason for key, reason in batch.failures.items()},
        )

    def available_dates(self, category_id: str) -> List[str]:
        """YYYYMMDD keys of the exports present for a category, sorted."""
        if not self.monthly_dir.is_dir():
            return []
        dates = []
        for path in self.monthly_dir.glob(f"*-{category_id}.csv"):
            match = _DATE_PREFIX.match(path.name)
            if match and path.name == file_name_for(match.group(1), category_id):
                dates.append(match.group(1))
        return sorted(dates)
