"""
Billing category definitions and registry.

Maps a category id to its usage field, unit and optional free quota.
The registry is an explicit object handed to whoever needs it; a lazily
built process-wide instance is available for hosts that want one.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from usage_report.core.records import MeasurementKind


class ConfigError(Enum):
    """Problems detected in a category configuration."""
    EMPTY_ID = "category id is empty"
    EMPTY_LABEL = "category label is empty"
    EMPTY_MEASUREMENT_FIELD = "measurement field is empty"
    EMPTY_UNIT = "unit is empty"
    NEGATIVE_QUOTA_LIMIT = "free quota limit must be >= 0"
    QUOTA_CATEGORY_MISMATCH = "free quota category does not match"
    QUOTA_FIELD_MISMATCH = "free quota measurement field does not match"
    QUOTA_UNIT_MISMATCH = "free quota unit does not match"


class ConfigurationError(Exception):
    """Raised when category configuration loaded from a file is invalid."""
    def __init__(self, message: str, errors: Optional[List[ConfigError]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


@dataclass(frozen=True)
class FreeQuota:
    """Usage allowance included with a category."""
    category_id: str
    limit: float
    unit: str
    measurement_field: MeasurementKind


@dataclass(frozen=True)
class CategoryConfig:
    """Static description of one billing category."""
    id: str
    label: str
    measurement_field: MeasurementKind
    unit: str
    free_quota: Optional[FreeQuota] = None

    @property
    def has_free_quota(self) -> bool:
        return self.free_quota is not None


@dataclass(frozen=True)
class ConfigValidation:
    """Outcome of validating a category configuration."""
    valid: bool
    errors: List[ConfigError] = field(default_factory=list)


DEFAULT_CATEGORIES = (
    CategoryConfig(
        id="actions",
        label="GitHub Actions",
        measurement_field=MeasurementKind.TIME,
        unit="min",
        free_quota=FreeQuota(
            category_id="actions",
            limit=50000,
            unit="min",
            measurement_field=MeasurementKind.TIME,
        ),
    ),
    CategoryConfig(
        id="codespaces",
        label="Codespaces",
        measurement_field=MeasurementKind.TIME,
        unit="min",
    ),
    CategoryConfig(
        id="storage",
        label="Storage",
        measurement_field=MeasurementKind.CAPACITY,
        unit="MB",
        # 50 GB
        free_quota=FreeQuota(
            category_id="storage",
            limit=51200,
            unit="MB",
            measurement_field=MeasurementKind.CAPACITY,
        ),
    ),
)


def _is_blank(value) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def validate_category_config(config: CategoryConfig) -> ConfigValidation:
    """Check a category configuration for internal consistency.

    The free quota, when present, must describe the same category,
    measurement field and unit as the configuration that owns it.
    Problems are collected rather than raised.

    Args:
        config: Configuration to check

    Returns:
        ConfigValidation listing every detected problem
    """
    errors: List[ConfigError] = []

    if _is_blank(config.id):
        errors.append(ConfigError.EMPTY_ID)
    if _is_blank(config.label):
        errors.append(ConfigError.EMPTY_LABEL)
    if not isinstance(config.measurement_field, MeasurementKind):
        errors.append(ConfigError.EMPTY_MEASUREMENT_FIELD)
    if _is_blank(config.unit):
        errors.append(ConfigError.EMPTY_UNIT)

    quota = config.free_quota
    if quota is not None:
        if quota.limit < 0:
            errors.append(ConfigError.NEGATIVE_QUOTA_LIMIT)
        if quota.category_id != config.id:
            errors.append(ConfigError.QUOTA_CATEGORY_MISMATCH)
        if quota.measurement_field != config.measurement_field:
            errors.append(ConfigError.QUOTA_FIELD_MISMATCH)
        if quota.unit != config.unit:
            errors.append(ConfigError.QUOTA_UNIT_MISMATCH)

    return ConfigValidation(valid=not errors, errors=errors)


class CategoryRegistry:
    """Lookup table of category configurations keyed by id.

    Readers always see an immutable snapshot. ``upsert`` builds a new
    snapshot under a lock and swaps it in, so reads never block.
    """

    def __init__(self, configs: Iterable[CategoryConfig] = ()):
        self._lock = threading.Lock()
        self._configs: Mapping[str, CategoryConfig] = MappingProxyType(
            {config.id: config for config in configs}
        )

    @classmethod
    def from_defaults(cls) -> "CategoryRegistry":
        return cls(DEFAULT_CATEGORIES)

    def get(self, category_id: str) -> Optional[CategoryConfig]:
        return self._configs.get(category_id)

    def get_all(self) -> List[CategoryConfig]:
        return list(self._configs.values())

    def category_ids(self) -> List[str]:
        return list(self._configs.keys())

    def upsert(self, config: CategoryConfig) -> None:
        """Insert a configuration or replace the existing one with the same id."""
        if config is None:
            raise ValueError("config cannot be None")
        with self._lock:
            updated = dict(self._configs)
            updated[config.id] = config
            self._configs = MappingProxyType(updated)

    @staticmethod
    def validate(config: CategoryConfig) -> ConfigValidation:
        return validate_category_config(config)

    def has_free_quota(self, category_id: str) -> bool:
        config = self.get(category_id)
        return config is not None and config.has_free_quota

    def label_for(self, category_id: str) -> str:
        """Display label for a category, falling back to the id itself."""
        config = self.get(category_id)
        return config.label if config is not None and config.label else category_id

    def unit_for(self, category_id: str) -> str:
        config = self.get(category_id)
        return config.unit if config is not None else ""

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)


_default_registry: Optional[CategoryRegistry] = None
_default_lock = threading.Lock()


def get_default_registry() -> CategoryRegistry:
    """Return the process-wide registry, building it from the defaults on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = CategoryRegistry.from_defaults()
        return _default_registry


def reload_default_registry(configs: Optional[Iterable[CategoryConfig]] = None) -> CategoryRegistry:
    """Replace the process-wide registry wholesale.

    Args:
        configs: New configurations; the built-in defaults when omitted

    Returns:
        The newly installed registry
    """
    global _default_registry
    registry = CategoryRegistry(DEFAULT_CATEGORIES if configs is None else configs)
    with _default_lock:
        _default_registry = registry
    return registry
