"""
Configuration management and loading.

Handles category definitions from YAML files and application settings
from environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from usage_report.core.records import MeasurementKind
from .categories import (
    CategoryConfig,
    CategoryRegistry,
    ConfigurationError,
    FreeQuota,
    validate_category_config,
)

DEFAULT_MAX_DISPLAY_ITEMS = 100
DEFAULT_MAX_WORKERS = 4
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for loading and displaying usage data."""
    data_dir: Path
    max_display_items: int = DEFAULT_MAX_DISPLAY_ITEMS
    max_workers: int = DEFAULT_MAX_WORKERS
    log_level: str = "WARNING"
    categories_file: Optional[Path] = None

    def __post_init__(self):
        """Validate settings values."""
        if self.max_display_items <= 0:
            raise ValueError("max_display_items must be > 0")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {list(LOG_LEVELS)}")


def _int_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from environment variables.

    Recognised variables: USAGE_REPORT_DATA_DIR, USAGE_REPORT_MAX_ITEMS,
    USAGE_REPORT_MAX_WORKERS, USAGE_REPORT_LOG_LEVEL, USAGE_REPORT_CATEGORIES.

    Args:
        environ: Variables to read; os.environ when omitted

    Returns:
        Validated Settings

    Raises:
        ValueError: If a variable holds an invalid value
    """
    env = os.environ if environ is None else environ
    categories_file = env.get("USAGE_REPORT_CATEGORIES")
    return Settings(
        data_dir=Path(env.get("USAGE_REPORT_DATA_DIR", "data")),
        max_display_items=_int_from_env(env, "USAGE_REPORT_MAX_ITEMS", DEFAULT_MAX_DISPLAY_ITEMS),
        max_workers=_int_from_env(env, "USAGE_REPORT_MAX_WORKERS", DEFAULT_MAX_WORKERS),
        log_level=env.get("USAGE_REPORT_LOG_LEVEL", "WARNING").upper(),
        categories_file=Path(categories_file) if categories_file else None,
    )


def load_category_configs(path: str) -> List[CategoryConfig]:
    """Load and validate category definitions from a YAML file.

    Strict validation ensures a typo in a quota or field name is reported
    instead of silently producing wrong usage figures.

    Args:
        path: Path to YAML configuration file

    Returns:
        Category configurations in file order

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the file structure is invalid
        ConfigurationError: If a category fails consistency validation
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Category config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'categories'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'categories' not in raw_config:
        raise ValueError("Missing required 'categories' section")

    categories_data = raw_config['categories']
    if not isinstance(categories_data, list) or not categories_data:
        raise ValueError("'categories' must be a non-empty list")

    configs: List[CategoryConfig] = []
    seen_ids = set()
    for index, category_data in enumerate(categories_data):
        if not isinstance(category_data, dict):
            raise ValueError(f"categories[{index}] must be a dictionary")
        config = _parse_category_config(category_data, f"categories[{index}]")

        validation = validate_category_config(config)
        if not validation.valid:
            reasons = ", ".join(error.value for error in validation.errors)
            raise ConfigurationError(
                f"Invalid category '{config.id}' in {path}: {reasons}",
                validation.errors,
            )
        if config.id in seen_ids:
            raise ValueError(f"Duplicate category id '{config.id}' in {path}")
        seen_ids.add(config.id)
        configs.append(config)

    return configs


def load_registry(path: Optional[str] = None) -> CategoryRegistry:
    """Build a registry from a YAML file, or from the built-in defaults."""
    if path is None:
        return CategoryRegistry.from_defaults()
    return CategoryRegistry(load_category_configs(path))


def _parse_measurement(value, path: str) -> MeasurementKind:
    if not isinstance(value, str):
        raise ValueError(f"'measurement_field' in {path} must be a string")
    try:
        return MeasurementKind(value.lower())
    except ValueError:
        valid_fields = [kind.value for kind in MeasurementKind]
        raise ValueError(f"'measurement_field' in {path} must be one of: {valid_fields}")


def _parse_category_config(data: Dict, path: str) -> CategoryConfig:
    """Parse one category entry.

    Args:
        data: Category configuration data
        path: Path for error messages

    Returns:
        CategoryConfig (not yet consistency-checked)

    Raises:
        ValueError: If the entry is structurally invalid
    """
    allowed_keys = {'id', 'label', 'measurement_field', 'unit', 'free_quota'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('id', 'label', 'measurement_field', 'unit'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")

    category_id = str(data['id'])
    unit = str(data['unit'])
    measurement = _parse_measurement(data['measurement_field'], path)

    free_quota = None
    if data.get('free_quota') is not None:
        free_quota = _parse_free_quota(
            data['free_quota'], f"{path}.free_quota", category_id, measurement, unit
        )

    return CategoryConfig(
        id=category_id,
        label=str(data['label']),
        measurement_field=measurement,
        unit=unit,
        free_quota=free_quota,
    )


def _parse_free_quota(
    data,
    path: str,
    category_id: str,
    measurement: MeasurementKind,
    unit: str,
) -> FreeQuota:
    """Parse a free quota block, inheriting linkage from the owning category."""
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'limit', 'unit', 'category', 'measurement_field'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    if 'limit' not in data:
        raise ValueError(f"Missing required 'limit' in {path}")

    limit = data['limit']
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        raise ValueError(f"'limit' in {path} must be a number")

    quota_measurement = measurement
    if 'measurement_field' in data:
        quota_measurement = _parse_measurement(data['measurement_field'], path)

    return FreeQuota(
        category_id=str(data.get('category', category_id)),
        limit=float(limit),
        unit=str(data.get('unit', unit)),
        measurement_field=quota_measurement,
    )
