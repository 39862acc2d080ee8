"""
CLI interface for Usage Report.

Prints usage-billing summaries and monthly trends from CSV exports.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from usage_report.config.categories import CategoryConfig, CategoryRegistry, ConfigurationError
from usage_report.config.loader import Settings, load_category_configs, load_registry, load_settings
from usage_report.core.aggregator import (
    aggregate_by_dimension,
    free_quota_usage_percent,
    limit_to_top,
    total_cost,
)
from usage_report.core.records import Dimension
from usage_report.core.trends import monthly_trend_with_usage
from usage_report.core.validator import partition_records
from usage_report.sources.csv_source import CsvUsageSource, SourceUnavailable

app = typer.Typer()
console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


class _State:
    settings: Optional[Settings] = None
    registry: Optional[CategoryRegistry] = None


state = _State()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Directory containing the monthly/ export folder"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file with category definitions"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """Usage Report CLI."""
    try:
        settings = load_settings()
        settings = Settings(
            data_dir=data_dir or settings.data_dir,
            max_display_items=settings.max_display_items,
            max_workers=settings.max_workers,
            log_level=(log_level or settings.log_level).upper(),
            categories_file=config or settings.categories_file,
        )
        _configure_logging(settings.log_level)
        categories_file = settings.categories_file
        state.registry = load_registry(str(categories_file) if categories_file else None)
        state.settings = settings
    except (ValueError, FileNotFoundError, yaml.YAMLError, ConfigurationError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if ctx.invoked_subcommand is None:
        console.print("Usage Report - Use --help to see available commands")


def _require_category(category: str) -> CategoryConfig:
    config = state.registry.get(category)
    if config is None:
        valid = ", ".join(state.registry.category_ids())
        console.print(f"[red]Unknown category:[/] {category} (valid: {valid})")
        sys.exit(EXIT_CODE_FAIL)
    return config


def _parse_dimension(by: str) -> Dimension:
    try:
        return Dimension(by.lower())
    except ValueError:
        valid = [dimension.value for dimension in Dimension]
        console.print(f"[red]--by must be one of:[/] {valid}")
        sys.exit(EXIT_CODE_FAIL)


def _source() -> CsvUsageSource:
    return CsvUsageSource(state.settings.data_dir, max_workers=state.settings.max_workers)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_usage(usage: Optional[float], unit: Optional[str]) -> str:
    if usage is None:
        return "-"
    return f"{usage:,.2f} {unit or ''}".rstrip()


def _format_percent(percent: Optional[float]) -> str:
    if percent is None:
        return "-"
    return f"{percent:,.2f}%"


@app.command()
def categories():
    """List the configured billing categories."""
    table = Table(title="Categories")
    table.add_column("ID")
    table.add_column("Label")
    table.add_column("Measurement")
    table.add_column("Unit")
    table.add_column("Free quota", justify="right")

    for config in state.registry.get_all():
        quota = config.free_quota
        table.add_row(
            config.id,
            config.label,
            config.measurement_field.value,
            config.unit,
            f"{quota.limit:,.0f} {quota.unit}" if quota else "-",
        )
    console.print(table)


@app.command()
def summary(
    category: str = typer.Argument(..., help="Category id, e.g. actions"),
    date: str = typer.Argument(..., help="Export date in YYYYMMDD form"),
    by: str = typer.Option("user", "--by", "-b", help="Group by user or repository"),
    top: Optional[int] = typer.Option(None, "--top", "-n", help="Number of rows to show"),
):
    """Show cost and usage per user or repository for one export."""
    config = _require_category(category)
    dimension = _parse_dimension(by)
    try:
        parsed = _source().read_export(config, date)
    except SourceUnavailable as e:
        logger.debug("%s", e)
        console.print(f"[yellow]No data[/] for {config.label} on {date}")
        sys.exit(EXIT_CODE_PASS)

    result = partition_records(parsed.records)
    entries = aggregate_by_dimension(result.valid, dimension, config)
    max_rows = top if top is not None else state.settings.max_display_items

    table = Table(title=f"{config.label} - {date} by {dimension.value}")
    table.add_column(dimension.value.capitalize())
    table.add_column("Cost", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Usage", justify="right")
    table.add_column("Free quota", justify="right")
    for entry in limit_to_top(entries, max_rows):
        table.add_row(
            entry.group_name,
            _format_currency(entry.total_cost),
            _format_percent(entry.percentage_of_total),
            _format_usage(entry.total_usage, entry.usage_unit),
            _format_percent(entry.free_quota_usage_percent),
        )
    console.print(table)

    console.print(f"Total cost: {_format_currency(total_cost(result.valid))}")
    quota_percent = free_quota_usage_percent(result.valid, config)
    if quota_percent is not None:
        console.print(f"Free quota used: {_format_percent(quota_percent)}")
    skipped = len(parsed.skipped_lines) + result.dropped_count
    if skipped:
        console.print(f"[yellow]{skipped} invalid record(s) excluded[/]")


@app.command()
def trend(
    category: str = typer.Argument(..., help="Category id, e.g. actions"),
    year: int = typer.Argument(..., help="Calendar year"),
    name: str = typer.Argument(..., help="User or repository name"),
    by: str = typer.Option("user", "--by", "-b", help="Whether NAME is a user or repository"),
):
    """Show the monthly trend of one user or repository over a year."""
    config = _require_category(category)
    dimension = _parse_dimension(by)

    batch = _source().load_year(config, year)
    points = monthly_trend_with_usage(batch.records_by_key, name, dimension, config)

    table = Table(title=f"{config.label} - {name} ({year})")
    table.add_column("Month")
    table.add_column("Cost", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Usage", justify="right")
    table.add_column("Free quota", justify="right")
    for point in points:
        if point.period_key in batch.failures:
            table.add_row(point.period_key, "[dim]no data[/]", "-", "-", "-")
            continue
        table.add_row(
            point.period_key,
            _format_currency(point.cost),
            str(point.record_count),
            _format_usage(point.usage, point.usage_unit),
            _format_percent(point.free_quota_usage_percent),
        )
    console.print(table)


@app.command("check-config")
def check_config(
    path: Path = typer.Argument(..., help="YAML file with category definitions"),
):
    """Validate a category definitions file."""
    try:
        configs = load_category_configs(str(path))
    except (ValueError, FileNotFoundError, yaml.YAMLError, ConfigurationError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] {len(configs)} category definition(s) are valid")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
