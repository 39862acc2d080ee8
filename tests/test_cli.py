"""
Tests for the CLI interface.
"""
import pytest
import yaml
from typer.testing import CliRunner

from usage_report.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL

runner = CliRunner()

HEADER = "user_name,repository_name,time,cost\n"


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Data directory with a couple of exports; environment cleared."""
    for name in (
        "USAGE_REPORT_DATA_DIR",
        "USAGE_REPORT_MAX_ITEMS",
        "USAGE_REPORT_MAX_WORKERS",
        "USAGE_REPORT_LOG_LEVEL",
        "USAGE_REPORT_CATEGORIES",
    ):
        monkeypatch.delenv(name, raising=False)

    monthly = tmp_path / "monthly"
    monthly.mkdir()
    (monthly / "20250101-actions.csv").write_text(
        HEADER
        + "john,repo1,1000,5\n"
        + "jane,repo2,2000,8\n"
        + "john,repo2,bad,3\n"
        + ",repo1,10,1\n"
        + "broken,line\n",
        encoding="utf-8",
    )
    (monthly / "20250301-actions.csv").write_text(HEADER + "john,repo1,500,2\n", encoding="utf-8")
    return tmp_path


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self, data_dir):
        """Running without a command prints a usage hint."""
        result = runner.invoke(app, ["--data-dir", str(data_dir)])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Use --help" in result.output

    def test_categories(self, data_dir):
        """Default categories are listed."""
        result = runner.invoke(app, ["--data-dir", str(data_dir), "categories"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "actions" in result.output
        assert "codespaces" in result.output
        assert "51,200 MB" in result.output

    def test_summary_by_user(self, data_dir):
        """Summary lists users, totals and excluded records."""
        result = runner.invoke(app, ["--data-dir", str(data_dir), "summary", "actions", "20250101"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "jane" in result.output
        assert "john" in result.output
        assert "Total cost: $16.00" in result.output
        assert "Free quota used: 6.00%" in result.output
        assert "2 invalid record(s) excluded" in result.output

    def test_summary_top_limits_rows(self, data_dir):
        """--top keeps only the most expensive rows."""
        result = runner.invoke(
            app, ["--data-dir", str(data_dir), "summary", "actions", "20250101", "--top", "1"]
        )
        assert result.exit_code == EXIT_CODE_PASS
        assert "jane" in result.output
        assert "john" not in result.output

    def test_summary_by_repository(self, data_dir):
        """Grouping by repository shows repository names."""
        result = runner.invoke(
            app, ["--data-dir", str(data_dir), "summary", "actions", "20250101", "--by", "repository"]
        )
        assert result.exit_code == EXIT_CODE_PASS
        assert "repo2" in result.output

    def test_summary_missing_period_is_no_data(self, data_dir):
        """A missing export is shown as no data, not a failure."""
        result = runner.invoke(app, ["--data-dir", str(data_dir), "summary", "actions", "20250201"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No data" in result.output

    def test_summary_undecodable_export_is_no_data(self, data_dir):
        """An export that is not UTF-8 is reported as no data."""
        (data_dir / "monthly" / "20250201-actions.csv").write_bytes(b"\xff\xfe")
        result = runner.invoke(app, ["--data-dir", str(data_dir), "summary", "actions", "20250201"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No data" in result.output

    def test_unknown_category_fails(self, data_dir):
        """Unknown categories exit with an error."""
        result = runner.invoke(app, ["--data-dir", str(data_dir), "summary", "packages", "20250101"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown category" in result.output

    def test_invalid_dimension_fails(self, data_dir):
        """--by must name a known dimension."""
        result = runner.invoke(
            app, ["--data-dir", str(data_dir), "summary", "actions", "20250101", "--by", "team"]
        )
        assert result.exit_code == EXIT_CODE_FAIL

    def test_trend(self, data_dir):
        """Trend shows every month, with missing months as no data."""
        result = runner.invoke(app, ["--data-dir", str(data_dir), "trend", "actions", "2025", "john"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "2025-01" in result.output
        assert "2025-12" in result.output
        assert "$8.00" in result.output
        assert "no data" in result.output

    def test_check_config_valid(self, data_dir, tmp_path):
        """A valid categories file passes."""
        path = tmp_path / "categories.yaml"
        path.write_text(yaml.dump({"categories": [
            {"id": "actions", "label": "Actions", "measurement_field": "time", "unit": "min"}
        ]}), encoding="utf-8")
        result = runner.invoke(app, ["--data-dir", str(data_dir), "check-config", str(path)])
        assert result.exit_code == EXIT_CODE_PASS
        assert "1 category definition(s) are valid" in result.output

    def test_check_config_invalid(self, data_dir, tmp_path):
        """An inconsistent categories file fails."""
        path = tmp_path / "categories.yaml"
        path.write_text(yaml.dump({"categories": [
            {"id": "actions", "label": "Actions", "measurement_field": "time", "unit": "min",
             "free_quota": {"limit": -1}}
        ]}), encoding="utf-8")
        result = runner.invoke(app, ["--data-dir", str(data_dir), "check-config", str(path)])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_custom_config_file(self, data_dir, tmp_path):
        """--config replaces the built-in categories."""
        path = tmp_path / "categories.yaml"
        path.write_text(yaml.dump({"categories": [
            {"id": "packages", "label": "Packages", "measurement_field": "capacity", "unit": "GB"}
        ]}), encoding="utf-8")
        result = runner.invoke(app, ["--data-dir", str(data_dir), "--config", str(path), "categories"])
        assert result.exit_code == EXIT_CODE_PASS
        assert "packages" in result.output
        assert "codespaces" not in result.output

    def test_bad_config_file_fails(self, data_dir, tmp_path):
        """A missing --config file is reported."""
        result = runner.invoke(
            app, ["--data-dir", str(data_dir), "--config", str(tmp_path / "nope.yaml"), "categories"]
        )
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Configuration error" in result.output
