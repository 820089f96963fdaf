from __future__ import annotations

from typer.testing import CliRunner

from fundamentals_rating.cli.commands import app

runner = CliRunner()


def _env(tmp_path):
    return {
        "DATABASE_PATH": str(tmp_path / "data" / "fundamentals.db"),
        "SIGNAL_CACHE_DIR": str(tmp_path / "edgar"),
        "OUTPUT_DIR": str(tmp_path / "reports"),
    }


def test_plan_lists_stages(tmp_path):
    result = runner.invoke(app, ["--offline", "plan"], env=_env(tmp_path))

    assert result.exit_code == 0
    assert "load_periods" in result.output


def test_rules_lists_catalog(tmp_path):
    result = runner.invoke(app, ["--offline", "rules"], env=_env(tmp_path))

    assert result.exit_code == 0
    assert "Revenue" in result.output


def test_offline_scan_requires_filings_dir(tmp_path):
    result = runner.invoke(app, ["--offline", "scan", "ABC"], env=_env(tmp_path))

    assert result.exit_code == 2


def test_scan_local_filings_as_json(tmp_path):
    filings = tmp_path / "filings"
    filings.mkdir()
    (filings / "10-K_2024-02-01.txt").write_text(
        "There is substantial doubt about our ability to continue as a going concern.", encoding="utf-8"
    )

    result = runner.invoke(
        app, ["--offline", "scan", "ABC", "--filings-dir", str(filings), "--json"], env=_env(tmp_path)
    )

    assert result.exit_code == 0
    assert "going_concern" in result.output


def test_rate_without_data_exits_nonzero(tmp_path):
    result = runner.invoke(app, ["--offline", "rate", "NONE"], env=_env(tmp_path))

    assert result.exit_code == 1
    assert "No fundamentals periods" in result.output
