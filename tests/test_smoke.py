"""Basic smoke tests for the rating workflow."""
from __future__ import annotations

import json
from datetime import date, timedelta

from config import Config
from fundamentals_rating.workflows.graph import RatingWorkflow


def _config(tmp_path) -> Config:
    return Config(
        database_path=tmp_path / "data" / "fundamentals.db",
        signal_cache_dir=tmp_path / "edgar",
        output_dir=tmp_path / "reports",
    )


def _periods(count: int = 9):
    start = date(2022, 3, 31)
    return [
        {
            "periodEnd": (start + timedelta(days=91 * idx)).isoformat(),
            "periodType": "quarter",
            "filedDate": (start + timedelta(days=91 * idx + 35)).isoformat(),
            "revenue": 500_000_000 * (1 + 0.04 * idx),
            "grossProfit": 300_000_000 * (1 + 0.04 * idx),
            "operatingIncome": 80_000_000,
            "netIncome": 60_000_000,
            "operatingCashFlow": 110_000_000,
            "capex": -30_000_000,
            "sharesOutstanding": 50_000_000,
            "totalAssets": 4_000_000_000,
            "totalEquity": 2_500_000_000,
            "totalDebt": 500_000_000,
            "cash": 900_000_000,
        }
        for idx in range(count)
    ]


def test_config_defaults(tmp_path):
    cfg = Config.from_env()
    assert cfg.database_path.exists() or cfg.database_path.parent.exists()
    assert cfg.signal_cache_ttl_hours == 72


def test_stale_years_reach_the_scanner(tmp_path, monkeypatch):
    monkeypatch.setenv("FILING_STALE_YEARS", "2019, 2020,")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "data" / "fundamentals.db"))
    monkeypatch.setenv("SIGNAL_CACHE_DIR", str(tmp_path / "edgar"))
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "reports"))
    cfg = Config.from_env()
    assert cfg.filing_stale_years == ("2019", "2020")

    workflow = RatingWorkflow(cfg, offline=True)
    assert workflow.context.scanner.stale_years == ("2019", "2020")
    workflow.close()


def test_workflow_stages(tmp_path):
    cfg = _config(tmp_path)
    cfg.ensure_directories()
    workflow = RatingWorkflow(cfg, offline=True)
    stages = workflow.describe_stages()
    assert len(stages) == 7
    assert stages[0].startswith("load_periods")
    assert stages[-1].startswith("render_report")
    workflow.close()


def test_offline_run_from_periods_file(tmp_path):
    cfg = _config(tmp_path)
    cfg.ensure_directories()
    periods_file = tmp_path / "abc.json"
    payload = {
        "company": {"name": "ABC Corp", "sector": "Software"},
        "periods": _periods(),
        "prices": [{"date": "2024-03-28", "close": 40.0}, {"date": "2024-04-01", "close": 42.0}],
    }
    periods_file.write_text(json.dumps(payload), encoding="utf-8")
    filings_dir = tmp_path / "filings"
    filings_dir.mkdir()
    (filings_dir / "10-Q_2024-05-02.htm").write_text(
        "<p>Our independent auditor included an explanatory paragraph stating there is substantial doubt "
        "about our ability to continue as a going concern.</p>",
        encoding="utf-8",
    )
    workflow = RatingWorkflow(cfg, offline=True)

    state = workflow.run("abc", periods_file=periods_file, filings_dir=filings_dir)

    assert state["errors"] == []
    assert state["sector"] == "Software"
    assert state["financial_state"].sector_bucket == "Tech/Internet"
    assert "going_concern" in {signal.id for signal in state["signals"]}
    rating = state["rating"]
    assert rating is not None
    assert rating.filing_score < 0
    assert len(rating.reasons) == 41
    assert state["narrative"].sentences
    assert state["markdown_report"].startswith("# ABC · ABC Corp")

    # Second run reads the periods back from SQLite.
    again = workflow.run("ABC")
    assert len(again["raw_periods"]) == 9
    assert again["rating"] is not None
    workflow.close()


def test_offline_run_without_data_reports_error(tmp_path):
    cfg = _config(tmp_path)
    cfg.ensure_directories()
    workflow = RatingWorkflow(cfg, offline=True)

    state = workflow.run("NONE")

    assert state["rating"] is None
    assert state["markdown_report"] is None
    assert any("No fundamentals periods" in error for error in state["errors"])
    workflow.close()
