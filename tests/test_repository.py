from __future__ import annotations

from fundamentals_rating.infrastructure.db.sqlite import SQLiteRepository


def _repo(tmp_path) -> SQLiteRepository:
    return SQLiteRepository(f"sqlite:///{tmp_path / 'fundamentals.db'}")


def test_periods_upsert_and_fetch(tmp_path):
    repo = _repo(tmp_path)
    records = [
        {"periodEnd": "2024-06-30", "periodType": "quarter", "revenue": 120.0, "filedDate": "2024-08-01"},
        {"period_end": "2024-03-31T00:00:00", "period_type": "QUARTER", "revenue": 100.0},
        {"revenue": 5.0},  # no end date
    ]

    assert repo.upsert_periods("abc", records) == 2
    # Re-filed numbers replace the stored payload.
    repo.upsert_periods("ABC", [{"periodEnd": "2024-06-30", "periodType": "quarter", "revenue": 125.0, "filedDate": "2024-08-05"}])

    fetched = repo.fetch_periods("abc")
    assert [row["periodEnd"] for row in fetched] == ["2024-03-31", "2024-06-30"]
    assert fetched[0]["periodType"] == "quarter"
    assert fetched[1]["revenue"] == 125.0
    assert repo.latest_filed_date("ABC") == "2024-08-05"
    assert repo.latest_filed_date("NONE") is None
    repo.dispose()


def test_prices_are_returned_newest_first(tmp_path):
    repo = _repo(tmp_path)
    rows = [
        {"date": "2024-01-02", "close": 10.0},
        {"trade_date": "2024-01-03", "close": 11.0, "marketCap": 1_000_000},
        {"close": 99.0},
    ]

    assert repo.upsert_prices("abc", rows) == 2
    prices = repo.fetch_prices("ABC")

    assert [str(row["trade_date"]) for row in prices] == ["2024-01-03", "2024-01-02"]
    assert prices[0]["market_cap"] == 1_000_000
    assert len(repo.fetch_prices("ABC", limit=1)) == 1
    repo.dispose()


def test_company_profile_roundtrip(tmp_path):
    repo = _repo(tmp_path)
    repo.upsert_company({"ticker": "abc", "name": "ABC Corp", "sic": "7372", "issuer_type": "domestic"})
    repo.upsert_company({"name": "no ticker"})

    company = repo.fetch_company("ABC")

    assert company["name"] == "ABC Corp"
    assert company["sic"] == "7372"
    assert repo.fetch_company("XYZ") is None
    repo.dispose()
