from __future__ import annotations

import json

from fundamentals_rating.domain.services.sector import is_biotech, is_fintech, resolve_sector_bucket
from fundamentals_rating.infrastructure.sector import SectorClassifier, sector_from_sic


def test_resolve_sector_bucket_aliases():
    assert resolve_sector_bucket("Biotechnology") == "Biotech/Pharma"
    assert resolve_sector_bucket("Regional Banks") == "Financials"
    assert resolve_sector_bucket("Software - Infrastructure") == "Tech/Internet"
    assert resolve_sector_bucket("REIT - Office") == "Real Estate"
    assert resolve_sector_bucket("") == "Other"
    assert resolve_sector_bucket(None) == "Other"
    # Unknown sectors pass through unchanged.
    assert resolve_sector_bucket(" Healthcare ") == "Healthcare"


def test_fintech_detection():
    assert is_fintech("SOFI")
    assert is_fintech("XYZ", company_name="Upstart Holdings")
    assert is_fintech("XYZ", sic_description="Online lending platform")
    assert not is_fintech("JPM", company_name="JPMorgan Chase", sic_description="National commercial banks")


def test_biotech_by_bucket_or_unclassified_sector():
    assert is_biotech("Biotech/Pharma")
    assert is_biotech("Other", "Therapeutics")
    assert not is_biotech("Tech/Internet", "Therapeutics")


def test_sic_classification():
    assert sector_from_sic("2834") == "Biotech/Pharma"
    assert sector_from_sic(7372) == "Tech/Internet"
    assert sector_from_sic(6022) == "Financials"
    assert sector_from_sic("n/a") is None


def test_classifier_prefers_override(tmp_path):
    overrides = tmp_path / "sector_overrides.json"
    overrides.write_text(json.dumps({"abc": "Energy"}), encoding="utf-8")

    classifier = SectorClassifier.from_file(overrides)

    assert classifier.classify("ABC", sic="7372") == ("Energy", "override")
    assert classifier.classify("XYZ", sic="7372") == ("Tech/Internet", "sic")
    assert classifier.classify("XYZ") == ("Other", "fallback")
    assert SectorClassifier.from_file(tmp_path / "missing.json").classify("ABC") == ("Other", "fallback")
