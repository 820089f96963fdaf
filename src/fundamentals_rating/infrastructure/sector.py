"""SIC code based sector classifier with per-ticker overrides."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

DEFAULT_SECTOR = "Other"

SIC_RULES: Sequence[Tuple[str, Sequence[Tuple[int, int]]]] = (
    ("Real Estate", ((6500, 6599), (6798, 6798))),
    ("Biotech/Pharma", ((2830, 2839), (3840, 3849), (8000, 8099))),
    ("Tech/Internet", ((3570, 3579), (3670, 3679), (4800, 4899), (7370, 7389), (3600, 3699))),
    ("Energy/Materials", ((100, 1499), (2900, 2999), (3300, 3399))),
    ("Financials", ((6000, 6499), (6700, 6797))),
    ("Consumer & Services", ((5000, 5999), (7000, 7299), (7400, 7999), (8100, 8999))),
    ("Industrial/Cyclical", ((1500, 4999),)),
)


def sector_from_sic(sic: Optional[object]) -> Optional[str]:
    try:
        code = int(str(sic).strip())
    except (TypeError, ValueError):
        return None
    for sector, ranges in SIC_RULES:
        for low, high in ranges:
            if low <= code <= high:
                return sector
    return None


class SectorClassifier:
    """Best-guess sector string for a ticker: override, then SIC, then ``Other``."""

    def __init__(self, overrides: Optional[Dict[str, str]] = None) -> None:
        self._overrides = {key.strip().upper(): value for key, value in (overrides or {}).items()}

    @classmethod
    def from_file(cls, path: Path) -> "SectorClassifier":
        if not path.exists():
            return cls()
        try:
            overrides = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable sector overrides %s: %s", path, exc)
            return cls()
        return cls(overrides if isinstance(overrides, dict) else None)

    def classify(self, ticker: Optional[str], sic: Optional[object] = None) -> Tuple[str, str]:
        """Return ``(sector, source)`` where source is override, sic or fallback."""
        symbol = str(ticker or "").strip().upper()
        if symbol and symbol in self._overrides:
            return self._overrides[symbol], "override"
        from_sic = sector_from_sic(sic)
        if from_sic:
            return from_sic, "sic"
        return DEFAULT_SECTOR, "fallback"
