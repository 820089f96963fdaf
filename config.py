"""Application-wide configuration defaults and helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

# Base directory for resolving relative paths.
BASE_DIR = Path(__file__).resolve().parent


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    """Safely parse an integer env var, returning the default on failure."""
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_float(value: Optional[str], default: float) -> float:
    """Safely parse a float env var, returning the default on failure."""
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_list(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma separated env var, dropping blanks."""
    if not value:
        return ()
    return tuple(item.strip() for item in str(value).split(",") if item.strip())


@dataclass
class Config:
    """Runtime configuration loaded from environment variables."""

    debug: bool = False
    database_path: Path = BASE_DIR / "data" / "fundamentals.db"
    sqlite_echo: bool = False
    signal_cache_dir: Path = BASE_DIR / "data" / "edgar"
    signal_cache_ttl_hours: int = 72
    scan_depth: int = 10
    filing_stale_years: Tuple[str, ...] = ()
    max_concurrency: int = 4
    edgar_user_agent: str = "fundamentals-rating research contact@example.com"
    proxy_url: Optional[str] = None
    http_timeout: float = 30.0
    risk_free_rate_pct: float = 4.5
    output_dir: Path = BASE_DIR / "reports"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration instance using environment overrides."""
        base = BASE_DIR
        config = cls(
            debug=_to_bool(os.getenv("APP_DEBUG")),
            database_path=Path(os.getenv("DATABASE_PATH", base / "data" / "fundamentals.db")),
            sqlite_echo=_to_bool(os.getenv("SQLITE_ECHO")),
            signal_cache_dir=Path(os.getenv("SIGNAL_CACHE_DIR", base / "data" / "edgar")),
            signal_cache_ttl_hours=_to_int(os.getenv("SIGNAL_CACHE_TTL_HOURS"), 72),
            scan_depth=_to_int(os.getenv("FILING_SCAN_DEPTH"), 10),
            filing_stale_years=_to_list(os.getenv("FILING_STALE_YEARS")),
            max_concurrency=_to_int(os.getenv("MAX_CONCURRENCY"), 4),
            edgar_user_agent=os.getenv(
                "EDGAR_USER_AGENT", "fundamentals-rating research contact@example.com"
            ),
            proxy_url=os.getenv("PROXY_URL"),
            http_timeout=_to_float(os.getenv("HTTP_TIMEOUT"), 30.0),
            risk_free_rate_pct=_to_float(os.getenv("RISK_FREE_RATE_PCT"), 4.5),
            output_dir=Path(os.getenv("OUTPUT_DIR", base / "reports")),
        )
        config.ensure_directories()
        return config

    def ensure_directories(self) -> None:
        """Create directories needed for runtime artifacts."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.signal_cache_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
