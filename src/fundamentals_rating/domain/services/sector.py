"""Sector bucket resolution and fintech detection."""
from __future__ import annotations

import re
from typing import Optional, Tuple

BIOTECH_PHARMA = "Biotech/Pharma"
TECH_INTERNET = "Tech/Internet"
FINANCIALS = "Financials"
REAL_ESTATE = "Real Estate"
RETAIL = "Retail"
INDUSTRIAL = "Industrial/Cyclical"
ENERGY_MATERIALS = "Energy/Materials"
CONSUMER_SERVICES = "Consumer & Services"
DEFAULT_BUCKET = "Other"

SECTOR_BUCKETS: Tuple[str, ...] = (
    BIOTECH_PHARMA,
    TECH_INTERNET,
    FINANCIALS,
    REAL_ESTATE,
    RETAIL,
    INDUSTRIAL,
    ENERGY_MATERIALS,
    DEFAULT_BUCKET,
)

# Ordered: the first substring found in the lower-cased raw sector wins.
SECTOR_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("biotech", BIOTECH_PHARMA),
    ("pharma", BIOTECH_PHARMA),
    ("pharmaceutical", BIOTECH_PHARMA),
    ("financial", FINANCIALS),
    ("bank", FINANCIALS),
    ("finance", FINANCIALS),
    ("insurance", FINANCIALS),
    ("tech", TECH_INTERNET),
    ("technology", TECH_INTERNET),
    ("internet", TECH_INTERNET),
    ("software", TECH_INTERNET),
    ("consumer", RETAIL),
    ("consumer & services", RETAIL),
    ("retail", RETAIL),
    ("energy", ENERGY_MATERIALS),
    ("materials", ENERGY_MATERIALS),
    ("industrial", INDUSTRIAL),
    ("cyclical", INDUSTRIAL),
    ("real", REAL_ESTATE),
    ("reit", REAL_ESTATE),
)

KNOWN_FINTECH_TICKERS = frozenset({"SOFI", "UPST", "AFRM", "SQ", "PYPL", "LC"})
FINTECH_NAME_PATTERN = re.compile(
    r"sofi|upstart|affirm|square|paypal|lendingclub|robinhood|chime|coinbase", re.IGNORECASE
)
FINTECH_SIC_PATTERN = re.compile(
    r"fintech|digital.?bank|neo.?bank|online.?lend|peer.?to.?peer|payment.?platform|mobile.?pay",
    re.IGNORECASE,
)
BIO_DESCRIPTION_PATTERN = re.compile(r"pharm|bio|drug|device", re.IGNORECASE)
BIO_SECTOR_PATTERN = re.compile(r"bio|pharma|drug|therap", re.IGNORECASE)


def resolve_sector_bucket(raw: Optional[str]) -> str:
    """Map a free-form sector string onto a bucket.

    Empty input resolves to ``Other``; strings matching no alias are returned
    unchanged (stripped), so buckets such as ``Healthcare`` pass through.
    """
    if not raw:
        return DEFAULT_BUCKET
    normalized = str(raw).strip()
    if not normalized:
        return DEFAULT_BUCKET
    lowered = normalized.lower()
    for needle, bucket in SECTOR_ALIASES:
        if needle in lowered:
            return bucket
    return normalized


def is_fintech(
    ticker: Optional[str],
    company_name: Optional[str] = None,
    sic_description: Optional[str] = None,
    sector: Optional[str] = None,
) -> bool:
    symbol = str(ticker or "").upper()
    if symbol in KNOWN_FINTECH_TICKERS:
        return True
    name = str(company_name or ticker or "")
    if FINTECH_NAME_PATTERN.search(name):
        return True
    if FINTECH_SIC_PATTERN.search(str(sic_description or "")):
        return True
    return "fintech" in str(sector or "").lower()


def is_biotech(bucket: str, sector: Optional[str] = None) -> bool:
    """Biotech bucket, or an unclassified sector that reads like one."""
    if bucket == BIOTECH_PHARMA:
        return True
    return bucket == DEFAULT_BUCKET and bool(BIO_SECTOR_PATTERN.search(str(sector or "")))
