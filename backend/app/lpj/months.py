"""
Month normalization: free-form month period -> canonical `YYYY-MM` key.

Strategies, first match wins:
1. already canonical (`^\\d{4}-\\d{2}$`) -> returned unchanged, even `2024-13`
2. Indonesian month names replaced by their two-digit code
3. digit runs: one 4-digit run is the year, the first 1-2 digit run the month
4. narrow fallback: English month name + year, or numeric year/month patterns

Canonical keys compare as strings, so `current_month_key()` can be used
directly for the "not in the future" check.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from backend.app.lpj.errors import NormalizationError

CANONICAL_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
DIGIT_RUN_RE = re.compile(r"\d+")

MONTHS_ID = {
    "januari": "01",
    "februari": "02",
    "maret": "03",
    "april": "04",
    "mei": "05",
    "juni": "06",
    "juli": "07",
    "agustus": "08",
    "september": "09",
    "oktober": "10",
    "november": "11",
    "desember": "12",
}

MONTH_NAMES_ID = {int(code): name.capitalize() for name, code in MONTHS_ID.items()}

# letter boundaries only, so "Mei2024" matches but "kemeiahan" does not
_MONTH_NAME_RES = [
    (re.compile(rf"(?<![a-z]){name}(?![a-z])"), code) for name, code in MONTHS_ID.items()
]

_FALLBACK_FORMATS = (
    "%B %Y",
    "%b %Y",
    "%B, %Y",
    "%b, %Y",
    "%Y %B",
    "%Y %b",
    "%Y/%m",
    "%m/%Y",
    "%Y.%m",
    "%m.%Y",
)


def is_canonical(value: str) -> bool:
    return bool(CANONICAL_MONTH_RE.match(value or ""))


def _replace_month_names(value: str) -> str:
    out = value.lower()
    for pattern, code in _MONTH_NAME_RES:
        # pad with spaces so the code never glues onto an adjacent digit run
        out = pattern.sub(f" {code} ", out)
    return out


def _from_digit_runs(value: str) -> Optional[str]:
    runs: List[str] = DIGIT_RUN_RE.findall(value)
    years = [r for r in runs if len(r) == 4]
    if len(set(years)) > 1:
        raise NormalizationError(f"ambiguous month period, more than one year: {value.strip()!r}", raw_value=value)
    year = years[0] if years else None
    month = next((r for r in runs if len(r) <= 2 and r != year), None)
    if not year or month is None:
        return None
    if not 1 <= int(month) <= 12:
        return None
    return f"{year}-{int(month):02d}"


def _from_fallback(value: str) -> Optional[str]:
    cleaned = " ".join(value.split())
    for fmt in _FALLBACK_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        return f"{parsed.year:04d}-{parsed.month:02d}"
    return None


def normalize_month(raw: Optional[str]) -> str:
    """Return the canonical `YYYY-MM` key for `raw` or raise NormalizationError."""
    value = (raw or "").strip()
    if not value:
        raise NormalizationError("month period is required", raw_value=raw)

    if is_canonical(value):
        return value

    key = _from_digit_runs(_replace_month_names(value))
    if key:
        return key

    key = _from_fallback(value)
    if key:
        return key

    raise NormalizationError(
        "invalid month period, use e.g. 'Januari 2024' or '2024-01'",
        raw_value=raw,
    )


def current_month_key(now: Optional[datetime] = None, tz: str = "Asia/Jakarta") -> str:
    moment = now or datetime.now(ZoneInfo(tz))
    if moment.tzinfo is not None:
        moment = moment.astimezone(ZoneInfo(tz))
    return f"{moment.year:04d}-{moment.month:02d}"


def is_real_month(month_key: str) -> bool:
    """Canonical keys pass `normalize_month` unchecked; this rejects `2024-13` and `2025-00`."""
    return is_canonical(month_key) and 1 <= int(month_key[5:7]) <= 12


def is_future_month(month_key: str, current_key: str) -> bool:
    return month_key > current_key


def month_label_id(month_key: str) -> str:
    """`2024-01` -> `Januari 2024`; keys that are not a real month come back as-is."""
    if not is_canonical(month_key):
        return month_key
    year, month = month_key.split("-")
    name = MONTH_NAMES_ID.get(int(month))
    if not name:
        return month_key
    return f"{name} {year}"
