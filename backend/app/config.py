from __future__ import annotations

import os
from pathlib import Path
from typing import FrozenSet, Optional

DEFAULT_GENERIC_DIVISIONS = "Ko'or Asrama"
DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def _optional(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


def reports_dir() -> Path:
    return Path(os.getenv("LPJ_REPORTS_DIR", "./reports")).resolve()


def uploads_dir() -> Path:
    return Path(os.getenv("LPJ_UPLOADS_DIR", "./uploads")).resolve()


def render_timeout_seconds() -> float:
    raw = os.getenv("LPJ_RENDER_TIMEOUT_SECONDS", "60")
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"LPJ_RENDER_TIMEOUT_SECONDS must be a number, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError("LPJ_RENDER_TIMEOUT_SECONDS must be positive.")
    return value


def report_timezone() -> str:
    return os.getenv("LPJ_TIMEZONE", "Asia/Jakarta")


def generic_divisions() -> FrozenSet[str]:
    raw = os.getenv("LPJ_GENERIC_DIVISIONS", DEFAULT_GENERIC_DIVISIONS)
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def max_attachment_bytes() -> int:
    return int(os.getenv("LPJ_MAX_ATTACHMENT_BYTES", str(DEFAULT_MAX_ATTACHMENT_BYTES)))


def report_locking_enabled() -> bool:
    return os.getenv("LPJ_REPORT_LOCKING", "1") != "0"


def logo_path() -> Optional[str]:
    return _optional("LPJ_LOGO_PATH")


def signature_path() -> Optional[str]:
    return _optional("LPJ_SIGNATURE_PATH")


def stamp_path() -> Optional[str]:
    return _optional("LPJ_STAMP_PATH")


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
