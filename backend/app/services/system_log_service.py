from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models import SystemLog

logger = logging.getLogger(__name__)

LEVELS = {"debug", "info", "warning", "error"}


def record(db: Session, level: str, message: str, meta: Optional[Dict[str, Any]] = None) -> Optional[SystemLog]:
    """Persist an operational log line. Never raises; returns None if the write failed."""
    level = (level or "info").lower()
    if level not in LEVELS:
        level = "info"
    row = SystemLog(level=level, message=message, meta=meta or {})
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to log to database: %s", message)
        return None
    return row


def record_error(db: Session, message: str, **meta: Any) -> Optional[SystemLog]:
    return record(db, "error", message, {k: v for k, v in meta.items() if v is not None})


def recent(db: Session, level: Optional[str] = None, limit: int = 50) -> List[SystemLog]:
    query = select(SystemLog)
    if level:
        query = query.where(SystemLog.level == level.lower())
    query = query.order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).limit(limit)
    return list(db.execute(query).scalars().all())
