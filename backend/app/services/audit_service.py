from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Tuple

from fastapi import HTTPException
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models import AuditLog

logger = logging.getLogger(__name__)

CREATE_REPORT = "CREATE_REPORT"
UPDATE_REPORT = "UPDATE_REPORT"
DELETE_REPORT = "DELETE_REPORT"
AUDIT_ACTIONS = {CREATE_REPORT, UPDATE_REPORT, DELETE_REPORT}

RESOURCE_REPORT = "report"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditEvent:
    actor_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


class AuditEmitter(Protocol):
    def emit(self, event: AuditEvent) -> None:
        ...


def log_audit_event(
    db: Session,
    *,
    actor_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    details: Optional[Dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> AuditLog:
    row = AuditLog(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
        created_at=created_at or utcnow(),
    )
    db.add(row)
    db.flush()
    return row


class SqlAuditEmitter:
    """
    Writes audit_logs rows and mirrors them to the logger.

    Fire-and-forget: a failed insert is logged and rolled back, never raised,
    because the transition it describes has already been committed.
    """

    def __init__(self, db: Session):
        self._db = db

    def emit(self, event: AuditEvent) -> None:
        logger.info(
            "AUDIT: %s actor=%s %s=%s details=%s",
            event.action,
            event.actor_id,
            event.resource_type,
            event.resource_id,
            event.details,
        )
        try:
            log_audit_event(
                self._db,
                actor_id=event.actor_id,
                action=event.action,
                resource_type=event.resource_type,
                resource_id=event.resource_id,
                details=event.details,
                created_at=event.created_at,
            )
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Failed to write audit event %s for %s", event.action, event.resource_id)


def _encode_cursor(created_at: datetime, audit_id: str) -> str:
    return f"{created_at.isoformat()}|{audit_id}"


def _decode_cursor(cursor: str) -> Tuple[datetime, str]:
    try:
        created_at_raw, audit_id = cursor.split("|", 1)
        return datetime.fromisoformat(created_at_raw), audit_id
    except ValueError as exc:
        raise HTTPException(400, "invalid cursor") from exc


def list_audit_events(
    db: Session,
    limit: int = 100,
    cursor: Optional[str] = None,
    action: Optional[str] = None,
    actor_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> Dict[str, Any]:
    query = select(AuditLog)
    if action:
        query = query.where(AuditLog.action == action)
    if actor_id:
        query = query.where(AuditLog.actor_id == actor_id)
    if resource_id:
        query = query.where(AuditLog.resource_id == resource_id)
    if since:
        query = query.where(AuditLog.created_at >= since)
    if until:
        query = query.where(AuditLog.created_at <= until)
    if cursor:
        cursor_created_at, cursor_id = _decode_cursor(cursor)
        query = query.where(
            or_(
                AuditLog.created_at < cursor_created_at,
                and_(AuditLog.created_at == cursor_created_at, AuditLog.id < cursor_id),
            )
        )

    rows = (
        db.execute(
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit + 1)
        )
        .scalars()
        .all()
    )

    next_cursor = None
    if len(rows) > limit:
        last = rows[limit - 1]
        next_cursor = _encode_cursor(last.created_at, last.id)
        rows = rows[:limit]

    items = [
        {
            "id": row.id,
            "actor_id": row.actor_id,
            "action": row.action,
            "resource_type": row.resource_type,
            "resource_id": row.resource_id,
            "details": row.details,
            "created_at": row.created_at,
        }
        for row in rows
    ]

    return {"items": items, "next_cursor": next_cursor}
