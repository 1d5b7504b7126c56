from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.db import get_db
from backend.app.services import audit_service

router = APIRouter(prefix="/api/audit", tags=["audit"])


class AuditLogOut(BaseModel):
    id: str
    actor_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime


class AuditLogPageOut(BaseModel):
    items: List[AuditLogOut]
    next_cursor: Optional[str] = None


@router.get("", response_model=AuditLogPageOut, dependencies=[Depends(get_current_user)])
def list_audit_events(
    limit: int = Query(100, ge=1, le=500),
    cursor: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    result = audit_service.list_audit_events(
        db,
        limit=limit,
        cursor=cursor,
        action=action,
        actor_id=actor_id,
        resource_id=resource_id,
        since=since,
        until=until,
    )
    return AuditLogPageOut(
        items=[AuditLogOut(**item) for item in result["items"]],
        next_cursor=result["next_cursor"],
    )
