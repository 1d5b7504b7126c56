# backend/app/api/deps.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from backend.app import config
from backend.app.db import get_db
from backend.app.models import User
from backend.app.rendering.pdf import PdfReportRenderer
from backend.app.services.attachment_service import AttachmentStorage
from backend.app.services.audit_service import SqlAuditEmitter
from backend.app.services.file_store import LocalFileStore
from backend.app.services.report_lifecycle import ReportLifecycle, ReportLockRegistry
from backend.app.services.report_store import SqlReportStore

# process-wide so concurrent requests for one report serialize
REPORT_LOCKS = ReportLockRegistry()


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    Reads the acting user from the X-User-Id header.

    NOTE:
    - Session handling lives in front of this service; we only need to know
      who is acting so the audit trail can name them.
    """
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown X-User-Id")
    return user


def get_report_store(db: Session = Depends(get_db)) -> SqlReportStore:
    return SqlReportStore(db)


def get_attachment_storage() -> AttachmentStorage:
    return AttachmentStorage(config.uploads_dir(), config.max_attachment_bytes())


def get_report_lifecycle(db: Session = Depends(get_db)) -> ReportLifecycle:
    files = LocalFileStore()
    artifacts_dir = files.ensure_dir(config.reports_dir())
    return ReportLifecycle(
        store=SqlReportStore(db),
        renderer=PdfReportRenderer(
            logo_path=config.logo_path(),
            signature_path=config.signature_path(),
            stamp_path=config.stamp_path(),
        ),
        files=files,
        audit=SqlAuditEmitter(db),
        artifacts_dir=artifacts_dir,
        timezone=config.report_timezone(),
        generic_divisions=config.generic_divisions(),
        render_timeout=config.render_timeout_seconds(),
        locks=REPORT_LOCKS if config.report_locking_enabled() else None,
    )
