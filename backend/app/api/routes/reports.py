from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import (
    get_attachment_storage,
    get_current_user,
    get_report_lifecycle,
    get_report_store,
)
from backend.app.db import get_db
from backend.app.lpj.errors import (
    PersistenceError,
    RenderError,
    ReportNotFound,
    SubmissionRejected,
)
from backend.app.lpj.records import AttachmentRef, CanonicalReport, ReportDraft
from backend.app.models import User
from backend.app.services import system_log_service
from backend.app.services.attachment_service import AttachmentStorage
from backend.app.services.report_lifecycle import ReportLifecycle
from backend.app.services.report_store import SqlReportStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


class LedgerEntryOut(BaseModel):
    kind: str
    label: str
    amount: Decimal


class FileRefOut(BaseModel):
    filename: str
    path: str


class ReportOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    division: str
    month: str
    reporter_name: str
    work_program: str
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    evaluation: Optional[str] = None
    next_plan: Optional[str] = None
    ledger: List[LedgerEntryOut]
    attachment: Optional[FileRefOut] = None
    artifact: Optional[FileRefOut] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, report: CanonicalReport) -> "ReportOut":
        return cls(
            id=report.id,
            user_id=report.user_id,
            division=report.division,
            month=report.month,
            reporter_name=report.reporter_name,
            work_program=report.work_program,
            total_income=report.total_income,
            total_expense=report.total_expense,
            balance=report.balance,
            evaluation=report.evaluation,
            next_plan=report.next_plan,
            ledger=[LedgerEntryOut(kind=e.kind, label=e.label, amount=e.amount) for e in report.ledger],
            attachment=FileRefOut(**report.attachment.to_dict()) if report.attachment else None,
            artifact=FileRefOut(**report.artifact.to_dict()) if report.artifact else None,
            status=report.status,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )


class MonthlySummaryOut(BaseModel):
    month: str
    income: Decimal
    expense: Decimal


class ReportSummaryOut(BaseModel):
    total_reports: int
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    monthly: List[MonthlySummaryOut]


class DeleteReportOut(BaseModel):
    id: str
    deleted: bool
    cleanup_warnings: List[str]


def report_form(
    reporter_name: Optional[str] = Form(None),
    division: Optional[str] = Form(None),
    sub_unit: Optional[str] = Form(None),
    month: Optional[str] = Form(None),
    work_program: Optional[str] = Form(None),
    evaluation: Optional[str] = Form(None),
    next_plan: Optional[str] = Form(None),
    income_labels: Optional[List[str]] = Form(None),
    income_amounts: Optional[List[str]] = Form(None),
    expense_labels: Optional[List[str]] = Form(None),
    expense_amounts: Optional[List[str]] = Form(None),
    total_income: Optional[str] = Form(None),
    total_expense: Optional[str] = Form(None),
) -> ReportDraft:
    return ReportDraft(
        reporter_name=reporter_name,
        division=division,
        sub_unit=sub_unit,
        month=month,
        work_program=work_program,
        evaluation=evaluation,
        next_plan=next_plan,
        income_labels=income_labels,
        income_amounts=income_amounts,
        expense_labels=expense_labels,
        expense_amounts=expense_amounts,
        total_income=total_income,
        total_expense=total_expense,
    )


def _store_attachment(storage: AttachmentStorage, upload: Optional[UploadFile]) -> Optional[AttachmentRef]:
    if upload is None or not upload.filename:
        return None
    try:
        return storage.save(upload.filename, upload.content_type, upload.file)
    except SubmissionRejected as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict()) from exc


def _rejected(exc: SubmissionRejected, draft: ReportDraft) -> HTTPException:
    detail = exc.to_dict()
    detail["draft"] = draft.to_dict()
    return HTTPException(status_code=400, detail=detail)


@router.post("", response_model=ReportOut, status_code=201)
def create_report(
    draft: ReportDraft = Depends(report_form),
    attachment: Optional[UploadFile] = File(None),
    lifecycle: ReportLifecycle = Depends(get_report_lifecycle),
    storage: AttachmentStorage = Depends(get_attachment_storage),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    draft = replace(draft, attachment=_store_attachment(storage, attachment))
    try:
        run = lifecycle.create(draft, actor_id=user.id)
    except SubmissionRejected as exc:
        raise _rejected(exc, draft) from exc
    except (RenderError, PersistenceError) as exc:
        system_log_service.record_error(db, "Failed to save new report", error=str(exc), user_id=user.id)
        raise HTTPException(status_code=500, detail="failed to process report") from exc
    return ReportOut.from_record(run.report)


@router.get("", response_model=List[ReportOut])
def list_reports(
    limit: int = Query(200, ge=1, le=1000),
    store: SqlReportStore = Depends(get_report_store),
    user: User = Depends(get_current_user),
):
    reports = store.list(limit=limit)
    logger.info("Fetched %s reports for user %s", len(reports), user.username)
    return [ReportOut.from_record(report) for report in reports]


@router.get("/summary", response_model=ReportSummaryOut)
def report_summary(
    months: int = Query(6, ge=1, le=24),
    store: SqlReportStore = Depends(get_report_store),
    _user: User = Depends(get_current_user),
):
    return ReportSummaryOut(**store.summary(months=months))


@router.get("/{report_id}", response_model=ReportOut)
def get_report(
    report_id: str,
    store: SqlReportStore = Depends(get_report_store),
    _user: User = Depends(get_current_user),
):
    report = store.get(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="report not found")
    return ReportOut.from_record(report)


@router.get("/{report_id}/artifact")
def download_artifact(
    report_id: str,
    store: SqlReportStore = Depends(get_report_store),
    _user: User = Depends(get_current_user),
):
    report = store.get(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="report not found")
    if not report.artifact or not Path(report.artifact.path).is_file():
        logger.warning("Artifact missing on disk for report_id=%s", report_id)
        raise HTTPException(status_code=404, detail="artifact not found")
    return FileResponse(report.artifact.path, media_type="application/pdf", filename=report.artifact.filename)


@router.put("/{report_id}", response_model=ReportOut)
def update_report(
    report_id: str,
    draft: ReportDraft = Depends(report_form),
    attachment: Optional[UploadFile] = File(None),
    lifecycle: ReportLifecycle = Depends(get_report_lifecycle),
    storage: AttachmentStorage = Depends(get_attachment_storage),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    draft = replace(draft, attachment=_store_attachment(storage, attachment))
    try:
        run = lifecycle.update(report_id, draft, actor_id=user.id)
    except ReportNotFound as exc:
        raise HTTPException(status_code=404, detail="report not found") from exc
    except SubmissionRejected as exc:
        raise _rejected(exc, draft) from exc
    except (RenderError, PersistenceError) as exc:
        system_log_service.record_error(
            db, "Failed to update report", error=str(exc), report_id=report_id, user_id=user.id
        )
        raise HTTPException(status_code=500, detail="failed to update report") from exc
    return ReportOut.from_record(run.report)


@router.delete("/{report_id}", response_model=DeleteReportOut)
def delete_report(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_report_lifecycle),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        run = lifecycle.delete(report_id, actor_id=user.id)
    except ReportNotFound as exc:
        raise HTTPException(status_code=404, detail="report not found") from exc
    except PersistenceError as exc:
        system_log_service.record_error(
            db, "Failed to delete report", error=str(exc), report_id=report_id, user_id=user.id
        )
        raise HTTPException(status_code=500, detail="failed to delete report") from exc
    return DeleteReportOut(
        id=report_id,
        deleted=True,
        cleanup_warnings=[str(w) for w in run.warnings],
    )
