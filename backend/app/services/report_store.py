from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.lpj.errors import PersistenceError, ReportNotFound
from backend.app.lpj.ledger import CENT
from backend.app.lpj.records import CanonicalReport, FileRef, LedgerEntry
from backend.app.models import Report

logger = logging.getLogger(__name__)


class ReportStore(Protocol):
    def insert(self, report: CanonicalReport) -> str:
        ...

    def update(self, report_id: str, report: CanonicalReport) -> None:
        ...

    def get(self, report_id: str) -> Optional[CanonicalReport]:
        ...

    def delete(self, report_id: str) -> None:
        ...


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else "0")).quantize(CENT)


def to_record(row: Report) -> CanonicalReport:
    attachment = None
    if row.attachment_path:
        attachment = FileRef(filename=row.attachment_filename or "", path=row.attachment_path)
    artifact = None
    if row.artifact_path:
        artifact = FileRef(filename=row.artifact_filename or "", path=row.artifact_path)
    return CanonicalReport(
        id=row.id,
        user_id=row.user_id,
        division=row.division,
        month=row.month,
        reporter_name=row.reporter_name,
        work_program=row.work_program,
        total_income=_decimal(row.total_income),
        total_expense=_decimal(row.total_expense),
        evaluation=row.evaluation,
        next_plan=row.next_plan,
        ledger=tuple(LedgerEntry.from_dict(item) for item in (row.ledger or [])),
        attachment=attachment,
        artifact=artifact,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply(row: Report, report: CanonicalReport) -> None:
    if report.artifact is None:
        raise PersistenceError("refusing to persist a report without an artifact")
    row.user_id = report.user_id
    row.division = report.division
    row.month = report.month
    row.reporter_name = report.reporter_name
    row.work_program = report.work_program
    row.total_income = report.total_income
    row.total_expense = report.total_expense
    row.evaluation = report.evaluation
    row.next_plan = report.next_plan
    row.ledger = [entry.to_dict() for entry in report.ledger]
    row.attachment_filename = report.attachment.filename if report.attachment else None
    row.attachment_path = report.attachment.path if report.attachment else None
    row.artifact_filename = report.artifact.filename
    row.artifact_path = report.artifact.path
    row.status = report.status


class SqlReportStore:
    """
    ReportStore on a SQLAlchemy session. Every write commits before it
    returns; reads hand back detached CanonicalReport snapshots and close
    their transaction so nothing is held while a PDF renders.
    """

    def __init__(self, db: Session):
        self._db = db

    def _commit(self, action: str, report_id: Optional[str]) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Report %s failed for report_id=%s: %s", action, report_id, exc)
            raise PersistenceError(f"could not {action} report: {exc}") from exc

    def _read(self, stmt):
        try:
            result = self._db.execute(stmt.execution_options(populate_existing=True))
            rows = result.scalars().all()
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(f"could not read reports: {exc}") from exc
        return rows

    def insert(self, report: CanonicalReport) -> str:
        row = Report()
        _apply(row, report)
        try:
            self._db.add(row)
            self._db.flush()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(f"could not insert report: {exc}") from exc
        report_id = row.id
        self._commit("insert", report_id)
        return report_id

    def update(self, report_id: str, report: CanonicalReport) -> None:
        rows = self._read(select(Report).where(Report.id == report_id))
        if not rows:
            raise ReportNotFound(report_id)
        _apply(rows[0], report)
        self._commit("update", report_id)

    def get(self, report_id: str) -> Optional[CanonicalReport]:
        rows = self._read(select(Report).where(Report.id == report_id))
        return to_record(rows[0]) if rows else None

    def delete(self, report_id: str) -> None:
        rows = self._read(select(Report).where(Report.id == report_id))
        if not rows:
            raise ReportNotFound(report_id)
        self._db.delete(rows[0])
        self._commit("delete", report_id)

    # -------------------------
    # Listing
    # -------------------------

    def list(self, limit: int = 200) -> List[CanonicalReport]:
        rows = self._read(
            select(Report).order_by(Report.created_at.desc(), Report.id.desc()).limit(limit)
        )
        return [to_record(row) for row in rows]

    def summary(self, months: int = 6) -> Dict[str, Any]:
        try:
            totals = self._db.execute(
                select(
                    func.count(Report.id),
                    func.coalesce(func.sum(Report.total_income), 0),
                    func.coalesce(func.sum(Report.total_expense), 0),
                )
            ).one()
            monthly = self._db.execute(
                select(
                    Report.month,
                    func.coalesce(func.sum(Report.total_income), 0),
                    func.coalesce(func.sum(Report.total_expense), 0),
                )
                .group_by(Report.month)
                .order_by(Report.month.desc())
                .limit(months)
            ).all()
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(f"could not summarize reports: {exc}") from exc

        total_income = _decimal(totals[1])
        total_expense = _decimal(totals[2])
        return {
            "total_reports": int(totals[0] or 0),
            "total_income": total_income,
            "total_expense": total_expense,
            "balance": total_income - total_expense,
            "monthly": [
                {"month": month, "income": _decimal(income), "expense": _decimal(expense)}
                for month, income, expense in monthly
            ],
        }
