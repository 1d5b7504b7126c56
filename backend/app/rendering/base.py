from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Protocol, Tuple

from backend.app.lpj.records import CanonicalReport, LedgerEntry


@dataclass(frozen=True)
class RenderInput:
    division: str
    month: str
    reporter_name: str
    work_program: str
    evaluation: Optional[str]
    next_plan: Optional[str]
    income: Tuple[LedgerEntry, ...]
    expense: Tuple[LedgerEntry, ...]
    total_income: Decimal
    total_expense: Decimal
    generated_at: datetime

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense

    @classmethod
    def from_report(cls, report: CanonicalReport, generated_at: datetime) -> "RenderInput":
        return cls(
            division=report.division,
            month=report.month,
            reporter_name=report.reporter_name,
            work_program=report.work_program,
            evaluation=report.evaluation,
            next_plan=report.next_plan,
            income=report.income_entries(),
            expense=report.expense_entries(),
            total_income=report.total_income,
            total_expense=report.total_expense,
            generated_at=generated_at,
        )


class ReportRenderer(Protocol):
    """
    Produces the report artifact at `destination`.

    Implementations must:
    - overwrite `destination` if present (same input, same file)
    - publish atomically: on failure nothing exists at `destination`
    - remove any intermediate working files on success and failure
    - return only once the file is fully written, raising RenderError otherwise
    """

    def render(self, data: RenderInput, destination: Path) -> None:
        ...
