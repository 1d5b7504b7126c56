"""
LPJ records - the shapes that flow through one report lifecycle.

- ReportDraft: raw submission as received (every field optional).
- ReportFields: the draft after the VALIDATING boundary; required fields are
  guaranteed present and stripped.
- CanonicalReport: the persisted entity (or a snapshot of it).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional, Sequence, Tuple

# -------------------------
# Types
# -------------------------

LedgerKind = Literal["income", "expense"]

REPORT_STATUS_SUBMITTED = "submitted"


@dataclass(frozen=True)
class FileRef:
    filename: str
    path: str

    def to_dict(self) -> Dict[str, str]:
        return {"filename": self.filename, "path": self.path}


# attachment and artifact references share a shape
AttachmentRef = FileRef
ArtifactRef = FileRef


@dataclass(frozen=True)
class LedgerEntry:
    kind: LedgerKind
    label: str
    amount: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "label": self.label, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            kind=raw["kind"],
            label=raw.get("label") or "",
            amount=Decimal(str(raw.get("amount") or "0")),
        )


# -------------------------
# Input
# -------------------------

@dataclass(frozen=True)
class ReportDraft:
    reporter_name: Optional[str] = None
    division: Optional[str] = None
    sub_unit: Optional[str] = None           # e.g. a dorm name under a generic division
    month: Optional[str] = None              # free-form month period
    work_program: Optional[str] = None
    evaluation: Optional[str] = None
    next_plan: Optional[str] = None

    # None means "not supplied"; an empty list means "supplied and empty"
    income_labels: Optional[Sequence[Optional[str]]] = None
    income_amounts: Optional[Sequence[Any]] = None
    expense_labels: Optional[Sequence[Optional[str]]] = None
    expense_amounts: Optional[Sequence[Any]] = None

    total_income: Optional[Any] = None
    total_expense: Optional[Any] = None

    attachment: Optional[AttachmentRef] = None

    @property
    def has_ledger_input(self) -> bool:
        return any(
            v is not None
            for v in (self.income_labels, self.income_amounts, self.expense_labels, self.expense_amounts)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Echo of the submitted values, used to re-populate a rejected form."""
        out: Dict[str, Any] = {
            "reporter_name": self.reporter_name,
            "division": self.division,
            "sub_unit": self.sub_unit,
            "month": self.month,
            "work_program": self.work_program,
            "evaluation": self.evaluation,
            "next_plan": self.next_plan,
            "income_labels": list(self.income_labels) if self.income_labels is not None else None,
            "income_amounts": [str(v) for v in self.income_amounts] if self.income_amounts is not None else None,
            "expense_labels": list(self.expense_labels) if self.expense_labels is not None else None,
            "expense_amounts": [str(v) for v in self.expense_amounts] if self.expense_amounts is not None else None,
            "total_income": None if self.total_income is None else str(self.total_income),
            "total_expense": None if self.total_expense is None else str(self.total_expense),
        }
        return out


@dataclass(frozen=True)
class ReportFields:
    reporter_name: str
    division: str
    month: str
    work_program: str
    sub_unit: Optional[str] = None
    evaluation: Optional[str] = None
    next_plan: Optional[str] = None


# -------------------------
# Persisted entity
# -------------------------

@dataclass(frozen=True)
class CanonicalReport:
    division: str
    month: str
    reporter_name: str
    work_program: str
    total_income: Decimal
    total_expense: Decimal
    id: Optional[str] = None
    user_id: Optional[str] = None
    evaluation: Optional[str] = None
    next_plan: Optional[str] = None
    ledger: Tuple[LedgerEntry, ...] = field(default_factory=tuple)
    attachment: Optional[AttachmentRef] = None
    artifact: Optional[ArtifactRef] = None
    status: str = REPORT_STATUS_SUBMITTED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def income_entries(self) -> Tuple[LedgerEntry, ...]:
        return tuple(e for e in self.ledger if e.kind == "income")

    def expense_entries(self) -> Tuple[LedgerEntry, ...]:
        return tuple(e for e in self.ledger if e.kind == "expense")

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense

    def with_changes(self, **changes: Any) -> "CanonicalReport":
        return replace(self, **changes)
