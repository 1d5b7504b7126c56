"""
Financial ledger builder.

Turns the parallel label/amount arrays of a submission into ordered
LedgerEntry rows and resolves the report totals.

Totals policy: an explicit top-level total wins, but when line items of that
kind exist they must add up to it; without an explicit total the line items
are summed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from backend.app.lpj.errors import ValidationError
from backend.app.lpj.records import LedgerEntry, LedgerKind

CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerTotals:
    income: Decimal
    expense: Decimal


def parse_amount(raw: Any, *, field: str) -> Decimal:
    """Coerce a submitted amount. Blank means zero; negatives are rejected."""
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    else:
        text = str(raw).strip().replace(" ", "")
        if not text:
            return ZERO
        try:
            value = Decimal(text)
        except InvalidOperation as exc:
            raise ValidationError(f"invalid amount {raw!r}", field=field) from exc
    if not value.is_finite():
        raise ValidationError(f"invalid amount {raw!r}", field=field)
    if value < 0:
        raise ValidationError(f"amount must not be negative: {raw!r}", field=field)
    return value.quantize(CENT)


def _entries(
    kind: LedgerKind,
    labels: Optional[Sequence[Optional[str]]],
    amounts: Optional[Sequence[Any]],
) -> List[LedgerEntry]:
    labels = list(labels or [])
    amounts = list(amounts or [])
    out: List[LedgerEntry] = []
    # a positive amount without a label is kept, so walk the longer array
    for i in range(max(len(labels), len(amounts))):
        label = (labels[i] if i < len(labels) else None) or ""
        label = str(label).strip()
        amount = parse_amount(amounts[i] if i < len(amounts) else None, field=f"{kind}_amounts")
        if not label and amount <= ZERO:
            continue
        out.append(LedgerEntry(kind=kind, label=label, amount=amount))
    return out


def build_ledger(
    income_labels: Optional[Sequence[Optional[str]]] = None,
    income_amounts: Optional[Sequence[Any]] = None,
    expense_labels: Optional[Sequence[Optional[str]]] = None,
    expense_amounts: Optional[Sequence[Any]] = None,
) -> Tuple[LedgerEntry, ...]:
    """Income entries first, then expense entries, each in submission order."""
    return tuple(
        _entries("income", income_labels, income_amounts)
        + _entries("expense", expense_labels, expense_amounts)
    )


def ledger_sum(entries: Iterable[LedgerEntry], kind: LedgerKind) -> Decimal:
    return sum((e.amount for e in entries if e.kind == kind), ZERO).quantize(CENT)


def _resolve_total(entries: Sequence[LedgerEntry], kind: LedgerKind, explicit: Any) -> Decimal:
    field = f"total_{kind}"
    if explicit is None or (isinstance(explicit, str) and not explicit.strip()):
        return ledger_sum(entries, kind)
    total = parse_amount(explicit, field=field)
    if any(e.kind == kind for e in entries):
        items_total = ledger_sum(entries, kind)
        if items_total != total:
            raise ValidationError(
                f"total {kind} {total} does not match line items ({items_total})",
                field=field,
            )
    return total


def resolve_totals(
    entries: Sequence[LedgerEntry],
    total_income: Any = None,
    total_expense: Any = None,
) -> LedgerTotals:
    return LedgerTotals(
        income=_resolve_total(entries, "income", total_income),
        expense=_resolve_total(entries, "expense", total_expense),
    )
