from decimal import Decimal

import pytest

from backend.app.lpj.errors import ValidationError
from backend.app.lpj.ledger import build_ledger, ledger_sum, parse_amount, resolve_totals
from backend.app.lpj.records import LedgerEntry


def test_build_ledger_orders_income_before_expense():
    entries = build_ledger(
        income_labels=["Kas awal", "Donasi alumni"],
        income_amounts=["100000", "50000"],
        expense_labels=["Konsumsi"],
        expense_amounts=["25000"],
    )
    assert [(e.kind, e.label, e.amount) for e in entries] == [
        ("income", "Kas awal", Decimal("100000.00")),
        ("income", "Donasi alumni", Decimal("50000.00")),
        ("expense", "Konsumsi", Decimal("25000.00")),
    ]


def test_build_ledger_drops_rows_without_label_and_amount():
    entries = build_ledger(
        income_labels=["", "Iuran", "  "],
        income_amounts=["", "20000", "0"],
    )
    assert [(e.label, e.amount) for e in entries] == [("Iuran", Decimal("20000.00"))]


def test_build_ledger_keeps_label_with_blank_amount_and_amount_without_label():
    entries = build_ledger(
        expense_labels=["Fotokopi", ""],
        expense_amounts=["", "7500"],
    )
    assert [(e.label, e.amount) for e in entries] == [
        ("Fotokopi", Decimal("0.00")),
        ("", Decimal("7500.00")),
    ]


def test_build_ledger_walks_the_longer_array():
    entries = build_ledger(income_labels=["A", "B"], income_amounts=["1000"])
    assert [(e.label, e.amount) for e in entries] == [
        ("A", Decimal("1000.00")),
        ("B", Decimal("0.00")),
    ]

    entries = build_ledger(income_labels=["A"], income_amounts=["1000", "2000"])
    assert [(e.label, e.amount) for e in entries] == [
        ("A", Decimal("1000.00")),
        ("", Decimal("2000.00")),
    ]


def test_build_ledger_with_nothing_submitted():
    assert build_ledger() == ()
    assert build_ledger([], [], [], []) == ()


@pytest.mark.parametrize("raw", ["-5", "abc", "NaN", "Infinity", "1,000,000"])
def test_invalid_amounts_are_rejected(raw):
    with pytest.raises(ValidationError) as excinfo:
        build_ledger(expense_labels=["X"], expense_amounts=[raw])
    assert excinfo.value.field == "expense_amounts"


def test_parse_amount_coercions():
    assert parse_amount(None, field="x") == Decimal("0")
    assert parse_amount("  ", field="x") == Decimal("0")
    assert parse_amount("1.5", field="x") == Decimal("1.50")
    assert parse_amount(2500, field="x") == Decimal("2500.00")
    assert parse_amount("1 500 000", field="x") == Decimal("1500000.00")


def test_resolve_totals_sums_line_items_without_explicit_totals():
    entries = build_ledger(["A", "B"], ["1000", "2500.5"], ["C"], ["700"])
    totals = resolve_totals(entries)
    assert totals.income == Decimal("3500.50")
    assert totals.expense == Decimal("700.00")


def test_explicit_total_must_match_line_items():
    entries = build_ledger(["A"], ["1000"], ["C"], ["700"])
    assert resolve_totals(entries, "1000", "700.00").income == Decimal("1000.00")

    with pytest.raises(ValidationError) as excinfo:
        resolve_totals(entries, total_income="1500")
    assert excinfo.value.field == "total_income"

    with pytest.raises(ValidationError) as excinfo:
        resolve_totals(entries, total_expense="1")
    assert excinfo.value.field == "total_expense"


def test_explicit_total_without_line_items_is_used_as_is():
    totals = resolve_totals((), total_income="300000", total_expense="")
    assert totals.income == Decimal("300000.00")
    assert totals.expense == Decimal("0")


def test_ledger_sum_by_kind():
    entries = (
        LedgerEntry("income", "A", Decimal("10.00")),
        LedgerEntry("expense", "B", Decimal("4.25")),
        LedgerEntry("income", "C", Decimal("0.50")),
    )
    assert ledger_sum(entries, "income") == Decimal("10.50")
    assert ledger_sum(entries, "expense") == Decimal("4.25")
