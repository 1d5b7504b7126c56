from datetime import datetime, timezone

import pytest

from backend.app.lpj.errors import NormalizationError
from backend.app.lpj.months import (
    current_month_key,
    is_future_month,
    is_real_month,
    month_label_id,
    normalize_month,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01", "2024-01"),
        ("  2024-11 ", "2024-11"),
        ("Januari 2024", "2024-01"),
        ("januari 2024", "2024-01"),
        ("DESEMBER 2023", "2023-12"),
        ("Mei2024", "2024-05"),
        ("2024 Januari", "2024-01"),
        ("2024 Agustus", "2024-08"),
        ("Bulan Oktober, 2024", "2024-10"),
        ("3/2024", "2024-03"),
        ("2024/3", "2024-03"),
        ("2024-1", "2024-01"),
        ("March 2024", "2024-03"),
        ("Sep 2023", "2023-09"),
    ],
)
def test_normalize_month_accepts_common_inputs(raw, expected):
    assert normalize_month(raw) == expected


def test_canonical_key_passes_through_unchecked():
    # shape check only; range is not validated on the canonical path
    assert normalize_month("2024-13") == "2024-13"


@pytest.mark.parametrize(
    "key, real",
    [("2024-01", True), ("2024-12", True), ("2024-13", False), ("2025-00", False), ("Jan 2024", False)],
)
def test_is_real_month(key, real):
    assert is_real_month(key) is real


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        None,
        "bulan ini",
        "kemeiahan 2024",
        "13/2024",
        "Januari",
        "2024",
    ],
)
def test_normalize_month_rejects_unparseable_input(raw):
    with pytest.raises(NormalizationError) as excinfo:
        normalize_month(raw)
    assert excinfo.value.field == "month"


def test_two_different_years_are_ambiguous():
    with pytest.raises(NormalizationError, match="ambiguous"):
        normalize_month("Januari 2023 2024")


def test_error_keeps_raw_value():
    with pytest.raises(NormalizationError) as excinfo:
        normalize_month("entah kapan")
    assert excinfo.value.raw_value == "entah kapan"


def test_current_month_key_uses_jakarta_time():
    # 20:00 UTC on Jan 31 is already February in UTC+7
    now = datetime(2024, 1, 31, 20, 0, tzinfo=timezone.utc)
    assert current_month_key(now) == "2024-02"
    assert current_month_key(now, tz="UTC") == "2024-01"


def test_future_month_comparison():
    assert is_future_month("2024-03", "2024-02")
    assert not is_future_month("2024-02", "2024-02")
    assert not is_future_month("2023-12", "2024-02")


def test_month_label_id():
    assert month_label_id("2024-01") == "Januari 2024"
    assert month_label_id("2023-12") == "Desember 2023"
    assert month_label_id("2024-13") == "2024-13"
    assert month_label_id("later") == "later"
