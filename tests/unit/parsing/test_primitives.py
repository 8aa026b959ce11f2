from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from etl_pipeline.config import DEFAULT_DATE_FORMATS, DEFAULT_TIMESTAMP_FORMATS
from etl_pipeline.errors import CoercionError
from etl_pipeline.parsing.primitives import (
    normalize_cell,
    parse_date,
    parse_float,
    parse_int,
    parse_text,
    parse_timestamp,
)
from etl_pipeline.parsing.types import RejectCode


def test_normalize_cell_trims_and_nulls() -> None:
    """Whitespace is trimmed, configured null strings become `None`."""
    assert normalize_cell("  abc ") == "abc"
    assert normalize_cell("   ") is None
    assert normalize_cell("NULL") is None
    assert normalize_cell("NA", ("na",)) is None
    assert normalize_cell("NA") == "NA"
    assert normalize_cell({"a": 1}) == {"a": 1}


def test_parse_int_accepts_ints_and_integral_floats() -> None:
    assert parse_int(" 42 ", field="n") == 42
    assert parse_int(-7, field="n") == -7
    assert parse_int(12.0, field="n") == 12


@pytest.mark.parametrize("v", ["12.3", "1e3", "abc", 12.5, True, [1], {"a": 1}])
def test_parse_int_rejects_non_integers(v: object) -> None:
    """Non `int` guard: fractional, exponent, bool and nested values fail."""
    with pytest.raises(CoercionError) as e:
        parse_int(v, field="n")
    assert e.value.code == RejectCode.coercion_error
    assert "n" in e.value.detail


def test_parse_float_accepts_numbers_and_numeric_strings() -> None:
    assert parse_float("300.0", field="t") == 300.0
    assert parse_float(" -1.5 ", field="t") == -1.5
    assert parse_float(290, field="t") == 290.0


@pytest.mark.parametrize("v", ["bad", "nan", "inf", False, {"temp": 1}])
def test_parse_float_rejects_non_numeric(v: object) -> None:
    with pytest.raises(CoercionError):
        parse_float(v, field="t")


def test_parse_text_scalars_only() -> None:
    """Scalars become text, nested containers are rejected."""
    assert parse_text("Rain", field="w") == "Rain"
    assert parse_text(5128581, field="w") == "5128581"
    with pytest.raises(CoercionError):
        parse_text({"main": "Rain"}, field="w")
    with pytest.raises(CoercionError):
        parse_text(["Rain"], field="w")


@pytest.mark.parametrize(
    "v, expected",
    [
        ("2018-05-01T00:03:17Z", datetime(2018, 5, 1, 0, 3, 17, tzinfo=timezone.utc)),
        ("2018-05-01 00:03:17", datetime(2018, 5, 1, 0, 3, 17, tzinfo=timezone.utc)),
        ("2018-05-01T02:03:17+02:00", datetime(2018, 5, 1, 0, 3, 17, tzinfo=timezone.utc)),
        (1525132800, datetime(2018, 5, 1, 0, 0, 0, tzinfo=timezone.utc)),
        ("1525132800", datetime(2018, 5, 1, 0, 0, 0, tzinfo=timezone.utc)),
        ("05/01/2018 00:03:17", datetime(2018, 5, 1, 0, 3, 17, tzinfo=timezone.utc)),
        ("2018-05-01 00:03:17.250", datetime(2018, 5, 1, 0, 3, 17, 250000, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp_default_formats(v: object, expected: datetime) -> None:
    """Every accepted shape lands on the same UTC instant."""
    got = parse_timestamp(v, field="ts", formats=DEFAULT_TIMESTAMP_FORMATS)
    assert got == expected
    assert got.utcoffset() == timedelta(0)


def test_parse_timestamp_first_matching_format_wins() -> None:
    """`01/02/2018` is Jan 2 with `%m/%d/%Y`, Feb 1 with `%d/%m/%Y`."""
    v = "01/02/2018 10:00"
    us = parse_timestamp(v, field="ts", formats=("%m/%d/%Y %H:%M", "%d/%m/%Y %H:%M"))
    eu = parse_timestamp(v, field="ts", formats=("%d/%m/%Y %H:%M", "%m/%d/%Y %H:%M"))
    assert (us.month, us.day) == (1, 2)
    assert (eu.month, eu.day) == (2, 1)


@pytest.mark.parametrize("v", ["yesterday", "2018-13-01T00:00:00", True, {"t": 1}])
def test_parse_timestamp_no_match_fails(v: object) -> None:
    with pytest.raises(CoercionError) as e:
        parse_timestamp(v, field="ts", formats=DEFAULT_TIMESTAMP_FORMATS)
    assert "ts" in e.value.detail


def test_parse_date_formats() -> None:
    assert parse_date("2026-02-19", field="d", formats=DEFAULT_DATE_FORMATS) == date(2026, 2, 19)
    assert parse_date("02/19/2026", field="d", formats=DEFAULT_DATE_FORMATS) == date(2026, 2, 19)
    with pytest.raises(CoercionError):
        parse_date("2026-02-30", field="d", formats=DEFAULT_DATE_FORMATS)
    with pytest.raises(CoercionError):
        parse_date(20260219, field="d", formats=DEFAULT_DATE_FORMATS)
