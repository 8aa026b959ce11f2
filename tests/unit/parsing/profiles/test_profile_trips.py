from __future__ import annotations

import io
from datetime import datetime, timezone

from etl_pipeline.config import PipelineConfig
from etl_pipeline.ingest.readers import decode_delimited
from etl_pipeline.parsing.profiles.trips import TRIPS_COLUMNS, TRIPS_FORMAT, TRIPS_SCHEMA
from etl_pipeline.parsing.types import RejectCode, RejectRow, TypedRecord

HEADER = ",".join(f'"{c}"' for c in TRIPS_COLUMNS)


def _coerce_lines(*lines: str) -> list[TypedRecord | RejectRow]:
    data = "\n".join((HEADER, *lines)) + "\n"
    return [TRIPS_SCHEMA.coerce(r, PipelineConfig()) for r in decode_delimited(io.BytesIO(data.encode()), TRIPS_FORMAT)]


def test_trips_happy_path() -> None:
    """Quoted timestamps and a quoted name holding the delimiter."""
    (res,) = _coerce_lines(
        '695,"2018-05-01 00:03:17","2018-05-01 00:14:52",3183,"Exchange Place, North",40.7162469,-74.0334588,'
        '3199,"Newport Pkwy",40.7287448,-74.0321082,29623,"Annual Membership","Subscriber",1968,1'
    )
    assert isinstance(res, TypedRecord)
    assert res.values["tripduration"] == 695
    assert res.values["starttime"] == datetime(2018, 5, 1, 0, 3, 17, tzinfo=timezone.utc)
    assert res.values["start_station_name"] == "Exchange Place, North"
    assert res.values["birth_year"] == 1968
    assert res.values["gender"] == 1


def test_trips_blank_birth_year_is_null() -> None:
    (res,) = _coerce_lines(
        '1245,"2018-05-01 00:41:11","2018-05-01 01:01:56",3186,"Grove St PATH",40.7195,-74.0431,'
        '3195,"Sip Ave",40.7306,-74.0636,31672,"Trial","Customer",,0'
    )
    assert isinstance(res, TypedRecord)
    assert res.values["birth_year"] is None


def test_trips_bad_duration_rejected() -> None:
    (res,) = _coerce_lines(
        'abc,"2018-05-01 00:41:11","2018-05-01 01:01:56",3186,"Grove St PATH",40.7195,-74.0431,'
        '3195,"Sip Ave",40.7306,-74.0636,31672,"Trial","Customer",1990,0'
    )
    assert isinstance(res, RejectRow)
    assert res.reason_code == RejectCode.coercion_error
    assert "tripduration" in res.reason_detail
