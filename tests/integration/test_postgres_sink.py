from __future__ import annotations

from datetime import date, datetime, timezone

import psycopg
import pytest

from etl_pipeline.db.initialize import create_sink_table, create_table_sql
from etl_pipeline.errors import SinkError
from etl_pipeline.parsing.schema import FieldSpec, RecordSchema
from etl_pipeline.parsing.types import FieldType, TypedRecord
from etl_pipeline.query.buckets import avg_by_bucket, count_by_bucket
from etl_pipeline.sinks.postgres import PostgresSink

pytestmark = pytest.mark.integration

UTC = timezone.utc


@pytest.fixture()
def sink(conn: psycopg.Connection, readings_schema: RecordSchema) -> PostgresSink:
    create_sink_table(conn, schema=readings_schema, table_name="test_readings", replace=True)
    return PostgresSink(conn, table_name="test_readings", schema=readings_schema)


def _rec(i: int, ts: datetime, temp: float | None) -> TypedRecord:
    return TypedRecord(values={"id": i, "taken_at": ts, "temp_c": temp}, source_row=i)


def test_sink_table_shape(conn: psycopg.Connection, sink: PostgresSink) -> None:
    """One column per field plus the sequence column, required fields are NOT NULL."""
    rows = conn.execute(
        """
        SELECT column_name, data_type, is_nullable
        FROM information_schema.columns
        WHERE table_name = 'test_readings'
        ORDER BY ordinal_position
        """
    ).fetchall()
    assert rows == [
        ("load_seq", "bigint", "NO"),
        ("id", "bigint", "NO"),
        ("taken_at", "timestamp with time zone", "NO"),
        ("temp_c", "double precision", "YES"),
    ]


def test_reserved_column_name_rejected() -> None:
    schema = RecordSchema("bad", [FieldSpec("load_seq", FieldType.integer)])
    with pytest.raises(ValueError, match="reserved"):
        create_table_sql(schema, "test_readings")


def test_append_scan_keeps_order(sink: PostgresSink) -> None:
    sink.append_many([_rec(3, datetime(2018, 5, 1, tzinfo=UTC), 1.0), _rec(1, datetime(2018, 5, 1, tzinfo=UTC), None)])
    sink.append_many([_rec(2, datetime(2018, 5, 2, tzinfo=UTC), 2.5)])
    sink.append_many([])

    rows = list(sink.scan())
    assert [r["id"] for r in rows] == [3, 1, 2]
    assert rows[1]["temp_c"] is None
    assert rows[2]["taken_at"] == datetime(2018, 5, 2, tzinfo=UTC)
    assert sink.count() == 3


def test_clear_empties_table(sink: PostgresSink) -> None:
    sink.append_many([_rec(1, datetime(2018, 5, 1, tzinfo=UTC), 1.0)])
    sink.clear()
    assert sink.count() == 0
    assert count_by_bucket(sink, ts_field="taken_at", granularity="day") == []


def test_bucket_queries_pushed_down(sink: PostgresSink) -> None:
    """Buckets are UTC, ascending, averages skip nulls."""
    sink.append_many(
        [
            _rec(1, datetime(2018, 5, 1, 0, 5, tzinfo=UTC), 10.0),
            _rec(2, datetime(2018, 5, 1, 0, 55, tzinfo=UTC), 20.0),
            _rec(3, datetime(2018, 5, 1, 3, 0, tzinfo=UTC), None),
            _rec(4, datetime(2018, 6, 3, 12, 0, tzinfo=UTC), 4.0),
        ]
    )
    assert count_by_bucket(sink, ts_field="taken_at", granularity="hour") == [
        (datetime(2018, 5, 1, 0, tzinfo=UTC), 2),
        (datetime(2018, 5, 1, 3, tzinfo=UTC), 1),
        (datetime(2018, 6, 3, 12, tzinfo=UTC), 1),
    ]
    assert avg_by_bucket(sink, ts_field="taken_at", value_field="temp_c", granularity="hour")[1] == (
        datetime(2018, 5, 1, 3, tzinfo=UTC),
        None,
    )
    assert avg_by_bucket(sink, ts_field="taken_at", value_field="temp_c", granularity="month") == [
        (datetime(2018, 5, 1, tzinfo=UTC), pytest.approx(15.0)),
        (datetime(2018, 6, 1, tzinfo=UTC), pytest.approx(4.0)),
    ]


def test_session_time_zone_does_not_move_buckets(conn: psycopg.Connection, sink: PostgresSink) -> None:
    """23:30 UTC stays on its UTC day whatever the session TimeZone is."""
    sink.append_many([_rec(1, datetime(2018, 5, 31, 23, 30, tzinfo=UTC), 1.0)])
    conn.execute("SET TIME ZONE 'Asia/Tokyo'")
    assert count_by_bucket(sink, ts_field="taken_at", granularity="day") == [(datetime(2018, 5, 31, tzinfo=UTC), 1)]


def test_date_column_buckets(conn: psycopg.Connection) -> None:
    schema = RecordSchema("test_readings", [FieldSpec("d", FieldType.date), FieldSpec("n", FieldType.integer)])
    create_sink_table(conn, schema=schema, table_name="test_readings", replace=True)
    sink = PostgresSink(conn, table_name="test_readings", schema=schema)
    sink.append_many(
        [
            TypedRecord(values={"d": date(2018, 5, 3), "n": 1}, source_row=1),
            TypedRecord(values={"d": date(2018, 5, 30), "n": 3}, source_row=2),
        ]
    )
    assert avg_by_bucket(sink, ts_field="d", value_field="n", granularity="month") == [
        (datetime(2018, 5, 1, tzinfo=UTC), pytest.approx(2.0))
    ]


def test_constraint_violation_is_sink_error(sink: PostgresSink) -> None:
    """A NULL in a NOT NULL column fails the whole batch and nothing from it is kept."""
    with pytest.raises(SinkError):
        sink.append_many([_rec(1, datetime(2018, 5, 1, tzinfo=UTC), 1.0), _rec(2, None, 1.0)])  # type: ignore[arg-type]
    assert sink.count() == 0


def test_missing_table_is_sink_error(conn: psycopg.Connection, readings_schema: RecordSchema) -> None:
    sink = PostgresSink(conn, table_name="test_missing_table", schema=readings_schema)
    with pytest.raises(SinkError):
        sink.count()
