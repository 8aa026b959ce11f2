from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Literal, Mapping

from etl_pipeline.parsing.schema import RecordSchema
from etl_pipeline.parsing.types import FieldType

if TYPE_CHECKING:
    from etl_pipeline.sinks.base import Sink

Granularity = Literal["hour", "day", "month"]
GRANULARITIES: tuple[str, ...] = ("hour", "day", "month")

# (bucket start in UTC, aggregate)
BucketCount = tuple[datetime, int]
BucketAverage = tuple[datetime, float | None]


def truncate(ts: datetime | date, granularity: str) -> datetime:
    """
    Truncate to the start of its hour/day/month, in UTC.

    Aware timestamps are converted to UTC first (same instant). Naive ones are taken as UTC.
    A `date` is treated as midnight UTC.
    """
    check_granularity(granularity)
    if isinstance(ts, datetime):
        dt = ts.astimezone(timezone.utc) if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)
    else:
        dt = datetime(ts.year, ts.month, ts.day, tzinfo=timezone.utc)

    if granularity == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def check_granularity(granularity: str) -> None:
    if granularity not in GRANULARITIES:
        raise ValueError(f"unknown granularity {granularity!r}, expected one of {GRANULARITIES}")


def check_bucket_fields(schema: RecordSchema, ts_field: str, value_field: str | None = None) -> None:
    """Raise `ValueError` unless `ts_field` is a timestamp/date field and `value_field` is numeric."""
    try:
        ts_spec = schema.field(ts_field)
    except KeyError as e:
        raise ValueError(str(e)) from None
    if ts_spec.type not in (FieldType.timestamp, FieldType.date):
        raise ValueError(f"{ts_field} is {ts_spec.type.value}, expected timestamp or date")

    if value_field is None:
        return
    try:
        v_spec = schema.field(value_field)
    except KeyError as e:
        raise ValueError(str(e)) from None
    if v_spec.type not in (FieldType.integer, FieldType.float):
        raise ValueError(f"{value_field} is {v_spec.type.value}, expected integer or float")


## -- in-process aggregation (used by sinks without a query engine)

def aggregate_counts(rows: Iterable[Mapping[str, Any]], *, ts_field: str, granularity: str) -> list[BucketCount]:
    """Count rows per bucket. Rows with a null timestamp are not bucketed."""
    check_granularity(granularity)
    counts: dict[datetime, int] = defaultdict(int)
    for r in rows:
        ts = r.get(ts_field)
        if ts is None:
            continue
        counts[truncate(ts, granularity)] += 1
    return sorted(counts.items())


def aggregate_averages(
    rows: Iterable[Mapping[str, Any]],
    *,
    ts_field: str,
    value_field: str,
    granularity: str,
) -> list[BucketAverage]:
    """
    Average `value_field` per bucket. Null values are skipped, like SQL `AVG`:
    a bucket holding only nulls averages to `None`.
    """
    check_granularity(granularity)
    sums: dict[datetime, float] = defaultdict(float)
    counts: dict[datetime, int] = defaultdict(int)
    for r in rows:
        ts = r.get(ts_field)
        if ts is None:
            continue
        b = truncate(ts, granularity)
        v = r.get(value_field)
        counts.setdefault(b, 0)
        if v is None:
            continue
        sums[b] += v
        counts[b] += 1
    return [(b, (sums[b] / n) if n else None) for b, n in sorted(counts.items())]


## -- query surface: read-only, delegates to the sink

def count_by_bucket(sink: "Sink", *, ts_field: str, granularity: str) -> list[BucketCount]:
    """`(bucket, row count)` pairs, ascending by bucket. An empty sink gives `[]`."""
    check_granularity(granularity)
    return sink.count_by_bucket(ts_field=ts_field, granularity=granularity)


def avg_by_bucket(sink: "Sink", *, ts_field: str, value_field: str, granularity: str) -> list[BucketAverage]:
    """`(bucket, average of value_field)` pairs, ascending by bucket. An empty sink gives `[]`."""
    check_granularity(granularity)
    return sink.avg_by_bucket(ts_field=ts_field, value_field=value_field, granularity=granularity)
