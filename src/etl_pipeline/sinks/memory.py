from __future__ import annotations

import threading
from typing import Any, Iterator, Mapping, Sequence

from etl_pipeline.parsing.schema import RecordSchema
from etl_pipeline.parsing.types import TypedRecord
from etl_pipeline.query.buckets import (
    BucketAverage,
    BucketCount,
    aggregate_averages,
    aggregate_counts,
    check_bucket_fields,
)


class MemorySink:
    """List-backed sink. Useful for tests and for small in-process pipelines."""

    def __init__(self, schema: RecordSchema) -> None:
        self.schema = schema
        self._rows: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"MemorySink({self.schema.name!r}, rows={len(self._rows)})"

    def append_many(self, records: Sequence[TypedRecord]) -> None:
        rows = [dict(r.to_mapping()) for r in records]
        with self._lock:
            self._rows.extend(rows)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def count(self) -> int:
        return len(self._rows)

    def scan(self) -> Iterator[Mapping[str, Any]]:
        # snapshot: appends during iteration are not seen
        with self._lock:
            rows = list(self._rows)
        return iter(rows)

    def count_by_bucket(self, *, ts_field: str, granularity: str) -> list[BucketCount]:
        check_bucket_fields(self.schema, ts_field)
        return aggregate_counts(self.scan(), ts_field=ts_field, granularity=granularity)

    def avg_by_bucket(self, *, ts_field: str, value_field: str, granularity: str) -> list[BucketAverage]:
        check_bucket_fields(self.schema, ts_field, value_field)
        return aggregate_averages(self.scan(), ts_field=ts_field, value_field=value_field, granularity=granularity)
