from __future__ import annotations

from typing import Any, Iterator, Mapping, Protocol, Sequence

from etl_pipeline.parsing.types import TypedRecord
from etl_pipeline.query.buckets import BucketAverage, BucketCount


class Sink(Protocol):
    """
    Append-only tabular destination for accepted rows.

    Order of `scan()` equals append order. Implementations answer the two bucket
    aggregates themselves so a database sink can push them down.
    """

    def append_many(self, records: Sequence[TypedRecord]) -> None: ...

    def clear(self) -> None: ...

    def count(self) -> int: ...

    def scan(self) -> Iterator[Mapping[str, Any]]: ...

    def count_by_bucket(self, *, ts_field: str, granularity: str) -> list[BucketCount]: ...

    def avg_by_bucket(self, *, ts_field: str, value_field: str, granularity: str) -> list[BucketAverage]: ...
