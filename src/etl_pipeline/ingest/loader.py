from __future__ import annotations

import logging
from contextlib import closing
from pathlib import Path
from typing import BinaryIO, Iterable

from etl_pipeline.config import PipelineConfig
from etl_pipeline.errors import IOFailure, SinkError
from etl_pipeline.ingest.readers import InputFormat, decode
from etl_pipeline.ingest.report import LoadReport, RowError
from etl_pipeline.parsing.schema import RecordSchema
from etl_pipeline.parsing.types import RawRecord, RejectRow, TypedRecord
from etl_pipeline.sinks.base import Sink

logger = logging.getLogger(__name__)


class _Tally:
    """Running counts for one load, frozen into a `LoadReport` at the end (or on failure)."""

    def __init__(self, table_name: str, max_errors: int) -> None:
        self.table_name = table_name
        self.max_errors = max_errors
        self.accepted = 0
        self.rejected = 0
        self.errors: list[RowError] = []
        self.truncated = False

    def reject(self, r: RejectRow) -> None:
        self.rejected += 1
        logger.debug("%s row %d rejected (%s): %s", self.table_name, r.source_row, r.reason_code.value, r.reason_detail)
        if len(self.errors) < self.max_errors:
            self.errors.append(RowError(row_index=r.source_row, reason_code=r.reason_code, reason=r.reason_detail))
        elif not self.truncated:
            self.truncated = True
            logger.warning(
                "%s: more than %d rejected rows, further reasons are counted but not kept",
                self.table_name,
                self.max_errors,
            )

    def report(self) -> LoadReport:
        return LoadReport(
            table_name=self.table_name,
            rows_accepted=self.accepted,
            rows_rejected=self.rejected,
            first_errors=tuple(self.errors),
            errors_truncated=self.truncated,
        )


def load_records(
    records: Iterable[RawRecord],
    *,
    schema: RecordSchema,
    sink: Sink,
    config: PipelineConfig | None = None,
) -> LoadReport:
    """
    Coerce decoded rows and append the accepted ones to `sink`:
      - Coerce each row against `schema`,
            - invalid rows -> counted and (bounded) recorded in the report,
            - valid rows -> appended to the sink in input order, in batches,
      - Return the `LoadReport` once `records` is exhausted.

    No deduplication: loading the same rows twice appends them twice.
    Raises `IOFailure` (carrying the partial report) on a read fault or a sink fault.
    Will not raise on invalid data.
    """
    config = config or PipelineConfig()
    tally = _Tally(schema.name, config.max_reported_errors)
    batch: list[TypedRecord] = []

    def flush() -> None:
        if batch:
            sink.append_many(batch)
            tally.accepted += len(batch)
            batch.clear()

    logger.info("loading %s into %s", schema.name, sink)
    try:
        try:
            for raw in records:
                res = schema.coerce(raw, config)
                if isinstance(res, TypedRecord):
                    batch.append(res)
                    if len(batch) >= config.batch_size:
                        flush()
                else:
                    tally.reject(res)
        except OSError:
            # keep what was read before the fault
            flush()
            raise
        flush()
    except (OSError, SinkError) as e:
        report = tally.report()
        logger.error("%s: load failed after %d rows: %s", schema.name, report.rows_total, e)
        raise IOFailure(f"{schema.name}: load failed after {report.rows_total} rows: {e}", report=report) from e

    report = tally.report()
    logger.info(report.render_one_line())
    return report


def load_stream(
    stream: BinaryIO,
    fmt: InputFormat,
    *,
    schema: RecordSchema,
    sink: Sink,
    config: PipelineConfig | None = None,
    replace: bool = False,
) -> LoadReport:
    """
    Decode `stream` per `fmt` and load it.

    `replace=True` clears the sink first, making the load repeatable (replace-then-load).
    """
    config = config or PipelineConfig()
    if replace:
        try:
            sink.clear()
        except SinkError as e:
            raise IOFailure(f"{schema.name}: could not clear sink: {e}", report=LoadReport(table_name=schema.name)) from e

    records = decode(stream, fmt, max_record_bytes=config.max_record_bytes)
    with closing(records):  # type: ignore[type-var]
        return load_records(records, schema=schema, sink=sink, config=config)


def load_file(
    path: Path,
    fmt: InputFormat,
    *,
    schema: RecordSchema,
    sink: Sink,
    config: PipelineConfig | None = None,
    replace: bool = False,
) -> LoadReport:
    """End-to-end file loading: open, decode, coerce, append. See `load_stream`."""
    try:
        f = Path(path).open("rb")
    except OSError as e:
        raise IOFailure(f"{schema.name}: cannot open {path}: {e}", report=LoadReport(table_name=schema.name)) from e
    with f:
        return load_stream(f, fmt, schema=schema, sink=sink, config=config, replace=replace)
