from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from etl_pipeline.config import PipelineConfig
from etl_pipeline.db.connect import connect
from etl_pipeline.db.initialize import create_sink_table
from etl_pipeline.errors import IOFailure, SinkError
from etl_pipeline.ingest.loader import load_file
from etl_pipeline.parsing.registry import builtin_registry
from etl_pipeline.query.buckets import GRANULARITIES, avg_by_bucket, count_by_bucket
from etl_pipeline.sinks.postgres import PostgresSink


def _configure_logging() -> None:
    """Configure root logging once for the CLI process."""
    log_level = os.getenv("LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    """
    A CLI for loading bundled profiles into Postgres sink tables and querying them.

    The `cmd` options are:
    ## load:
    Decode, coerce and append a file to the profile's sink table.
    - `--input` as the path to the data,
    - `--profile` as the table profile (schema + input format),
    - `--replace` to truncate the table first.

    A one line report prints in the terminal upon completion of a load.

    ### Example load usage:
    - `etl load --input data/sample/trips.csv --profile trips`
    - `etl load --input data/sample/weather.jsonl --profile weather --replace`

    ## db:
    - `init` creates the profile's sink table (`--replace` drops it first).

    ## query
    Time-bucketed aggregates, printed as `bucket<TAB>value` lines.
    - `etl query --profile trips --ts starttime --granularity hour`
    - `etl query --profile trips --ts starttime --granularity day --avg tripduration`
    """
    registry = builtin_registry()

    p = argparse.ArgumentParser(prog="etl")
    sub = p.add_subparsers(dest="cmd", required=True)

    # load cmd
    load = sub.add_parser("load", help="Load a file into a profile's sink table (rejects are reported).")
    load.add_argument("--input", required=True, help="Path to input file (CSV or JSONL).")
    load.add_argument("--profile", required=True, choices=registry.names())
    load.add_argument("--replace", action="store_true", help="Truncate the sink table before loading.")

    # db cmd
    db = sub.add_parser("db", help="Database utilities.")
    db_sub = db.add_subparsers(dest="db_cmd", required=True)

    db_init_p = db_sub.add_parser("init", help="Create a profile's sink table.")
    db_init_p.add_argument("--profile", required=True, choices=registry.names())
    db_init_p.add_argument("--replace", action="store_true", help="Drop the table first.")

    # query cmd
    query = sub.add_parser("query", help="Time-bucketed count or average.")
    query.add_argument("--profile", required=True, choices=registry.names())
    query.add_argument("--ts", required=True, help="Timestamp/date field to bucket on.")
    query.add_argument("--granularity", required=True, choices=GRANULARITIES)
    query.add_argument("--avg", default=None, help="Numeric field to average (counts rows when omitted).")

    args = p.parse_args(argv)
    _configure_logging()

    spec = registry.get(args.profile)

    if args.cmd == "load":
        config = PipelineConfig.from_env()
        with connect() as conn:
            sink = PostgresSink(conn, table_name=spec.table_name, schema=spec.schema)
            try:
                report = load_file(
                    Path(args.input),
                    spec.input_format,
                    schema=spec.schema,
                    sink=sink,
                    config=config,
                    replace=args.replace,
                )
            except IOFailure as e:
                print(f"load failed: {e}", file=sys.stderr)
                print(e.report.render_one_line(), file=sys.stderr)
                return 1

        print(report.render_one_line())
        for err in report.first_errors:
            print(f"  row {err.row_index} [{err.reason_code.value}] {err.reason}")
        if report.errors_truncated:
            print(f"  ... {report.rows_rejected - len(report.first_errors)} more rejected rows")
        return 0

    if args.cmd == "db" and args.db_cmd == "init":
        with connect() as conn:
            create_sink_table(conn, schema=spec.schema, table_name=spec.table_name, replace=args.replace)
        print(f"Initialized sink table {spec.table_name}")
        return 0

    if args.cmd == "query":
        with connect() as conn:
            sink = PostgresSink(conn, table_name=spec.table_name, schema=spec.schema)
            try:
                if args.avg:
                    rows = avg_by_bucket(sink, ts_field=args.ts, value_field=args.avg, granularity=args.granularity)
                else:
                    rows = count_by_bucket(sink, ts_field=args.ts, granularity=args.granularity)
            except ValueError as e:
                # unknown or wrongly typed field
                print(f"query failed: {e}", file=sys.stderr)
                return 2
            except SinkError as e:
                # missing table, lost connection
                print(f"query failed: {e}", file=sys.stderr)
                return 1

        for bucket, value in rows:
            print(f"{bucket.isoformat()}\t{'' if value is None else value}")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
