from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Iterator, Mapping, Sequence

import psycopg
from psycopg import Connection, sql
from psycopg.rows import dict_row

from etl_pipeline.db.initialize import SEQ_COLUMN
from etl_pipeline.errors import SinkError
from etl_pipeline.parsing.schema import RecordSchema
from etl_pipeline.parsing.types import FieldType, TypedRecord
from etl_pipeline.query.buckets import BucketAverage, BucketCount, check_bucket_fields, check_granularity

logger = logging.getLogger(__name__)


class PostgresSink:
    """
    A Postgres table as an append-only sink.

    Table/column identifiers are derived ONLY from the `RecordSchema` and are composed with `sql.Identifier`.
    Values are parameterized. Every `append_many` is committed, so rows appended before a
    later failure stay in the table.
    """

    def __init__(self, conn: Connection, *, table_name: str, schema: RecordSchema) -> None:
        self.conn = conn
        self.table_name = table_name
        self.schema = schema
        self._tbl = sql.Identifier(table_name)

    def __repr__(self) -> str:
        return f"PostgresSink({self.table_name!r})"

    def append_many(self, records: Sequence[TypedRecord]) -> None:
        if not records:
            return
        cols = self.schema.field_names
        query = sql.SQL("INSERT INTO {tbl} ({cols}) VALUES ({vals})").format(
            tbl=self._tbl,
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in cols),
        )
        params = [tuple(r.values.get(c) for c in cols) for r in records]

        def _insert() -> None:
            with self.conn.cursor() as cur:
                cur.executemany(query, params)  # sequential batch processing

        self._run(_insert, what=f"append {len(params)} rows")

    def clear(self) -> None:
        """Truncate, the replace half of replace-then-load."""
        def _truncate() -> None:
            self.conn.execute(sql.SQL("TRUNCATE TABLE {tbl} RESTART IDENTITY").format(tbl=self._tbl))

        self._run(_truncate, what="truncate")

    def count(self) -> int:
        row = self._fetchall(sql.SQL("SELECT COUNT(*) FROM {tbl}").format(tbl=self._tbl))
        return int(row[0][0])

    def scan(self) -> Iterator[Mapping[str, Any]]:
        """Rows in append order."""
        query = sql.SQL("SELECT {cols} FROM {tbl} ORDER BY {seq}").format(
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in self.schema.field_names),
            tbl=self._tbl,
            seq=sql.Identifier(SEQ_COLUMN),
        )
        try:
            with self.conn.cursor(row_factory=dict_row) as cur:
                rows = cur.execute(query).fetchall()
        except psycopg.Error as e:
            self._rollback()
            raise SinkError(f"{self.table_name}: scan failed: {e}") from e
        return iter(rows)

    def count_by_bucket(self, *, ts_field: str, granularity: str) -> list[BucketCount]:
        check_granularity(granularity)
        check_bucket_fields(self.schema, ts_field)
        query = sql.SQL(
            "SELECT date_trunc({gran}, {ts}) AS bucket, COUNT(*)\n"
            "FROM {tbl}\n"
            "WHERE {col} IS NOT NULL\n"
            "GROUP BY 1\n"
            "ORDER BY 1"
        ).format(
            gran=sql.Literal(granularity),  # whitelisted by check_granularity
            ts=self._utc_expr(ts_field),
            tbl=self._tbl,
            col=sql.Identifier(ts_field),
        )
        rows = self._fetchall(query)
        return [(b.replace(tzinfo=timezone.utc), int(n)) for b, n in rows]

    def avg_by_bucket(self, *, ts_field: str, value_field: str, granularity: str) -> list[BucketAverage]:
        check_granularity(granularity)
        check_bucket_fields(self.schema, ts_field, value_field)
        query = sql.SQL(
            "SELECT date_trunc({gran}, {ts}) AS bucket, AVG({v})::double precision\n"
            "FROM {tbl}\n"
            "WHERE {col} IS NOT NULL\n"
            "GROUP BY 1\n"
            "ORDER BY 1"
        ).format(
            gran=sql.Literal(granularity),
            ts=self._utc_expr(ts_field),
            v=sql.Identifier(value_field),
            tbl=self._tbl,
            col=sql.Identifier(ts_field),
        )
        rows = self._fetchall(query)
        return [(b.replace(tzinfo=timezone.utc), None if avg is None else float(avg)) for b, avg in rows]

    ## -- helpers

    def _utc_expr(self, ts_field: str) -> sql.Composable:
        """Wall-clock UTC `timestamp` expression for a timestamp or date column."""
        col = sql.Identifier(ts_field)
        if self.schema.field(ts_field).type is FieldType.date:
            return sql.SQL("{}::timestamp").format(col)
        return sql.SQL("({} AT TIME ZONE 'UTC')").format(col)

    def _fetchall(self, query: sql.Composable, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        try:
            with self.conn.cursor() as cur:
                return cur.execute(query, params).fetchall()
        except psycopg.Error as e:
            self._rollback()
            raise SinkError(f"{self.table_name}: query failed: {e}") from e

    def _run(self, fn: Any, *, what: str) -> None:
        """Run a write, commit on success, rollback and raise `SinkError` on failure."""
        try:
            fn()
            self.conn.commit()
        except psycopg.Error as e:
            self._rollback()
            logger.error("%s: %s failed: %s", self.table_name, what, e)
            raise SinkError(f"{self.table_name}: {what} failed: {e}") from e

    def _rollback(self) -> None:
        # a closed/broken connection has nothing to roll back
        if not (self.conn.closed or self.conn.broken):
            self.conn.rollback()
