from __future__ import annotations

import logging

from psycopg import Connection, sql

from etl_pipeline.parsing.schema import RecordSchema
from etl_pipeline.parsing.types import FieldType

logger = logging.getLogger(__name__)

# column type per declared field type
PG_TYPES: dict[FieldType, str] = {
    FieldType.integer: "bigint",
    FieldType.float: "double precision",
    FieldType.string: "text",
    FieldType.timestamp: "timestamptz",
    FieldType.date: "date",
}

# insertion order column, scans sort on it
SEQ_COLUMN = "load_seq"


def create_table_sql(schema: RecordSchema, table_name: str) -> sql.Composed:
    """
    `CREATE TABLE IF NOT EXISTS` for a sink table shaped like `schema`.

    Identifiers are composed with `sql.Identifier` only, column types come from the fixed `PG_TYPES`.
    """
    cols: list[sql.Composable] = [
        sql.SQL("{} bigserial PRIMARY KEY").format(sql.Identifier(SEQ_COLUMN)),
    ]
    for f in schema.fields:
        if f.name == SEQ_COLUMN:
            raise ValueError(f"field name {SEQ_COLUMN!r} is reserved for sink tables")
        cols.append(
            sql.SQL("{name} {type}{null}").format(
                name=sql.Identifier(f.name),
                type=sql.SQL(PG_TYPES[f.type]),
                null=sql.SQL("") if f.nullable else sql.SQL(" NOT NULL"),
            )
        )
    return sql.SQL("CREATE TABLE IF NOT EXISTS {tbl} ({cols})").format(
        tbl=sql.Identifier(table_name),
        cols=sql.SQL(", ").join(cols),
    )


def create_sink_table(conn: Connection, *, schema: RecordSchema, table_name: str, replace: bool = False) -> None:
    """
    Create (or with `replace=True`, drop and re-create) the sink table for `schema`. Commits.
    """
    stmts: list[sql.Composable] = []
    if replace:
        stmts.append(sql.SQL("DROP TABLE IF EXISTS {tbl}").format(tbl=sql.Identifier(table_name)))
    stmts.append(create_table_sql(schema, table_name))

    with conn.cursor() as cur:
        for i, stmt in enumerate(stmts, 1):
            try:
                cur.execute(stmt)
            except Exception as e:
                conn.rollback()
                raise RuntimeError(
                    f"Sink table init failed for {table_name} on statement #{i}\n"
                    f"Postgres raised with: {e}\n"
                ) from e
    conn.commit()
    logger.info("sink table %s ready (replace=%s)", table_name, replace)
