from __future__ import annotations

from etl_pipeline.ingest.readers import DelimitedFormat
from etl_pipeline.parsing.registry import TableSpec
from etl_pipeline.parsing.schema import FieldSpec, RecordSchema
from etl_pipeline.parsing.types import FieldType

# Column order of the bike-share trips export. The file carries a header, which is skipped.
TRIPS_COLUMNS: tuple[str, ...] = (
    "tripduration",
    "starttime",
    "stoptime",
    "start_station_id",
    "start_station_name",
    "start_station_latitude",
    "start_station_longitude",
    "end_station_id",
    "end_station_name",
    "end_station_latitude",
    "end_station_longitude",
    "bikeid",
    "membership_type",
    "usertype",
    "birth_year",
    "gender",
)

TRIPS_FORMAT = DelimitedFormat(
    delimiter=",",
    quotechar='"',
    skip_header=1,
    columns=TRIPS_COLUMNS,
)

TRIPS_SCHEMA = RecordSchema(
    name="trips",
    fields=[
        FieldSpec("tripduration", FieldType.integer, nullable=False),
        FieldSpec("starttime", FieldType.timestamp, nullable=False),
        FieldSpec("stoptime", FieldType.timestamp, nullable=False),

        FieldSpec("start_station_id", FieldType.integer),
        FieldSpec("start_station_name", FieldType.string),
        FieldSpec("start_station_latitude", FieldType.float),
        FieldSpec("start_station_longitude", FieldType.float),
        FieldSpec("end_station_id", FieldType.integer),
        FieldSpec("end_station_name", FieldType.string),
        FieldSpec("end_station_latitude", FieldType.float),
        FieldSpec("end_station_longitude", FieldType.float),

        FieldSpec("bikeid", FieldType.integer),
        FieldSpec("membership_type", FieldType.string),
        FieldSpec("usertype", FieldType.string),
        # blank for riders who did not give one
        FieldSpec("birth_year", FieldType.integer),
        FieldSpec("gender", FieldType.integer),
    ],
)

TRIPS_TABLE = TableSpec(table_name="trips", schema=TRIPS_SCHEMA, input_format=TRIPS_FORMAT)
