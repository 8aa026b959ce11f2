from __future__ import annotations

from etl_pipeline.ingest.readers import JsonFormat
from etl_pipeline.parsing.registry import TableSpec
from etl_pipeline.parsing.schema import FieldSpec, RecordSchema
from etl_pipeline.parsing.types import FieldType
from etl_pipeline.parsing.units import kelvin_to_celsius, kelvin_to_fahrenheit

# One OpenWeatherMap-style observation per JSON line. Temperatures arrive in Kelvin.
WEATHER_FORMAT = JsonFormat()

WEATHER_SCHEMA = RecordSchema(
    name="weather",
    fields=[
        # `time` is epoch seconds in the feed, ISO strings are accepted too
        FieldSpec("observation_time", FieldType.timestamp, nullable=False, source="time"),
        FieldSpec("city_id", FieldType.integer, nullable=False, source="city.id"),
        FieldSpec("city_name", FieldType.string, source="city.name"),
        FieldSpec("country", FieldType.string, source="city.country"),
        FieldSpec("city_lat", FieldType.float, source="city.coord.lat"),
        FieldSpec("city_lon", FieldType.float, source="city.coord.lon"),
        FieldSpec("clouds", FieldType.integer, source="clouds.all"),
        FieldSpec("weather_main", FieldType.string, source="weather[0].main"),
        FieldSpec("weather_desc", FieldType.string, source="weather[0].description"),

        FieldSpec("temp_avg_c", FieldType.float, source="main.temp", transform=kelvin_to_celsius),
        FieldSpec("temp_min_c", FieldType.float, source="main.temp_min", transform=kelvin_to_celsius),
        FieldSpec("temp_max_c", FieldType.float, source="main.temp_max", transform=kelvin_to_celsius),
        FieldSpec("temp_avg_f", FieldType.float, source="main.temp", transform=kelvin_to_fahrenheit),

        FieldSpec("wind_dir", FieldType.float, source="wind.deg"),
        FieldSpec("wind_speed", FieldType.float, source="wind.speed"),
    ],
)

WEATHER_TABLE = TableSpec(table_name="weather", schema=WEATHER_SCHEMA, input_format=WEATHER_FORMAT)
