from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from etl_pipeline.errors import RegistryError
from etl_pipeline.ingest.readers import InputFormat
from etl_pipeline.parsing.schema import RecordSchema


@dataclass(frozen=True)
class TableSpec:
    """Contains a sink table's expectations: its schema and the input format it loads from."""
    table_name: str
    schema: RecordSchema
    input_format: InputFormat


class SchemaRegistry:
    """
    Declares target record shapes by name.

    Registration happens once at startup. After `freeze()` the registry is read-only
    and may be shared by any number of concurrent loads.
    """

    def __init__(self) -> None:
        self._specs: dict[str, TableSpec] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, spec: TableSpec) -> TableSpec:
        with self._lock:
            if self._frozen:
                raise RegistryError(f"registry is frozen, cannot register {spec.table_name!r}")
            if spec.table_name in self._specs:
                raise RegistryError(f"table already registered: {spec.table_name!r}")
            self._specs[spec.table_name] = spec
        return spec

    def freeze(self) -> "SchemaRegistry":
        with self._lock:
            self._frozen = True
            # swap in a read-only view
            self._specs = MappingProxyType(dict(self._specs))  # type: ignore[assignment]
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, table_name: str) -> TableSpec:
        try:
            return self._specs[table_name]
        except KeyError:
            raise RegistryError(f"Unknown table_name: {table_name}") from None

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._specs))

    def as_mapping(self) -> Mapping[str, TableSpec]:
        return MappingProxyType(dict(self._specs))

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._specs


def builtin_registry() -> SchemaRegistry:
    """
    A frozen registry with the bundled profiles. `FieldSpec`s are defined inside the profile modules.
    """
    from .profiles.trips import TRIPS_TABLE
    from .profiles.weather import WEATHER_TABLE

    reg = SchemaRegistry()
    reg.register(TRIPS_TABLE)
    reg.register(WEATHER_TABLE)
    return reg.freeze()
