from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from etl_pipeline.config import PipelineConfig
from etl_pipeline.errors import CoercionError, RowScopedError, SchemaViolation
from etl_pipeline.parsing.paths import PathExpr, compile_path
from etl_pipeline.parsing.primitives import (
    normalize_cell,
    parse_date,
    parse_float,
    parse_int,
    parse_text,
    parse_timestamp,
)
from etl_pipeline.parsing.types import FieldType, RawRecord, RejectCode, RejectRow, TypedRecord

# Typing:
# Transform is a unit normalization run on an already coerced value.
Transform = Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Any given field's configurable expectations."""
    name: str                           # output name of this field.
    type: FieldType                     # what to coerce the raw value into.
    nullable: bool = True               # whether `None` is an accepted value.
    source: str | None = None           # path expression to the raw value, defaults to the `name` key.
    transform: Transform | None = None  # unit normalization, applied after coercion.
    path: PathExpr = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # frozen: compile once via object.__setattr__
        # without `source` the name is a plain key, never parsed as a path
        path = compile_path(self.source) if self.source is not None else PathExpr(text=self.name, steps=(self.name,))
        object.__setattr__(self, "path", path)

    def coerce(self, record_fields: Any, config: PipelineConfig) -> Any:
        """
        Fetch, normalize, coerce, then transform this field's value.

        Raises `SchemaViolation` for a missing required value and `CoercionError`
        for a value that fails its type or its transform.
        """
        raw_v = normalize_cell(self.path.evaluate(record_fields), config.null_strings)
        if raw_v is None:
            if self.nullable:
                return None
            raise SchemaViolation(f"{self.name}: missing required value at {self.path}")

        v = _coerce_type(raw_v, self, config)
        if self.transform is None:
            return v
        try:
            return self.transform(v)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise CoercionError(f"{self.name}: transform {_name_of(self.transform)} failed on {v!r}: {e}") from e


@dataclass(frozen=True, slots=True)
class RecordSchema:
    """
    Ordered field list identifying a target table shape.

    Rejection order is always in:
    - 1st: a decode error carried by the `RawRecord`
    - 2nd: the first failing field in `fields` order, either
      `schema_violation` (required but missing) or `coercion_error` (type/format/transform)
    """
    name: str
    fields: Sequence[FieldSpec]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        seen: set[str] = set()
        dups: list[str] = []
        for f in self.fields:
            if f.name in seen:
                dups.append(f.name)
            seen.add(f.name)
        if dups:
            raise ValueError(f"schema {self.name!r} has duplicate field names: {sorted(set(dups))}")
        if not self.fields:
            raise ValueError(f"schema {self.name!r} has no fields")

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def field(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"schema {self.name!r} has no field {name!r}")

    def coerce(self, raw: RawRecord, config: PipelineConfig) -> TypedRecord | RejectRow:
        """
        Coerce a decoded row.
        Returns an accepted `TypedRecord`, or a rejected `RejectRow` (upon any early return).
        """
        payload = _raw_payload(raw)

        if raw.decode_error is not None:
            return RejectRow(
                reason_code=RejectCode.decode_error,
                reason_detail=raw.decode_error,
                source_row=raw.source_row,
                raw_payload=payload,
            )

        out: dict[str, Any] = {}
        for f in self.fields:
            try:
                out[f.name] = f.coerce(raw.fields, config)
            except RowScopedError as e:
                return RejectRow(
                    reason_code=e.code,
                    reason_detail=e.detail,
                    source_row=raw.source_row,
                    raw_payload=payload,
                )

        return TypedRecord(values=out, source_row=raw.source_row)


def _coerce_type(v: Any, spec: FieldSpec, config: PipelineConfig) -> Any:
    """Dispatch on the declared `FieldType`."""
    if spec.type is FieldType.integer:
        return parse_int(v, field=spec.name)
    if spec.type is FieldType.float:
        return parse_float(v, field=spec.name)
    if spec.type is FieldType.string:
        return parse_text(v, field=spec.name)
    if spec.type is FieldType.timestamp:
        return parse_timestamp(v, field=spec.name, formats=config.timestamp_formats)
    if spec.type is FieldType.date:
        return parse_date(v, field=spec.name, formats=config.date_formats)
    raise TypeError(f"unsupported field type: {spec.type!r}")


def _raw_payload(raw: RawRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {"fields": dict(raw.fields)}
    if raw.raw_text is not None:
        payload["raw_text"] = raw.raw_text
    return payload


def _name_of(fn: Transform) -> str:
    return getattr(fn, "__name__", repr(fn))
