from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class RejectCode(str, Enum):
    """Typed rejection classifications."""
    decode_error = "decode_error"           # malformed input syntax, incl. field count mismatch
    coercion_error = "coercion_error"       # wrong type, bad format, or a failed unit transform
    schema_violation = "schema_violation"   # required field missing or null


class FieldType(str, Enum):
    """Semantic types a `FieldSpec` can declare."""
    integer = "integer"
    float = "float"
    string = "string"
    timestamp = "timestamp"
    date = "date"


@dataclass(frozen=True, slots=True)
class RawRecord:
    """
    One decoded input row, untyped.

    `fields` holds strings (delimited text) or JSON values (nested objects/arrays kept as-is).
    A non-`None` `decode_error` means the decoder could not read this row; the loader rejects it.
    """
    source_row: int                 # 1-based ordinal of the record in its stream
    fields: Mapping[str, Any]
    decode_error: str | None = None
    raw_text: str | None = None     # the undecoded record, kept for reject lineage


@dataclass(frozen=True, slots=True)
class TypedRecord:
    """Accepted row: every value coerced to its declared type."""
    values: dict[str, Any]
    source_row: int

    def to_mapping(self) -> Mapping[str, Any]:
        """Values ready for a sink append. Keys match the schema's field names."""
        return self.values


@dataclass(frozen=True, slots=True)
class RejectRow:
    """Rejected row's contents."""
    reason_code: RejectCode
    reason_detail: str
    source_row: int
    raw_payload: Mapping[str, Any]  # the raw unmutated row being coerced
