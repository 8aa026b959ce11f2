from __future__ import annotations

from typing import TYPE_CHECKING

from etl_pipeline.parsing.types import RejectCode

if TYPE_CHECKING:
    from etl_pipeline.ingest.report import LoadReport


class PipelineError(Exception):
    """Base class for everything this package raises on purpose."""


## -- row scoped: never escape a load, always end up as a `RejectRow`

class RowScopedError(PipelineError):
    """A single row could not be accepted. `code` classifies the rejection."""
    code: RejectCode = RejectCode.coercion_error

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class DecodeError(RowScopedError):
    """Malformed input syntax (bad encoding, truncated quote, wrong field count)."""
    code = RejectCode.decode_error


class CoercionError(RowScopedError):
    """Value does not match its declared type, or its unit transform failed."""
    code = RejectCode.coercion_error


class SchemaViolation(RowScopedError):
    """Required field is missing or null."""
    code = RejectCode.schema_violation


## -- fatal: terminate the load and propagate to the caller

class SinkError(PipelineError):
    """The sink refused an append or a query (connection lost, table missing, ...)."""


class IOFailure(PipelineError):
    """
    Stream-level fault during a load.

    `report` reflects the rows processed before the fault. The original
    `OSError`/`SinkError` is chained as `__cause__`.
    """

    def __init__(self, message: str, *, report: "LoadReport") -> None:
        super().__init__(message)
        self.report = report


class RegistryError(PipelineError, LookupError):
    """Unknown, duplicate, or late (post-freeze) registry operation."""
