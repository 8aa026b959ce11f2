from __future__ import annotations

import os
from dataclasses import dataclass, replace


DEFAULT_TIMESTAMP_FORMATS: tuple[str, ...] = (
    "iso",                      # 2026-02-10T12:34:56Z, 2026-02-10 12:34:56+00:00, ...
    "epoch",                    # 1456761600 (seconds, JSON number or digit string)
    "%Y-%m-%d %H:%M:%S.%f",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)
DEFAULT_DATE_FORMATS: tuple[str, ...] = ("iso", "%m/%d/%Y")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings for one load or query call.

    Passed explicitly, there is no module level instance to mutate.
    """
    batch_size: int = 500                       # accepted rows per sink append
    max_reported_errors: int = 50               # `LoadReport.first_errors` bound
    max_record_bytes: int = 1024 * 1024         # longer records become decode errors
    null_strings: tuple[str, ...] = ("", "null")  # compared case-insensitively after trimming
    timestamp_formats: tuple[str, ...] = DEFAULT_TIMESTAMP_FORMATS
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_reported_errors < 0:
            raise ValueError(f"max_reported_errors must be >= 0, got {self.max_reported_errors}")
        if self.max_record_bytes < 1:
            raise ValueError(f"max_record_bytes must be >= 1, got {self.max_record_bytes}")
        if not self.timestamp_formats or not self.date_formats:
            raise ValueError("timestamp_formats and date_formats must not be empty")

    def with_overrides(self, **changes: object) -> "PipelineConfig":
        """Copy with some settings replaced (validated again)."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """
        Build from `ETL_*` environment variables, falling back to the defaults.

        - `ETL_BATCH_SIZE`
        - `ETL_MAX_REPORTED_ERRORS`
        - `ETL_MAX_RECORD_BYTES`
        """
        defaults = cls()
        return cls(
            batch_size=_env_int("ETL_BATCH_SIZE", defaults.batch_size),
            max_reported_errors=_env_int("ETL_MAX_REPORTED_ERRORS", defaults.max_reported_errors),
            max_record_bytes=_env_int("ETL_MAX_RECORD_BYTES", defaults.max_record_bytes),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
