from __future__ import annotations

from dataclasses import dataclass, field

from etl_pipeline.parsing.types import RejectCode


@dataclass(frozen=True, slots=True)
class RowError:
    """One recorded rejection: which row, what kind, and why."""
    row_index: int
    reason_code: RejectCode
    reason: str


@dataclass(frozen=True)
class LoadReport:
    """Schema for all summary data of one load call. Immutable once returned."""
    table_name: str
    rows_accepted: int = 0
    rows_rejected: int = 0
    first_errors: tuple[RowError, ...] = field(default_factory=tuple)
    errors_truncated: bool = False      # more rejects happened than `first_errors` holds

    @property
    def rows_total(self) -> int:
        return self.rows_accepted + self.rows_rejected

    def render_one_line(self) -> str:
        """How each line of summary is formatted for the terminal."""
        return (
            f"{self.table_name}: total={self.rows_total} "
            f"accepted={self.rows_accepted} rejected={self.rows_rejected}"
        )
