from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Iterable

from etl_pipeline.errors import CoercionError


_DEFAULT_NULL_STRINGS = ("", "null")


def normalize_cell(v: Any, null_strings: Iterable[str] = _DEFAULT_NULL_STRINGS) -> Any:
    """
    Transform a decoded cell from CSV/JSONL into normalized shape.

    Strings are trimmed; any of `null_strings` (case-insensitive) becomes `None`.
    Non-strings (JSON numbers, objects, arrays) pass through unchanged.
    """
    if v is None:
        return None
    if isinstance(v, str):
        s = v.strip()
        if s.lower() in {n.lower() for n in null_strings}:
            return None
        return s
    return v


## -- numbers

def parse_int(v: Any, *, field: str) -> int:
    """Parse integers. Raise on fractional, exponent, or non numeric input."""
    if isinstance(v, bool):
        raise CoercionError(f"{field}: expected integer, got boolean {v!r}")
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        # JSON `12.0` is fine, `12.5` is not
        if math.isfinite(v) and v.is_integer():
            return int(v)
        raise CoercionError(f"{field}: invalid integer value {v!r}")
    if isinstance(v, str):
        s = v.strip()
        # Non `int` guard: "12.3" or "1e-4" should fail, not be sneakily coerced to `int`
        if "." in s or "e" in s.lower():
            raise CoercionError(f"{field}: invalid integer value {v!r}")
        try:
            return int(s)
        except ValueError:
            raise CoercionError(f"{field}: invalid integer value {v!r}") from None
    raise CoercionError(f"{field}: expected integer, got {type(v).__name__}")


def parse_float(v: Any, *, field: str) -> float:
    """Parse finite floats from numbers or numeric strings."""
    if isinstance(v, bool):
        raise CoercionError(f"{field}: expected number, got boolean {v!r}")
    if isinstance(v, (int, float)):
        out = float(v)
    elif isinstance(v, str):
        try:
            out = float(v.strip())
        except ValueError:
            raise CoercionError(f"{field}: invalid numeric value {v!r}") from None
    else:
        raise CoercionError(f"{field}: expected number, got {type(v).__name__}")

    if not math.isfinite(out):
        raise CoercionError(f"{field}: non-finite numeric value {v!r}")
    return out


## -- text

def parse_text(v: Any, *, field: str) -> str:
    """
    Text from any JSON scalar. Nested objects/arrays are rejected, they need a path
    expression to reach a scalar first.
    """
    if isinstance(v, str):
        return v
    if isinstance(v, (dict, list, tuple)):
        raise CoercionError(f"{field}: expected text, got nested {type(v).__name__}")
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


## -- time

def parse_timestamp(v: Any, *, field: str, formats: Iterable[str]) -> datetime:
    """
    Try each of `formats` in order, first match wins. Always returns an aware UTC `datetime`.

    Format tokens:
    - `"iso"`:    `2026-02-10T12:34:56Z`, `2026-02-10 12:34:56+02:00`, `2026-02-10T12:34:56`
    - `"epoch"`:  seconds since the Unix epoch (JSON number or digit string)
    - otherwise a `strptime` pattern

    Assumption: timestamps without an offset are UTC. Offsets are converted to UTC,
    the instant itself is never shifted.
    """
    for fmt in formats:
        dt = _try_timestamp(v, fmt)
        if dt is not None:
            if dt.tzinfo is None:
                return dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)
    raise CoercionError(f"{field}: invalid timestamp {v!r} (tried {', '.join(formats)})")


def parse_date(v: Any, *, field: str, formats: Iterable[str]) -> date:
    """Try each of `formats` in order, first match wins. `"iso"` means `YYYY-MM-DD`."""
    if isinstance(v, str):
        s = v.strip()
        for fmt in formats:
            try:
                if fmt == "iso":
                    return date.fromisoformat(s)
                if fmt == "epoch":
                    continue
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
    raise CoercionError(f"{field}: invalid date {v!r} (tried {', '.join(formats)})")


def _try_timestamp(v: Any, fmt: str) -> datetime | None:
    """One format attempt. `None` on no match."""
    if fmt == "epoch":
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            seconds: float = v
        elif isinstance(v, str) and v.strip().lstrip("-").isdigit():
            seconds = int(v.strip())
        else:
            return None
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(v, str):
        return None

    if fmt == "iso":
        # normalization, convert some common non-conformitory iso
        s = v.strip().replace("Z", "+00:00").replace(" ", "T", 1)
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            return None

    try:
        return datetime.strptime(v.strip(), fmt)
    except ValueError:
        return None
