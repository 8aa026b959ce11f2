from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

# A step is either an object key (`str`) or an array index (`int`).
Step = Union[str, int]


@dataclass(frozen=True, slots=True)
class PathExpr:
    """
    A compiled path into a nested JSON value, ex: `city.coord.lat` or `weather[0].main`.

    `evaluate` never raises on absent data: a missing key, an out of range index,
    or stepping into a scalar all yield `None`.
    """
    text: str
    steps: tuple[Step, ...]

    def evaluate(self, value: Any) -> Any | None:
        cur = value
        for step in self.steps:
            if isinstance(step, int):
                # `bool` is an `int`, but never a list
                if not isinstance(cur, Sequence) or isinstance(cur, (str, bytes)):
                    return None
                if step >= len(cur) or step < -len(cur):
                    return None
                cur = cur[step]
            else:
                if not isinstance(cur, Mapping) or step not in cur:
                    return None
                cur = cur[step]
        return cur

    def __str__(self) -> str:
        return self.text


def compile_path(text: str) -> PathExpr:
    """
    Compile a dotted/indexed path.

    Syntax:
    - `a.b.c`           object keys
    - `a[0]`, `a[-1]`   array indices
    - `["a.b"]`         a key holding dots or brackets (JSON string literal)

    Raises `ValueError` on a malformed expression.
    """
    s = text.strip()
    if not s:
        raise ValueError("empty path expression")

    steps: list[Step] = []
    i = 0
    n = len(s)
    expect_key = True   # a bare key is allowed at start and after a dot

    while i < n:
        ch = s[i]
        if ch == "[":
            close = _find_bracket_close(s, i)
            inner = s[i + 1:close].strip()
            if inner.startswith('"'):
                try:
                    key = json.loads(inner)
                except ValueError:
                    raise ValueError(f"bad quoted key in path {text!r}: {inner}") from None
                if not isinstance(key, str):
                    raise ValueError(f"bad quoted key in path {text!r}: {inner}")
                steps.append(key)
            else:
                try:
                    steps.append(int(inner))
                except ValueError:
                    raise ValueError(f"bad index in path {text!r}: [{inner}]") from None
            i = close + 1
            expect_key = False
        elif ch == ".":
            if expect_key:
                raise ValueError(f"empty key in path {text!r}")
            i += 1
            expect_key = True
            if i == n:
                raise ValueError(f"path ends with '.': {text!r}")
        else:
            if not expect_key:
                raise ValueError(f"missing '.' before key in path {text!r}")
            j = i
            while j < n and s[j] not in ".[":
                j += 1
            steps.append(s[i:j].strip())
            i = j
            expect_key = False

    return PathExpr(text=s, steps=tuple(steps))


def _find_bracket_close(s: str, start: int) -> int:
    """Index of the `]` matching `s[start] == '['`, skipping over a quoted key."""
    i = start + 1
    in_quote = False
    while i < len(s):
        ch = s[i]
        if in_quote:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_quote = False
        elif ch == '"':
            in_quote = True
        elif ch == "]":
            return i
        i += 1
    raise ValueError(f"unclosed '[' in path {s!r}")
