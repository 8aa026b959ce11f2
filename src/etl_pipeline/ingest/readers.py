from __future__ import annotations

import codecs
import csv
import json
import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Union

from etl_pipeline.parsing.types import RawRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_RECORD_BYTES = 1024 * 1024


@dataclass(frozen=True)
class DelimitedFormat:
    """
    Delimited text layout.

    - `columns`: field names in order. When `None`, the first skipped header record supplies them.
    - `skip_header`: leading records to skip (not counted as rows).
    - `quotechar`: `None` disables quoting.

    Delimiters are split at the byte level, so `encoding` must be ASCII compatible (utf-8, latin-1, ...).
    """
    delimiter: str = ","
    record_delimiter: str = "\n"
    quotechar: str | None = '"'
    skip_header: int = 0
    columns: tuple[str, ...] | None = None
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        if len(self.delimiter) != 1:
            raise ValueError(f"delimiter must be one character, got {self.delimiter!r}")
        if not self.record_delimiter:
            raise ValueError("record_delimiter must not be empty")
        if self.quotechar is not None and len(self.quotechar) != 1:
            raise ValueError(f"quotechar must be one character or None, got {self.quotechar!r}")
        if self.delimiter in self.record_delimiter or (
            self.quotechar is not None and self.quotechar in (self.delimiter + self.record_delimiter)
        ):
            raise ValueError("delimiter, record_delimiter and quotechar must not overlap")
        if self.skip_header < 0:
            raise ValueError(f"skip_header must be >= 0, got {self.skip_header}")
        if self.columns is not None:
            object.__setattr__(self, "columns", tuple(self.columns))
            if len(set(self.columns)) != len(self.columns):
                raise ValueError(f"duplicate column names: {self.columns}")


@dataclass(frozen=True)
class JsonFormat:
    """JSON lines: one object document per line."""
    encoding: str = "utf-8"


# input expectations for each table spec
InputFormat = Union[DelimitedFormat, JsonFormat]


def decode(stream: BinaryIO, fmt: InputFormat, *, max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES) -> Iterator[RawRecord]:
    """Dispatch on the declared format. Formats are never sniffed."""
    if isinstance(fmt, DelimitedFormat):
        return decode_delimited(stream, fmt, max_record_bytes=max_record_bytes)
    if isinstance(fmt, JsonFormat):
        return decode_json(stream, fmt, max_record_bytes=max_record_bytes)
    raise TypeError(f"unsupported input format: {fmt!r}")


def decode_delimited(
    stream: BinaryIO,
    fmt: DelimitedFormat,
    *,
    max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES,
) -> Iterator[RawRecord]:
    """
    Yields one `RawRecord` per delimited record, lazily.

    `source_row` is 1-based for the first real data record, header records and blank records are not counted.
    Rows that cannot be read (bad encoding, unterminated quote, wrong field count,
    oversized) are yielded with `decode_error` set, the stream carries on after them.
    """
    if fmt.columns is None and fmt.skip_header < 1:
        # checked eagerly, before any read
        raise ValueError("columns are required when there is no header record")
    return _iter_delimited(stream, fmt, max_record_bytes)


def decode_json(
    stream: BinaryIO,
    fmt: JsonFormat | None = None,
    *,
    max_record_bytes: int = DEFAULT_MAX_RECORD_BYTES,
) -> Iterator[RawRecord]:
    """
    Yields one `RawRecord` per JSON line, lazily.

    Fields are the document's top-level keys. Nested objects/arrays are kept as-is for path extraction.
    Blank lines are skipped and not counted.
    """
    fmt = fmt or JsonFormat()
    row = 0
    first = True
    for chunk, err in _split_records(stream, b"\n", None, max_record_bytes):
        if first:
            chunk, first = _strip_bom(chunk, fmt.encoding), False
        if err is None and not chunk.strip():
            continue

        row += 1
        if err is not None:
            yield _decode_failure(row, err, chunk, fmt.encoding)
            continue

        try:
            text = chunk.decode(fmt.encoding).strip()
        except UnicodeDecodeError as e:
            yield _decode_failure(row, f"invalid {fmt.encoding} byte sequence: {e.reason}", chunk, fmt.encoding)
            continue

        try:
            obj = json.loads(text)
        except ValueError as e:
            yield _decode_failure(row, f"invalid JSON: {e}", chunk, fmt.encoding)
            continue
        except RecursionError:
            yield _decode_failure(row, "invalid JSON: document nested too deeply", chunk, fmt.encoding)
            continue

        if not isinstance(obj, dict):
            yield _decode_failure(row, f"JSON document is not an object (got {type(obj).__name__})", chunk, fmt.encoding)
            continue

        yield RawRecord(source_row=row, fields=obj, raw_text=text)


def _iter_delimited(stream: BinaryIO, fmt: DelimitedFormat, max_record_bytes: int) -> Iterator[RawRecord]:
    enc = fmt.encoding
    record_delim = fmt.record_delimiter.encode(enc)
    quote = fmt.quotechar.encode(enc) if fmt.quotechar is not None else None

    columns = fmt.columns
    header_error: str | None = None
    skipped = 0
    row = 0
    first = True

    field_delim = fmt.delimiter.encode(enc)
    for chunk, err in _split_records(stream, record_delim, quote, max_record_bytes, field_delim):
        if first:
            chunk, first = _strip_bom(chunk, enc), False
        if record_delim == b"\n" and chunk.endswith(b"\r"):
            chunk = chunk[:-1]
        if err is None and not chunk.strip():
            continue

        ## -- header records
        if skipped < fmt.skip_header:
            skipped += 1
            if fmt.columns is None and skipped == 1:
                try:
                    names = _split_fields(chunk, fmt) if err is None else None
                except ValueError as e:
                    names, err = None, str(e)
                if names is None or len(set(names)) != len(names) or not all(n.strip() for n in names):
                    header_error = f"header record could not be read: {err or names}"
                    logger.warning(header_error)
                else:
                    columns = tuple(n.strip() for n in names)
            continue

        ## -- data records
        row += 1
        if header_error is not None or columns is None:
            yield _decode_failure(row, header_error or "no column names", chunk, enc)
            continue
        if err is not None:
            yield _decode_failure(row, err, chunk, enc)
            continue

        try:
            values = _split_fields(chunk, fmt)
        except ValueError as e:
            yield _decode_failure(row, str(e), chunk, enc)
            continue

        text = chunk.decode(enc)
        fields = dict(zip(columns, values))
        if len(values) != len(columns):
            yield RawRecord(
                source_row=row,
                fields=fields,
                decode_error=f"field count mismatch: expected {len(columns)}, got {len(values)}",
                raw_text=text,
            )
            continue

        yield RawRecord(source_row=row, fields=fields, raw_text=text)


def _split_fields(chunk: bytes, fmt: DelimitedFormat) -> list[str]:
    """
    Split one record into its field values.
    Raises `ValueError` on undecodable bytes or malformed quoting.
    """
    try:
        text = chunk.decode(fmt.encoding)
    except UnicodeDecodeError as e:
        raise ValueError(f"invalid {fmt.encoding} byte sequence: {e.reason}") from e

    if fmt.quotechar is None:
        reader = csv.reader([text], delimiter=fmt.delimiter, quoting=csv.QUOTE_NONE, strict=True)
    else:
        reader = csv.reader([text], delimiter=fmt.delimiter, quotechar=fmt.quotechar, strict=True)
    try:
        rows = list(reader)
    except csv.Error as e:
        raise ValueError(f"malformed delimited record: {e}") from e
    if len(rows) != 1:
        raise ValueError(f"malformed delimited record: expected 1 row, got {len(rows)}")
    return rows[0]


def _split_records(
    stream: BinaryIO,
    record_delim: bytes,
    quote: bytes | None,
    max_record_bytes: int,
    field_delim: bytes | None = None,
) -> Iterator[tuple[bytes, str | None]]:
    """
    Split a byte stream into `(record_bytes, error)` pairs, honouring quotes.

    A quote opens a quoted section only at the start of a field (record start or
    right after `field_delim`), a doubled quote inside it is an escaped quote.
    A record delimiter inside a quoted section does not end the record.
    `error` is set for an oversized record (its bytes are dropped) or an
    unterminated quote at end of input. Reads are lazy, `CHUNK_SIZE` at a time.
    """
    buf = bytearray()
    scan = 0              # bytes before `scan` have been looked at
    in_quote = False
    oversized = False     # dropping bytes up to the next record delimiter

    while True:
        data = stream.read(CHUNK_SIZE)
        if data:
            buf += data

        while True:
            if oversized:
                # quote state is unknown past the cut: resync on the next plain delimiter
                d = buf.find(record_delim, scan)
                if d == -1:
                    keep = len(record_delim) - 1
                    del buf[: max(0, len(buf) - keep)]
                    scan = 0
                    break
                del buf[: d + len(record_delim)]
                scan, in_quote, oversized = 0, False, False
                yield b"", f"record exceeds max_record_bytes={max_record_bytes}"
                continue

            if in_quote:
                q = buf.find(quote, scan) if quote is not None else -1
                if q == -1:
                    scan = len(buf)
                elif q + 1 < len(buf):
                    if buf[q + 1 : q + 2] == quote:
                        scan = q + 2        # escaped quote
                    else:
                        in_quote, scan = False, q + 1
                    continue
                elif not data:
                    in_quote, scan = False, q + 1
                    continue
                else:
                    # closing or escaped: decided by the next read
                    scan = q
            else:
                d = buf.find(record_delim, scan)
                q = _find_opening_quote(buf, quote, field_delim, scan, len(buf) if d == -1 else d)
                if d != -1 and q == -1:
                    record = bytes(buf[:d])
                    del buf[: d + len(record_delim)]
                    scan = 0
                    if len(record) > max_record_bytes:
                        yield b"", f"record exceeds max_record_bytes={max_record_bytes}"
                    else:
                        yield record, None
                    continue
                if q != -1:
                    in_quote, scan = True, q + 1
                    continue
                # a delimiter may straddle the chunk boundary
                scan = max(scan, len(buf) - len(record_delim) + 1)

            if len(buf) > max_record_bytes:
                oversized = True
                continue
            break

        if not data:
            break

    ## -- end of input
    if oversized:
        yield b"", f"record exceeds max_record_bytes={max_record_bytes}"
    elif buf:
        if in_quote:
            yield bytes(buf), "unterminated quote at end of input"
        else:
            yield bytes(buf), None


def _find_opening_quote(buf: bytearray, quote: bytes | None, field_delim: bytes | None, start: int, end: int) -> int:
    """Index of the first quote in `buf[start:end]` that starts a field, or -1. `buf` starts at a record start."""
    if quote is None:
        return -1
    q = buf.find(quote, start, end)
    while q > 0 and (field_delim is None or buf[q - len(field_delim) : q] != field_delim):
        q = buf.find(quote, q + 1, end)
    return q


def _strip_bom(chunk: bytes, encoding: str) -> bytes:
    if codecs.lookup(encoding).name == "utf-8" and chunk.startswith(codecs.BOM_UTF8):
        return chunk[len(codecs.BOM_UTF8):]
    return chunk


def _decode_failure(row: int, reason: str, chunk: bytes, encoding: str) -> RawRecord:
    logger.debug("decode error at row %d: %s", row, reason)
    return RawRecord(
        source_row=row,
        fields={},
        decode_error=reason,
        raw_text=chunk.decode(encoding, errors="replace") if chunk else None,
    )
