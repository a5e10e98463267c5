"""
Delimited-text roster parser.

Supports: .csv .tsv .txt

Public API:
    table = parse_buffer(raw_bytes, "clients.csv")
    table.headers, table.rows, table.total_rows

ParsedTable fields:
    headers    : trimmed header cells from the first non-empty line
    rows       : trimmed data cells, every row exactly len(headers) wide
    total_rows : number of rows that survived blank-row filtering
    delimiter  : delimiter used to split lines
    encoding   : encoding reported by chardet
    warnings   : padded / truncated row notices, mixed-encoding notices

The only exception raised is ParseError; every other irregularity is
reported in ``warnings``.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import PurePath

import chardet

from roster_doctor.config import DEFAULT_SETTINGS, ImportSettings

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
FIXED_DELIMITERS = {".csv": ",", ".tsv": "\t"}
SNIFF_DELIMITERS = ",;\t|"

BINARY_SIGNATURES = {
    b"PK\x03\x04": "an Excel/ODS workbook",
    b"\xd0\xcf\x11\xe0": "a legacy Excel workbook",
}


class ParseError(ValueError):
    """Raised when the buffer cannot be decoded or tabulated at all."""


@dataclass(frozen=True)
class ParsedTable:
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    total_rows: int
    delimiter: str = ","
    encoding: str = "utf-8"
    warnings: tuple[str, ...] = ()


# ══════════════════════════════════════════════════════════════════════════════
# DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "unknown"


def _decode_chunk(chunk: bytes, preferred_encoding: str) -> tuple[str, str]:
    for enc in ("utf-8", preferred_encoding, "latin-1"):
        if not enc or enc == "unknown":
            continue
        try:
            return chunk.decode(enc), enc
        except (LookupError, UnicodeDecodeError):
            continue
    return chunk.decode("cp1252", errors="replace"), "cp1252"


def _decode_lines(raw: bytes, preferred_encoding: str) -> tuple[list[str], list[int]]:
    """
    Decode raw bytes into physical lines.

    Only CR, LF and CRLF end a line. Unicode separators such as U+2028 stay
    inside their cell, since CRM notes fields often carry them. Each LF chunk
    is decoded on its own so one latin-1 row does not garble the whole file.

    Returns the lines and the 1-indexed numbers of lines that were not UTF-8.
    """
    lines: list[str] = []
    fallback_line_numbers: list[int] = []
    for chunk in raw.split(b"\n"):
        decoded, used = _decode_chunk(chunk, preferred_encoding)
        if decoded.endswith("\r"):
            decoded = decoded[:-1]
        for piece in decoded.split("\r"):
            lines.append(piece.replace("\x00", ""))
            if used != "utf-8":
                fallback_line_numbers.append(len(lines))
    if lines and lines[0].startswith("\ufeff"):
        lines[0] = lines[0][1:]
    return lines, fallback_line_numbers


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _cell_count(line: str, delimiter: str) -> int:
    try:
        return len(next(csv.reader([line], delimiter=delimiter), []))
    except csv.Error:
        return 0


def _detect_delimiter(lines: list[str]) -> str:
    """
    Pick the delimiter of a .txt export.

    A roster's header row is always present and names every column, so each
    candidate is scored by how wide it makes the header and how many of the
    sampled data lines split to that same width. csv.Sniffer only decides
    when no candidate yields a header of two or more columns.
    """
    sample = [line for line in lines if line.strip()][:25]
    if not sample:
        return ","

    header, data = sample[0], sample[1:]
    best_delim: str | None = None
    best_score = 0.0
    for delim in SNIFF_DELIMITERS:
        width = _cell_count(header, delim)
        if width < 2:
            continue
        agreeing = sum(1 for line in data if _cell_count(line, delim) == width)
        score = width * (agreeing + 1) / (len(data) + 1)
        if score > best_score:
            best_delim, best_score = delim, score
    if best_delim is not None:
        return best_delim

    try:
        return csv.Sniffer().sniff("\n".join(sample), delimiters=SNIFF_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _split_line(line: str, delimiter: str, line_number: int) -> list[str]:
    try:
        cells = next(csv.reader([line], delimiter=delimiter), [])
    except csv.Error as exc:
        raise ParseError(f"Could not split line {line_number}: {exc}") from exc
    return [cell.strip() for cell in cells]


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def _check_buffer(buffer: bytes, filename: str, settings: ImportSettings) -> str:
    suffix = PurePath(filename).suffix.lower()
    if suffix not in TEXT_FORMATS:
        raise ParseError(
            f"Invalid file type '{suffix or '[missing extension]'}'. "
            f"Please upload a delimited text file ({', '.join(sorted(TEXT_FORMATS))})"
        )
    if len(buffer) > settings.max_file_bytes:
        limit_mb = settings.max_file_bytes / 1024 / 1024
        size_mb = len(buffer) / 1024 / 1024
        raise ParseError(f"File too large. Maximum size is {limit_mb:.2f}MB, got {size_mb:.2f}MB")
    for signature, description in BINARY_SIGNATURES.items():
        if buffer.startswith(signature):
            raise ParseError(
                f"{filename} looks like {description}, not delimited text. Export it as CSV first."
            )
    if not buffer.strip():
        raise ParseError("File contains no data")
    return suffix


def parse_buffer(
    buffer: bytes,
    filename: str,
    settings: ImportSettings | None = None,
) -> ParsedTable:
    """Turn a raw upload into a header row plus equal-width string rows."""
    settings = settings or DEFAULT_SETTINGS
    suffix = _check_buffer(buffer, filename, settings)

    encoding = _detect_encoding(buffer)
    lines, fallback_line_numbers = _decode_lines(buffer, encoding)
    warnings: list[str] = []
    if fallback_line_numbers:
        shown = ", ".join(str(number) for number in fallback_line_numbers[:10])
        more = "" if len(fallback_line_numbers) <= 10 else ", ..."
        warnings.append(
            f"{len(fallback_line_numbers)} line(s) were not valid UTF-8 and were decoded as "
            f"{encoding} (lines {shown}{more})"
        )

    if not any(line.strip() for line in lines):
        raise ParseError("File contains no data")

    delimiter = FIXED_DELIMITERS.get(suffix) or _detect_delimiter(lines)

    headers: list[str] | None = None
    rows: list[tuple[str, ...]] = []
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        cells = _split_line(line, delimiter, line_number)
        if headers is None:
            headers = cells
            if not any(headers):
                raise ParseError("File has no column headers")
            continue
        if not any(cells):
            continue

        width = len(headers)
        if len(cells) < width:
            warnings.append(
                f"Line {line_number}: {len(cells)} cell(s) for {width} column(s); missing cells left blank"
            )
            cells = cells + [""] * (width - len(cells))
        elif len(cells) > width:
            extra = cells[width:]
            if any(extra):
                warnings.append(
                    f"Line {line_number}: {len(cells)} cell(s) for {width} column(s); "
                    f"dropped extra values {extra!r}"
                )
            cells = cells[:width]
        rows.append(tuple(cells))

    if headers is None:
        raise ParseError("File contains no data")
    if not rows:
        raise ParseError("File has headers but no data rows")
    if len(rows) > settings.max_rows:
        raise ParseError(f"Too many rows. Maximum is {settings.max_rows}, got {len(rows)}")

    return ParsedTable(
        headers=tuple(headers),
        rows=tuple(rows),
        total_rows=len(rows),
        delimiter=delimiter,
        encoding=encoding,
        warnings=tuple(warnings),
    )


def get_preview_rows(table: ParsedTable, count: int = 5) -> list[list[str]]:
    return [list(row) for row in table.rows[:count]]
