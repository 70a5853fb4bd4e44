"""Column/data pair parsing and keyword substitution for output rows."""
from __future__ import annotations

import re
from typing import Mapping

from tagproc_gen.errors import ConfigurationError, DuplicateColumnError
from tagproc_gen.models import OutputRow

# Composite placeholder for the first format argument: {0}, {0:D5}, {0:X4}
_PLACEHOLDER_RE = re.compile(r"\{\{|\}\}|\{0(?::([^{}]*))?\}")
_ZERO_PATTERN_RE = re.compile(r"^0+$")


def parse_column_data_pairs(text: str, into: OutputRow | None = None) -> OutputRow:
    """Parse ``[2,{NAME}];[3,{ADDRESS}]`` into a column -> data mapping.

    Pairs are added to *into* when given; an index already present raises
    DuplicateColumnError. Data is split from the column on the first comma.
    """
    columns: OutputRow = into if into is not None else {}
    if not text:
        return columns

    for segment in text.split(";"):
        segment = segment.strip()
        if not segment:
            raise ConfigurationError(f"Malformed column / data pair: {text}")
        if segment[0] != "[" or segment[-1] != "]":
            raise ConfigurationError(f"Malformed column / data pair: {segment}")
        col_text, sep, data = segment[1:-1].partition(",")
        if not sep:
            raise ConfigurationError(f"Malformed column / data pair: {segment}")
        try:
            col = int(col_text.strip())
        except ValueError:
            raise ConfigurationError(
                f'Invalid Column Index: unable to convert "{col_text.strip()}" to an integer'
            ) from None
        if col in columns:
            raise DuplicateColumnError(col)
        columns[col] = data.strip()
    return columns


def format_column_data_pairs(columns: Mapping[int, str]) -> str:
    """Serialize a column mapping back into ``[col,data];...`` form."""
    return ";".join(f"[{col},{data}]" for col, data in sorted(columns.items()))


def merge_columns(base: Mapping[int, str], custom: Mapping[int, str], label: str = "") -> OutputRow:
    """Return a copy of *base* with *custom* columns added. Overlaps are an error."""
    merged: OutputRow = dict(base)
    for col, data in custom.items():
        if col in merged:
            what = f"Invalid {label} column definitions" if label else "Invalid column definitions"
            raise DuplicateColumnError(col, f"{what} - duplicate columns present: {col}")
        merged[col] = data
    return merged


def replace_tag_keywords(columns: OutputRow, replacements: Mapping[str, str]) -> OutputRow:
    """Replace keywords like {NAME} in every column value, in place.

    Replacements are applied in insertion order in a single pass.
    """
    for col in list(columns):
        value = columns[col]
        for keyword, replacement in replacements.items():
            value = value.replace(keyword, replacement if replacement is not None else "")
        columns[col] = value
    return columns


def format_address(template: str, value: int) -> str:
    """Render ``{0}``-style placeholders in *template* with an integer.

    Understands the .NET specifiers ``Dn`` and ``Xn``, zero patterns like
    ``0000``, and plain Python format specs.
    """
    def _render(m: re.Match) -> str:
        if m.group(0) in ("{{", "}}"):
            return m.group(0)[0]
        spec = m.group(1) or ""
        try:
            if not spec:
                return str(value)
            kind, digits = spec[0], spec[1:]
            if kind in "Dd" and (not digits or digits.isdigit()):
                width = int(digits) if digits else 0
                sign = "-" if value < 0 else ""
                return sign + str(abs(value)).zfill(width)
            if kind in "Xx" and (not digits or digits.isdigit()):
                width = int(digits) if digits else 0
                return format(value, kind).zfill(width)
            if _ZERO_PATTERN_RE.match(spec):
                return str(value).zfill(len(spec))
            return format(value, spec)
        except ValueError:
            raise ConfigurationError(f"Invalid address format {m.group(0)!r} in {template!r}") from None

    return _PLACEHOLDER_RE.sub(_render, template)


def get_nth_index(text: str, char: str, n: int) -> int:
    """Index of the n-th occurrence of *char* in *text*, or -1."""
    count = 0
    for i, c in enumerate(text):
        if c == char:
            count += 1
            if count == n:
                return i
    return -1


def row_to_list(row: Mapping[int, str]) -> list[str]:
    """Convert a sparse 1-based row into a dense list padded with empty strings."""
    if not row:
        return []
    values = [""] * max(row)
    for col, data in row.items():
        if col >= 1:
            values[col - 1] = data if data is not None else ""
    return values
