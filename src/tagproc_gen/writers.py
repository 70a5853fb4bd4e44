"""CSV output for generated SCADA tags, RTAC server tags, and the tag processor map."""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Sequence

from tagproc_gen.columns import row_to_list
from tagproc_gen.models import OutputRow

log = logging.getLogger(__name__)


def output_path(source: Path, suffix: str, output_dir: Path | None = None) -> Path:
    """Build ``<dir>/<source stem><suffix>``; *dir* defaults to the source's folder."""
    source = Path(source)
    directory = Path(output_dir) if output_dir is not None else source.parent
    return directory / f"{source.stem}{suffix}"


def write_rows(path: Path, rows: Iterable[OutputRow]) -> Path:
    """Write sparse rows, one CSV record each. Quoting only where needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        for row in rows:
            writer.writerow(row_to_list(row))
            count += 1
    log.debug("Wrote %d rows to %s", count, path)
    return path


def write_typed_rows(
    path: Path,
    header: Sequence[str],
    rows: Iterable[Sequence[str]],
    string_columns: Sequence[bool],
) -> Path:
    """Write a header and rows where string columns are always quoted.

    Values in numeric columns that parse as integers are written bare.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        csv.writer(f).writerow(header)
        writer = csv.writer(f, quoting=csv.QUOTE_NONNUMERIC)
        for row in rows:
            writer.writerow([
                _typed(value, string_columns[i] if i < len(string_columns) else True)
                for i, value in enumerate(row)
            ])
            count += 1
    log.debug("Wrote %d rows to %s", count, path)
    return path


def _typed(value: str, is_string: bool) -> str | int:
    if is_string:
        return value
    try:
        return int(value)
    except ValueError:
        return value
