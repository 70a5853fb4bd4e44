"""Workbook readers for the definitions, RTAC, SCADA and device template sheets."""
from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.cell import coordinate_from_string, column_index_from_string
from openpyxl.utils.exceptions import CellCoordinatesException, InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from tagproc_gen.columns import parse_column_data_pairs
from tagproc_gen.constants import (
    IED_DATA_COLUMNS, SPECIAL_SHEETS, TPL_DATA, TPL_IED_NAMES, TPL_OFFSETS,
    TPL_RTAC_ALIAS_SUB, TPL_RTAC_MAP_NAME, TPL_RTAC_TAG_MAP, TPL_RTAC_TAG_PROC_COLS,
    TPL_RTAC_TAG_PROC_WRAP_MODE, TPL_RTAC_TAG_PROTO, TPL_SCADA_ADDRESS_OFFSET,
    TPL_SCADA_MAX_NAME_LENGTH, TPL_SCADA_NAME_FORMAT, TPL_SCADA_TAG_PROTO,
    TPL_SHEET_PREFIX,
)
from tagproc_gen.errors import ConfigurationError
from tagproc_gen.ied import IedTemplate
from tagproc_gen.models import IedScadaNamePair, ServerTagInfo
from tagproc_gen.rtac import RtacTemplate
from tagproc_gen.scada import ScadaTemplate
from tagproc_gen.tag_processor import RtacTagProcessorWorksheet

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cell access
# ---------------------------------------------------------------------------

def open_workbook(filepath: Path) -> Workbook:
    """Open a template workbook with cached formula values."""
    path = Path(filepath)
    try:
        return openpyxl.load_workbook(path, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError) as exc:
        raise ConfigurationError(f'Unable to open workbook "{path}": {exc}') from exc


def cell_text(value: Any) -> str:
    """Render a cell value the way it reads in the sheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_sheet(wb: Workbook, name: str) -> Worksheet:
    if name not in wb.sheetnames:
        raise ConfigurationError(f'Unable to locate worksheet "{name}".')
    return wb[name]


def _origin(sheet: Worksheet, ref: str) -> tuple[int, int]:
    try:
        column, row = coordinate_from_string(ref.strip().replace("$", ""))
        return row, column_index_from_string(column)
    except (CellCoordinatesException, ValueError):
        raise ConfigurationError(f'Invalid cell reference "{ref}" on {sheet.title}') from None


def read_cell(sheet: Worksheet, ref: str, column_offset: int = 0) -> str:
    row, column = _origin(sheet, ref)
    return cell_text(sheet.cell(row=row, column=column + column_offset).value)


def read_rows(sheet: Worksheet, ref: str, width: int) -> list[list[str]]:
    """Read *width* cells per row from *ref* down until the first column is blank."""
    row, column = _origin(sheet, ref)
    rows = []
    while True:
        cells = [cell_text(sheet.cell(row=row, column=column + i).value) for i in range(width)]
        if cells[0] == "":
            return rows
        rows.append(cells)
        row += 1


def read_pairs(sheet: Worksheet, ref: str) -> dict[str, str]:
    """Read a two column key/value range. Later duplicate keys win."""
    return {key: value for key, value in read_rows(sheet, ref, 2)}


def read_pointers(sheet: Worksheet, ref: str, *expected: str) -> dict[str, str]:
    """Read a pointer range with case-insensitive names, requiring *expected*."""
    pointers = {key.strip().upper(): value for key, value in read_pairs(sheet, ref).items()}
    for name in expected:
        if name.upper() not in pointers:
            raise ConfigurationError(f'Unable to locate pointer.\n\nMissing: "{name}" from {sheet.title}')
    return pointers


def _parse_sorting_column(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return -1


def _parse_bool(text: str) -> bool | None:
    value = text.strip().upper()
    if value == "TRUE":
        return True
    if value == "FALSE":
        return False
    return None


def template_sheet_names(wb: Workbook) -> list[str]:
    """Device template sheets: every ``TPL_`` sheet other than the special ones."""
    return [
        name for name in wb.sheetnames
        if name.startswith(TPL_SHEET_PREFIX) and name not in SPECIAL_SHEETS
    ]


# ---------------------------------------------------------------------------
# Template readers
# ---------------------------------------------------------------------------

def read_rtac_template(sheet: Worksheet, rtac: RtacTemplate, tag_processor: RtacTagProcessorWorksheet) -> None:
    """Server name, alias template, prototypes, type map, alias substitutions and map columns."""
    pointers = rtac.pointers
    map_name_ref = pointers[TPL_RTAC_MAP_NAME]
    rtac.server_name = read_cell(sheet, map_name_ref)
    rtac.alias_name_template = read_cell(sheet, map_name_ref, 1)

    for type_name, name_template, columns, sorting, point_type, nominal in read_rows(
        sheet, pointers[TPL_RTAC_TAG_PROTO], 6
    ):
        rtac.add_tag_prototype_entry(
            ServerTagInfo.parse(type_name),
            name_template,
            columns,
            _parse_sorting_column(sorting),
            point_type,
            nominal,
        )
    rtac.validate_tag_prototypes()

    for ied_type, server_type, wrap_text in read_rows(sheet, pointers[TPL_RTAC_TAG_MAP], 3):
        wrap = _parse_bool(wrap_text)
        if wrap is None:
            raise ConfigurationError(f"Invalid quality wrapping flag for IED Type map entry {ied_type}")
        rtac.add_ied_server_tag_map(ied_type, server_type, wrap)
    rtac.validate_quality_wrapping()

    rtac.tag_alias_substitutes.update(read_pairs(sheet, pointers[TPL_RTAC_ALIAS_SUB]))
    parse_column_data_pairs(read_cell(sheet, pointers[TPL_RTAC_TAG_PROC_COLS]), tag_processor.columns_template)
    log.info(
        "RTAC template: server %s, %d prototypes, %d alias substitutions",
        rtac.server_name, len(rtac.prototypes), len(rtac.tag_alias_substitutes),
    )


def read_scada_template(sheet: Worksheet, scada: ScadaTemplate) -> None:
    scada.name_template = read_cell(sheet, scada.pointers[TPL_SCADA_NAME_FORMAT])
    for point_type, columns, key_format, header, defaults, sorting in read_rows(
        sheet, scada.pointers[TPL_SCADA_TAG_PROTO], 6
    ):
        scada.add_tag_prototype_entry(
            point_type, columns, key_format, header, defaults, _parse_sorting_column(sorting)
        )
    scada.validate_pointers()
    log.info("SCADA template: %d prototypes", len(scada.prototypes))


def read_ied_template(sheet: Worksheet, template: IedTemplate, rtac: RtacTemplate) -> None:
    """Offsets, device name pairs and the point table of one device template."""
    template.offsets.update(read_pairs(sheet, template.pointers[TPL_OFFSETS]))

    for ied_name, scada_name in read_rows(sheet, template.pointers[TPL_IED_NAMES], 2):
        template.ied_scada_names.append(IedScadaNamePair(ied_name, scada_name))

    for cells in read_rows(sheet, template.pointers[TPL_DATA], IED_DATA_COLUMNS):
        template.add_raw_row(cells, rtac)

    log.info(
        "Template %s: %d devices, %d points",
        template.name, len(template.ied_scada_names), len(template.points),
    )


RTAC_POINTERS = (
    TPL_RTAC_MAP_NAME, TPL_RTAC_TAG_PROTO, TPL_RTAC_TAG_MAP, TPL_RTAC_ALIAS_SUB,
    TPL_RTAC_TAG_PROC_COLS, TPL_RTAC_TAG_PROC_WRAP_MODE,
)
SCADA_POINTERS = (
    TPL_SCADA_NAME_FORMAT, TPL_SCADA_MAX_NAME_LENGTH, TPL_SCADA_TAG_PROTO, TPL_SCADA_ADDRESS_OFFSET,
)
IED_POINTERS = (TPL_DATA, TPL_IED_NAMES, TPL_OFFSETS)
