"""Shared fixtures for tag processor generator tests."""
from __future__ import annotations

from pathlib import Path
from typing import Callable

import openpyxl
import pytest

from tagproc_gen.constants import (
    TPL_DATA, TPL_IED_DEF, TPL_IED_NAMES, TPL_OFFSETS, TPL_RTAC_ALIAS_SUB,
    TPL_RTAC_DEF, TPL_RTAC_MAP_NAME, TPL_RTAC_TAG_MAP, TPL_RTAC_TAG_PROC_COLS,
    TPL_RTAC_TAG_PROC_WRAP_MODE, TPL_RTAC_TAG_PROTO, TPL_SCADA_ADDRESS_OFFSET,
    TPL_SCADA_DEF, TPL_SCADA_MAX_NAME_LENGTH, TPL_SCADA_NAME_FORMAT,
    TPL_SCADA_TAG_PROTO,
)
from tagproc_gen.ied import IedTemplate
from tagproc_gen.models import IedScadaNamePair, ServerTagInfo
from tagproc_gen.rtac import RtacTemplate
from tagproc_gen.scada import ScadaTemplate


RTAC_COLUMNS = "[1,{NAME}];[2,{ADDRESS}];[3,{ALIAS}]"
SCADA_COLUMNS = "[1,{NAME}];[2,{ADDRESS}];[3,{KEY}];[4,{RECORD}]"
TAG_PROC_COLUMNS = (
    "[1,{DESTINATION}];[2,{DESTINATION_TYPE}];[3,{SOURCE}];"
    "[4,{SOURCE_TYPE}];[5,{TIME_SOURCE}];[6,{QUALITY_SOURCE}]"
)

# type, name template, default columns, sorting column, point type, nominal columns
RTAC_PROTOTYPES = [
    ("DNPBI", "{SERVER}.BI_{0:D5}", RTAC_COLUMNS, "2", "StatusBinary", "5"),
    ("DNPC[0]", "{SERVER}.BO_{0:D5}.operLatchOn", RTAC_COLUMNS, "2", "ControlBinary", ""),
    ("DNPC[1]", "{SERVER}.BO_{0:D5}.operLatchOff", RTAC_COLUMNS, "", "", ""),
    ("DNPAI", "{SERVER}.AI_{0:D5}", RTAC_COLUMNS, "2", "StatusAnalog", "[6..9]"),
]

# IED type, server type, quality wrap flag
RTAC_TAG_MAP = [
    ("SPS", "DNPBI", "TRUE"),
    ("SPC_ON", "DNPC[0]", "FALSE"),
    ("SPC_OFF", "DNPC[1]", "FALSE"),
    ("MX", "DNPAI", "TRUE"),
]

ALIAS_SUBSTITUTES = [(" ", "_"), ("{CTRL}", "_C")]

# point type, default columns, key format, CSV header, CSV row defaults, sorting column
SCADA_PROTOTYPES = [
    ("StatusBinary", SCADA_COLUMNS, "{0:D4}", "Name,Address,Key,Record,Normal", '"",0,"",0,0', "2"),
    ("ControlBinary", SCADA_COLUMNS, "{0:D4}", "Name,Address,Key,Record", '"",0,"",0', "2"),
    (
        "StatusAnalog", SCADA_COLUMNS, "{0:D4}",
        "Name,Address,Key,Record,Normal,LoLo,Lo,Hi,HiHi", '"",0,"",0,0,0,0,0,0', "2",
    ),
]

DEVICES = [("IED1", "SCADA1"), ("IED2", "SCADA2")]
OFFSETS = [("DNPBI", 50), ("DNPC", 10), ("DNPAI", 20)]

# process, filter, point number, IED tag, IED type, RTAC columns, SCADA point, SCADA columns
BREAKER_POINTS = [
    (True, "ALL", 1, "{IED}.Ind01.stVal", "SPS", "", "BRK", "[5,0]"),
    (True, "ALL", 1, "{IED}.BRK_CLOSE", "SPC_ON", "", "BRK", ""),
    (True, "ALL", 1, "{IED}.BRK_OPEN", "SPC_OFF", "", "BRK", ""),
]


# ---------------------------------------------------------------------------
# In-memory templates
# ---------------------------------------------------------------------------

@pytest.fixture
def rtac() -> RtacTemplate:
    """RTAC template with binary status, array control and analog status types."""
    template = RtacTemplate()
    template.server_name = "SCADA_Server"
    template.alias_name_template = "{NAME}"
    for type_name, name_template, columns, sorting, point_type, nominal in RTAC_PROTOTYPES:
        template.add_tag_prototype_entry(
            ServerTagInfo.parse(type_name), name_template, columns,
            int(sorting) if sorting else -1, point_type, nominal,
        )
    template.validate_tag_prototypes()
    for ied_type, server_type, wrap in RTAC_TAG_MAP:
        template.add_ied_server_tag_map(ied_type, server_type, wrap == "TRUE")
    template.tag_alias_substitutes.update(ALIAS_SUBSTITUTES)
    return template


@pytest.fixture
def scada() -> ScadaTemplate:
    template = ScadaTemplate()
    template.pointers = {
        TPL_SCADA_NAME_FORMAT: "D1",
        TPL_SCADA_MAX_NAME_LENGTH: "32",
        TPL_SCADA_TAG_PROTO: "D4",
        TPL_SCADA_ADDRESS_OFFSET: "0",
    }
    template.name_template = "{DEVICENAME} {POINTNAME}"
    for point_type, columns, key_format, header, defaults, sorting in SCADA_PROTOTYPES:
        template.add_tag_prototype_entry(point_type, columns, key_format, header, defaults, int(sorting))
    return template


@pytest.fixture
def ied_template() -> IedTemplate:
    """Empty device template with two device instances and offsets for every type."""
    template = IedTemplate("TPL_Relay")
    template.ied_scada_names.extend(IedScadaNamePair(ied, scada) for ied, scada in DEVICES)
    template.offsets.update({name: str(value) for name, value in OFFSETS})
    return template


# ---------------------------------------------------------------------------
# Workbook builder
# ---------------------------------------------------------------------------

def _write_rows(ws, top_left: tuple[int, int], rows) -> None:
    row, column = top_left
    for r, values in enumerate(rows):
        for c, value in enumerate(values):
            ws.cell(row=row + r, column=column + c, value=value)


def build_workbook(
    path: Path,
    points=BREAKER_POINTS,
    devices=DEVICES,
    offsets=OFFSETS,
    wrap_mode=0,
    scada_address_offset=0,
    include_wrap_mode: bool = True,
) -> Path:
    """Write a complete template workbook with a single device template sheet."""
    wb = openpyxl.Workbook()
    definitions = wb.active
    definitions.title = "TPL_Def"
    _write_rows(definitions, (3, 1), [
        (TPL_RTAC_DEF, "A1"),
        (TPL_SCADA_DEF, "A1"),
        (TPL_IED_DEF, "A1"),
    ])

    rtac_sheet = wb.create_sheet("TPL_RTAC")
    rtac_pointers = [
        (TPL_RTAC_MAP_NAME, "D1"),
        (TPL_RTAC_TAG_PROTO, "D4"),
        (TPL_RTAC_TAG_MAP, "D10"),
        (TPL_RTAC_ALIAS_SUB, "D16"),
        (TPL_RTAC_TAG_PROC_COLS, "D20"),
    ]
    if include_wrap_mode:
        rtac_pointers.append((TPL_RTAC_TAG_PROC_WRAP_MODE, wrap_mode))
    _write_rows(rtac_sheet, (1, 1), rtac_pointers)
    _write_rows(rtac_sheet, (1, 4), [("SCADA_Server", "{NAME}")])
    _write_rows(rtac_sheet, (4, 4), RTAC_PROTOTYPES)
    _write_rows(rtac_sheet, (10, 4), [(a, b, c == "TRUE") for a, b, c in RTAC_TAG_MAP])
    _write_rows(rtac_sheet, (16, 4), ALIAS_SUBSTITUTES)
    _write_rows(rtac_sheet, (20, 4), [(TAG_PROC_COLUMNS,)])

    scada_sheet = wb.create_sheet("TPL_SCADA")
    _write_rows(scada_sheet, (1, 1), [
        (TPL_SCADA_NAME_FORMAT, "D1"),
        (TPL_SCADA_MAX_NAME_LENGTH, 32),
        (TPL_SCADA_TAG_PROTO, "D4"),
        (TPL_SCADA_ADDRESS_OFFSET, scada_address_offset),
    ])
    _write_rows(scada_sheet, (1, 4), [("{DEVICENAME} {POINTNAME}",)])
    _write_rows(scada_sheet, (4, 4), SCADA_PROTOTYPES)

    relay = wb.create_sheet("TPL_Relay")
    _write_rows(relay, (1, 1), [
        (TPL_DATA, "A10"),
        (TPL_IED_NAMES, "D1"),
        (TPL_OFFSETS, "G1"),
    ])
    _write_rows(relay, (1, 4), devices)
    _write_rows(relay, (1, 7), offsets)
    _write_rows(relay, (10, 1), points)

    wb.save(path)
    return path


@pytest.fixture
def workbook_factory(tmp_path) -> Callable[..., Path]:
    """Build a template workbook in tmp_path, e.g. ``workbook_factory(wrap_mode=1)``."""
    def _factory(name: str = "Substation.xlsx", **kwargs) -> Path:
        return build_workbook(tmp_path / name, **kwargs)
    return _factory
