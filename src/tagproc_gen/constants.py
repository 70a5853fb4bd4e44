"""Workbook layout constants: sheet names, pointer names, and point type names."""
from __future__ import annotations

# Initial pointer on the definitions sheet
TPL_DEF = "A3"

# Worksheet names
TPL_SHEET_PREFIX = "TPL_"
TPL_DEF_SHEET = "TPL_Def"
TPL_RTAC_SHEET = "TPL_RTAC"
TPL_SCADA_SHEET = "TPL_SCADA"
SPECIAL_SHEETS = (TPL_DEF_SHEET, TPL_RTAC_SHEET, TPL_SCADA_SHEET)

# Global template pointers
TPL_RTAC_DEF = "TPL_RTAC_DEF"
TPL_SCADA_DEF = "TPL_SCADA_DEF"
TPL_IED_DEF = "TPL_IED_DEF"

# RTAC template pointers
TPL_RTAC_MAP_NAME = "TPL_RTAC_MAP_NAME"
TPL_RTAC_TAG_PROTO = "TPL_RTAC_TAG_PROTO"
TPL_RTAC_TAG_MAP = "TPL_RTAC_TAG_MAP"
TPL_RTAC_ALIAS_SUB = "TPL_RTAC_ALIAS_SUB"
TPL_RTAC_TAG_PROC_COLS = "TPL_RTAC_TAG_PROC_COLS"
TPL_RTAC_TAG_PROC_WRAP_MODE = "TPL_RTAC_TAG_PROC_WRAP_MODE"

# SCADA template pointers
TPL_SCADA_NAME_FORMAT = "TPL_SCADA_NAME_FORMAT"
TPL_SCADA_MAX_NAME_LENGTH = "TPL_SCADA_MAX_NAME_LENGTH"
TPL_SCADA_TAG_PROTO = "TPL_SCADA_TAG_PROTO"
TPL_SCADA_ADDRESS_OFFSET = "TPL_SCADA_ADDRESS_OFFSET"

# IED template pointers
TPL_DATA = "TPL_DATA"
TPL_IED_NAMES = "TPL_IED_NAMES"
TPL_OFFSETS = "TPL_OFFSETS"

# Point type names
STATUS_BINARY = "StatusBinary"
STATUS_ANALOG = "StatusAnalog"
CONTROL_BINARY = "ControlBinary"
CONTROL_ANALOG = "ControlAnalog"

# SCADA point name that suppresses SCADA tag generation
NO_SCADA_POINT = "--"

# Number of columns in an IED template point table
IED_DATA_COLUMNS = 8

# Output file suffixes
TAG_PROCESSOR_SUFFIX = "_TagProcessor.csv"
SCADA_TAGS_SUFFIX = "_ScadaTags_"
RTAC_TAGS_SUFFIX = "_RtacServerTags_"
