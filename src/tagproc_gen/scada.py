"""SCADA tag prototypes, name formatting, and per point type CSV output."""
from __future__ import annotations

import logging
import re
from pathlib import Path

from tagproc_gen.columns import parse_column_data_pairs, replace_tag_keywords, format_address
from tagproc_gen.constants import (
    SCADA_TAGS_SUFFIX, TPL_SCADA_ADDRESS_OFFSET, TPL_SCADA_MAX_NAME_LENGTH,
)
from tagproc_gen.errors import ConfigurationError, TemplateValidationError
from tagproc_gen.models import OutputRow, PointTypeInfo, ScadaTagPrototype
from tagproc_gen.writers import output_path, write_typed_rows

log = logging.getLogger(__name__)

FULL_NAME_KEYWORD = "{NAME}"
DEVICE_NAME_KEYWORD = "{DEVICENAME}"
POINT_NAME_KEYWORD = "{POINTNAME}"
ADDRESS_KEYWORD = "{ADDRESS}"
KEY_KEYWORD = "{KEY}"
RECORD_KEYWORD = "{RECORD}"

_TAG_NAME_RE = re.compile(r"^[A-Za-z0-9 ]+$")


def parse_row_defaults(text: str) -> list[tuple[str, bool]]:
    """Split CSV row defaults into (value, is_string) tokens.

    Integer tokens are numeric; anything else is a string with quotes removed.
    """
    defaults = []
    for token in text.split(","):
        try:
            int(token.strip())
            defaults.append((token.strip(), False))
        except ValueError:
            defaults.append((token.replace('"', ""), True))
    return defaults


def _pointer_int(pointers: dict[str, str], name: str) -> int:
    raw = pointers.get(name, "")
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ConfigurationError(f"SCADA pointer {name} must be an integer, got {raw!r}") from None


class ScadaTemplate:
    """Builds SCADA tag rows and handles tag name formatting."""

    def __init__(self) -> None:
        self.pointers: dict[str, str] = {}
        self.name_template: str = f"{DEVICE_NAME_KEYWORD} {POINT_NAME_KEYWORD}"
        self.prototypes: dict[str, ScadaTagPrototype] = {}
        self.max_validated_tag: str = ""
        self.max_validated_tag_length: int = 0
        self._output: dict[str, list[OutputRow]] = {}

    @property
    def address_offset(self) -> int:
        return _pointer_int(self.pointers, TPL_SCADA_ADDRESS_OFFSET)

    @property
    def max_name_length(self) -> int:
        return _pointer_int(self.pointers, TPL_SCADA_MAX_NAME_LENGTH)

    def validate_pointers(self) -> None:
        """Numeric pointers must parse before any tags are generated."""
        self.address_offset
        self.max_name_length

    def scada_name(self, device_name: str, point_name: str) -> str:
        """Join the SCADA device and point names into the full SCADA name."""
        return self.name_template.replace(DEVICE_NAME_KEYWORD, device_name).replace(POINT_NAME_KEYWORD, point_name)

    def add_tag_prototype_entry(
        self,
        point_type_name: str,
        default_columns: str,
        key_format: str,
        csv_header: str,
        csv_row_defaults: str,
        sorting_column: int,
    ) -> ScadaTagPrototype:
        point_type = PointTypeInfo.from_text(point_type_name)
        if sorting_column is None or sorting_column < 0:
            raise ConfigurationError(f"SCADA prototype {point_type_name} is missing a valid sorting column.")
        if point_type.name in self.prototypes:
            raise ConfigurationError(f"SCADA prototype {point_type.name} is defined more than once.")

        prototype = ScadaTagPrototype(
            key_format=key_format,
            csv_header=csv_header,
            csv_row_defaults=csv_row_defaults,
            sorting_column=sorting_column,
        )
        parse_column_data_pairs(default_columns, prototype.standard_columns)
        self.prototypes[point_type.name] = prototype
        return prototype

    def get_prototype(self, point_type: PointTypeInfo) -> ScadaTagPrototype:
        prototype = self.prototypes.get(point_type.name)
        if prototype is None:
            raise TemplateValidationError(
                f'Unable to locate SCADA prototype.\n\nMissing: "{point_type.name}" in SCADA prototypes.'
            )
        return prototype

    def validate_tag_name(self, tag_name: str) -> None:
        """Letters, numbers and spaces only, no longer than the configured maximum."""
        if not _TAG_NAME_RE.match(tag_name):
            raise TemplateValidationError(f"Invalid tag name: {tag_name}")
        if len(tag_name) > self.max_name_length:
            raise TemplateValidationError(f"Tag name too long: {tag_name}")
        if len(tag_name) > self.max_validated_tag_length:
            self.max_validated_tag_length = len(tag_name)
            self.max_validated_tag = tag_name

    def replace_scada_keywords(
        self,
        row: OutputRow,
        name: str,
        address: int,
        key_format: str,
        key_address: int | None = None,
    ) -> OutputRow:
        """Substitute name, address and key placeholders. The address offset is applied here.

        *key_address* lets a control key off its linked status point's address.
        """
        offset = self.address_offset
        adjusted = address + offset
        key_source = key_address + offset if key_address is not None else adjusted
        return replace_tag_keywords(row, {
            FULL_NAME_KEYWORD: name,
            ADDRESS_KEYWORD: str(adjusted),
            KEY_KEYWORD: format_address(key_format, key_source),
        })

    def add_scada_tag_output(self, point_type_name: str, row: OutputRow) -> None:
        self._output.setdefault(point_type_name, []).append(row)

    @property
    def output_types(self) -> list[str]:
        return list(self._output)

    def output_rows(self, point_type_name: str) -> list[list[str]]:
        """Fully populated rows of one point type in write order."""
        prototype = self.prototypes[point_type_name]
        column = prototype.sorting_column

        def _key(row: OutputRow) -> float:
            value = row.get(column, "")
            try:
                return float(value)
            except ValueError:
                raise ConfigurationError(
                    f"SCADA type {point_type_name} has non-numeric sorting column value {value!r}"
                ) from None

        defaults = parse_row_defaults(prototype.csv_row_defaults)
        rows = []
        for record, row in enumerate(sorted(self._output.get(point_type_name, []), key=_key), start=1):
            values = []
            for col, (default, _) in enumerate(defaults, start=1):
                custom = row.get(col)
                if custom is not None and custom.strip():
                    values.append(custom.replace(RECORD_KEYWORD, str(record)))
                else:
                    values.append(default)
            rows.append(values)
        return rows

    def write_all_scada_tags(self, source: Path, output_dir: Path | None = None) -> list[Path]:
        written = []
        for point_type_name in self._output:
            prototype = self.prototypes[point_type_name]
            defaults = parse_row_defaults(prototype.csv_row_defaults)
            path = output_path(source, f"{SCADA_TAGS_SUFFIX}{point_type_name}.csv", output_dir)
            write_typed_rows(
                path,
                prototype.csv_header.split(","),
                self.output_rows(point_type_name),
                [is_string for _, is_string in defaults],
            )
            written.append(path)
        return written
