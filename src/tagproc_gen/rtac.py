"""RTAC server tag prototypes, device type mapping, aliases, and server tag output."""
from __future__ import annotations

import logging
import re
from pathlib import Path

from tagproc_gen.columns import (
    parse_column_data_pairs, replace_tag_keywords, format_address, get_nth_index,
)
from tagproc_gen.constants import RTAC_TAGS_SUFFIX
from tagproc_gen.errors import ConfigurationError, TemplateValidationError
from tagproc_gen.models import (
    OutputRow, PointTypeInfo, RtacOutputRow, ServerTagInfo, ServerTagMapInfo,
    ServerTagPrototypeEntry, ServerTagRootPrototype,
)
from tagproc_gen.writers import output_path, write_rows

log = logging.getLogger(__name__)

NAME_KEYWORD = "{NAME}"
ADDRESS_KEYWORD = "{ADDRESS}"
ALIAS_KEYWORD = "{ALIAS}"
CONTROL_KEYWORD = "{CTRL}"
SERVER_KEYWORD = "{SERVER}"

_ALIAS_RE = re.compile(r"^[A-Za-z0-9_]+\s*$")
_NOMINAL_SEPARATORS_RE = re.compile(r"[.\[\],:]+")


def parse_nominal_columns(text: str, type_name: str = "") -> tuple[int, int] | None:
    """Parse ``"23"`` or ``"[11..20]"`` into a (lower, upper) column range.

    A pair must span an even number of columns (odd difference) because
    analog limits come in low/high pairs.
    """
    if not text or not text.strip():
        return None
    parts = [p for p in _NOMINAL_SEPARATORS_RE.split(text.strip()) if p.strip()]
    try:
        values = [int(p.strip()) for p in parts]
    except ValueError:
        raise ConfigurationError(
            f"Invalid analog limit column range {text!r}. Expecting format like '10' or '[11..20]'"
        ) from None

    if len(values) == 1:
        return values[0], values[0]
    if len(values) == 2:
        lower, upper = values
        if (upper - lower) % 2 == 0:
            raise ConfigurationError(
                f"Tag prototype {type_name} has an odd number of nominal value columns. "
                "Only even number of columns allowed."
            )
        return lower, upper
    raise ConfigurationError(
        f"Invalid analog limit column range {text!r}. Expecting format like '10' or '[11..20]'"
    )


class RtacTemplate:
    """Stores server tag prototypes and generates server tags."""

    def __init__(self) -> None:
        self.pointers: dict[str, str] = {}
        self.server_name: str = ""
        self.alias_name_template: str = NAME_KEYWORD
        self.prototypes: dict[str, ServerTagRootPrototype] = {}
        # Starting address of the next device's tags, per root type
        self.running_offsets: dict[str, int] = {}
        self.tag_alias_substitutes: dict[str, str] = {}
        self._ied_type_map: dict[str, ServerTagMapInfo] = {}
        self._output: dict[str, list[RtacOutputRow]] = {}

    # ------------------------------------------------------------------
    # Prototypes
    # ------------------------------------------------------------------

    def add_tag_prototype_entry(
        self,
        tag_info: ServerTagInfo,
        name_template: str,
        default_columns: str,
        sorting_column: int = -1,
        point_type_text: str = "",
        nominal_columns: str = "",
    ) -> ServerTagRootPrototype:
        """Create a root prototype or add a slot to an existing array prototype.

        Root level fields are only set when given, so continuation rows can add
        array slots without repeating the shared settings.
        """
        root_name = tag_info.root_name
        root = self._find_prototype(root_name)
        if root is None:
            root = ServerTagRootPrototype(sorting_column=-1)
            self.prototypes[root_name] = root
            self.running_offsets[root_name] = 0
            log.debug("New server tag prototype %s", root_name)

        if sorting_column is not None and sorting_column > -1:
            root.sorting_column = sorting_column
        if point_type_text:
            root.point_type = PointTypeInfo.from_text(point_type_text)
        nominal = parse_nominal_columns(nominal_columns, root_name)
        if nominal is not None:
            root.nominal_columns = nominal

        while len(root.entries) <= tag_info.index:
            root.entries.append(None)

        entry = ServerTagPrototypeEntry(name_template=name_template)
        parse_column_data_pairs(default_columns, entry.standard_columns)
        root.entries[tag_info.index] = entry
        return root

    def validate_tag_prototypes(self) -> None:
        """Every prototype needs a sorting column and point type; status types need nominal columns."""
        for name, root in self.prototypes.items():
            if root.sorting_column < 0:
                raise ConfigurationError(f"Tag prototype {name} is missing a valid sorting column.")
            if root.point_type is None:
                raise ConfigurationError(f"Tag prototype {name} is missing a valid data direction.")
            if root.point_type.is_status and root.nominal_columns is None:
                raise ConfigurationError(
                    f"Tag prototype {name} is a status type but is missing valid nominal columns."
                )
            missing = [i for i, e in enumerate(root.entries) if e is None]
            if missing:
                raise ConfigurationError(
                    f"Tag prototype {name} is missing array entries: "
                    + ", ".join(f"{name}[{i}]" for i in missing)
                )

    def _find_prototype(self, root_name: str) -> ServerTagRootPrototype | None:
        root = self.prototypes.get(root_name)
        if root is not None:
            return root
        folded = root_name.casefold()
        for name, proto in self.prototypes.items():
            if name.casefold() == folded:
                return proto
        return None

    def get_prototype(self, root_name: str) -> ServerTagRootPrototype:
        root = self._find_prototype(root_name)
        if root is None:
            raise TemplateValidationError(
                f'Unable to locate tag prototype.\n\nMissing: "{root_name}" in tag prototype.'
            )
        return root

    # ------------------------------------------------------------------
    # Device type map
    # ------------------------------------------------------------------

    def add_ied_server_tag_map(self, ied_type: str, server_type: str, perform_quality_wrapping: bool) -> None:
        self._ied_type_map[ied_type] = ServerTagMapInfo(server_type, perform_quality_wrapping)

    def get_server_type_by_ied_type(self, ied_type: str) -> ServerTagMapInfo | None:
        return self._ied_type_map.get(ied_type)

    def validate_quality_wrapping(self) -> None:
        """Quality wrapped device types must map to a prototype with nominal columns."""
        for ied_type, map_info in self._ied_type_map.items():
            if not map_info.perform_quality_wrapping:
                continue
            root = self._find_prototype(ServerTagInfo.parse(map_info.server_tag_type_name).root_name)
            if root is not None and root.nominal_columns is None:
                raise ConfigurationError(
                    f"IED Type map entry {ied_type} requests quality wrapping but "
                    f"{map_info.server_tag_type_name} has no nominal columns."
                )

    def get_server_tag_info_by_device(self, ied_type: str) -> ServerTagInfo:
        """Resolve a device tag type to its server tag info, e.g. SPC_ON -> DNPC[0]."""
        map_info = self.get_server_type_by_ied_type(ied_type)
        if map_info is None:
            raise TemplateValidationError(f'Unable to locate tag mapping.\n\nMissing: "{ied_type}" in tag map.')
        tag_info = ServerTagInfo.parse(map_info.server_tag_type_name)
        self.get_prototype(tag_info.root_name)
        return tag_info

    def get_server_tag_prototype_by_device(self, ied_type: str) -> ServerTagRootPrototype:
        return self.get_prototype(self.get_server_tag_info_by_device(ied_type).root_name)

    def get_server_tag_entry_by_device(self, ied_type: str) -> ServerTagPrototypeEntry:
        tag_info = self.get_server_tag_info_by_device(ied_type)
        entries = self.get_prototype(tag_info.root_name).entries
        if tag_info.index >= len(entries) or entries[tag_info.index] is None:
            raise TemplateValidationError(
                f'Unable to locate tag prototype.\n\nMissing: "{tag_info.full_name}" in tag prototype.'
            )
        return entries[tag_info.index]

    # ------------------------------------------------------------------
    # Names, aliases, addresses
    # ------------------------------------------------------------------

    def get_array_suffix(self, tag_info: ServerTagInfo) -> str:
        """Text from the 2nd dot of a slot's name template, e.g. ``.operLatchOn``."""
        entries = self.get_prototype(tag_info.root_name).entries
        template = entries[tag_info.index].name_template
        second_dot = get_nth_index(template, ".", 2)
        if second_dot < 1:
            return ""
        return template[second_dot:]

    def generate_server_tag_name(self, entry: ServerTagPrototypeEntry, address: int) -> str:
        return format_address(entry.name_template.replace(SERVER_KEYWORD, self.server_name), address)

    def get_running_offset(self, root_name: str) -> int:
        if root_name in self.running_offsets:
            return self.running_offsets[root_name]
        for name, value in self.running_offsets.items():
            if name.casefold() == root_name.casefold():
                return value
        raise TemplateValidationError(f"No running address offset for server tag type {root_name}.")

    def increment_base_address(self, root_name: str, amount: int) -> None:
        """Advance the running address offset of a root type by *amount*."""
        for name in self.running_offsets:
            if name.casefold() == root_name.casefold():
                self.running_offsets[name] += amount
                return
        raise TemplateValidationError(f"Offset defined for unknown server tag type {root_name}.")

    def get_rtac_alias(self, scada_name: str, point_type: PointTypeInfo) -> str:
        """Alias of a server tag from a SCADA name. Controls get the control keyword appended."""
        name = scada_name
        if point_type.is_control:
            name += CONTROL_KEYWORD
        for find, replace in self.tag_alias_substitutes.items():
            name = name.replace(find, replace)
        return self.alias_name_template.replace(NAME_KEYWORD, name)

    @staticmethod
    def validate_tag_alias(alias: str) -> None:
        if not _ALIAS_RE.match(alias):
            raise TemplateValidationError(f"Invalid tag name: {alias}")

    @staticmethod
    def replace_rtac_keywords(row: OutputRow, tag_name: str, address: str, alias: str) -> OutputRow:
        return replace_tag_keywords(row, {
            NAME_KEYWORD: tag_name,
            ADDRESS_KEYWORD: address,
            ALIAS_KEYWORD: alias,
        })

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def add_rtac_tag_output(self, root_name: str, columns: OutputRow, slot_fraction: float = 0.0) -> None:
        self._output.setdefault(root_name, []).append(RtacOutputRow(columns, slot_fraction))

    def output_rows(self, root_name: str) -> list[RtacOutputRow]:
        """Rows of one type in write order."""
        rows = self._output.get(root_name, [])
        sorting_column = self.get_prototype(root_name).sorting_column

        def _key(row: RtacOutputRow) -> tuple[float, float]:
            value = row.columns.get(sorting_column, "")
            try:
                return float(value), row.slot_fraction
            except ValueError:
                raise ConfigurationError(
                    f"Server tag type {root_name} has non-numeric sorting column value {value!r}"
                ) from None

        return sorted(rows, key=_key)

    @property
    def output_types(self) -> list[str]:
        return list(self._output)

    def write_all_server_tags(self, source: Path, output_dir: Path | None = None) -> list[Path]:
        written = []
        for root_name in self._output:
            path = output_path(source, f"{RTAC_TAGS_SUFFIX}{root_name}.csv", output_dir)
            write_rows(path, (row.columns for row in self.output_rows(root_name)))
            written.append(path)
        return written
