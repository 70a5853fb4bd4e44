"""Device templates: logical points, device name pairs, offsets, and validation."""
from __future__ import annotations

import logging
from typing import Sequence

from tagproc_gen.columns import parse_column_data_pairs
from tagproc_gen.constants import IED_DATA_COLUMNS, NO_SCADA_POINT
from tagproc_gen.errors import ConfigurationError, ConsistencyError, TemplateValidationError
from tagproc_gen.models import (
    FilterInfo, IedScadaNamePair, IedTagEntry, IedTagNameTypePair,
)
from tagproc_gen.rtac import RtacTemplate

log = logging.getLogger(__name__)

IED_NAME_KEYWORD = "{IED}"


def substitute_tag_name(tag_name: str, ied_name: str) -> str:
    """Replace the device placeholder in a device tag name."""
    return tag_name.replace(IED_NAME_KEYWORD, ied_name)


def parse_point_number(text: str) -> tuple[int, bool]:
    """Return (point number, is_absolute). A leading ``=`` marks an absolute address."""
    raw = (text or "").strip()
    if not raw:
        raise ConfigurationError("Point number missing")
    is_absolute = raw.startswith("=")
    number_text = raw[1:].strip() if is_absolute else raw
    try:
        number = float(number_text)
    except ValueError:
        raise ConfigurationError(f"Invalid point number: {text!r}") from None
    if not number.is_integer():
        raise ConfigurationError(f"Invalid point number: {text!r}")
    return int(number), is_absolute


class IedTemplate:
    """Points, device instances and address offsets of one device template sheet."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.pointers: dict[str, str] = {}
        # Key: root server tag type, Value: addresses reserved per device
        self.offsets: dict[str, str] = {}
        self.ied_scada_names: list[IedScadaNamePair] = []
        self.points: list[IedTagEntry] = []

    def __repr__(self) -> str:
        return f"IedTemplate({self.name!r}, points={len(self.points)}, devices={len(self.ied_scada_names)})"

    def offset_for(self, root_name: str) -> int:
        raw = self.offsets.get(root_name)
        if raw is None:
            for key, value in self.offsets.items():
                if key.casefold() == root_name.casefold():
                    raw = value
                    break
        if raw is None:
            raise TemplateValidationError(
                f"Template {self.name} has no offset defined for the data type {root_name}."
            )
        try:
            return int(float(str(raw).strip()))
        except ValueError:
            raise ConfigurationError(
                f"Template {self.name} has an invalid offset {raw!r} for the data type {root_name}."
            ) from None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def get_or_create_tag_entry(
        self,
        ied_tag_type: str,
        device_filter: FilterInfo,
        point_number: int,
        rtac: RtacTemplate,
    ) -> IedTagEntry:
        """Return the point sharing this address, filter and root type, or a new one."""
        root_name = rtac.get_server_tag_info_by_device(ied_tag_type).root_name

        matches = [
            entry for entry in self.points
            if entry.point_number == point_number
            and entry.device_filter == device_filter
            and any(
                rtac.get_server_tag_info_by_device(pair.ied_tag_type_name).root_name == root_name
                for pair in entry.ied_tags
            )
        ]
        if len(matches) > 1:
            raise TemplateValidationError(
                f"Should not be more than 1 tag with the same point number and type: {point_number}, {ied_tag_type}"
            )
        if matches:
            return matches[0]

        entry = IedTagEntry(device_filter=device_filter, point_number=point_number)
        self.points.append(entry)
        return entry

    def add_raw_row(self, cells: Sequence[str], rtac: RtacTemplate) -> IedTagEntry | None:
        """Ingest one row of the point table. Rows without a TRUE process flag are skipped.

        Columns: process, filter, point number, IED tag name, IED tag type,
        RTAC columns, SCADA point name, SCADA columns.
        """
        cells = list(cells) + [""] * (IED_DATA_COLUMNS - len(cells))
        (process, filter_text, point_text, tag_name, tag_type,
         rtac_columns, scada_point_name, scada_columns) = [str(c or "") for c in cells[:IED_DATA_COLUMNS]]

        if process.strip().upper() != "TRUE":
            return None

        point_number, is_absolute = parse_point_number(point_text)
        device_filter = FilterInfo.parse(filter_text)

        entry = self.get_or_create_tag_entry(tag_type, device_filter, point_number, rtac)
        entry.device_filter = device_filter
        entry.point_number = point_number
        entry.point_number_is_absolute = is_absolute
        entry.ied_tags.append(IedTagNameTypePair(tag_name, tag_type))

        if rtac_columns:
            parse_column_data_pairs(rtac_columns, entry.rtac_columns)
        if scada_point_name:
            entry.scada_point_name = scada_point_name
        if scada_columns:
            parse_column_data_pairs(scada_columns, entry.scada_columns)
        return entry

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, rtac: RtacTemplate) -> None:
        """Raise TemplateValidationError on the first structural problem found.

        Checks, in order:
        - no point maps two device tags onto the same server tag slot
        - the highest relative point number of each type is below its offset
        - analog status limits come in non-duplicated pairs
        - binary status nominal states are -1, 0 or 1
        - filters only name devices in this template, and every control
          has a status point with the same SCADA name
        """
        self._check_slot_collisions(rtac)
        self._check_offsets(rtac)
        self._check_analog_limits(rtac)
        self._check_binary_nominals(rtac)
        self._check_filters()
        self._check_control_links(rtac)
        log.debug("Template %s validated: %d points", self.name, len(self.points))

    def _check_slot_collisions(self, rtac: RtacTemplate) -> None:
        for entry in self.points:
            by_type: dict[str, list[IedTagNameTypePair]] = {}
            for pair in entry.ied_tags:
                full_name = rtac.get_server_tag_info_by_device(pair.ied_tag_type_name).full_name
                by_type.setdefault(full_name, []).append(pair)
            for full_name, pairs in by_type.items():
                if len(pairs) > 1:
                    raise TemplateValidationError(
                        f"Template {self.name} contains multiple tags of the same type:\n"
                        f"{pairs[0].ied_tag_name} of type {pairs[0].ied_tag_type_name} and\n"
                        f"{pairs[1].ied_tag_name} of type {pairs[1].ied_tag_type_name}."
                    )

    def _check_offsets(self, rtac: RtacTemplate) -> None:
        highest: dict[str, IedTagEntry] = {}
        for entry in self.points:
            if entry.point_number_is_absolute:
                continue
            root_name = rtac.get_server_tag_info_by_device(entry.first_tag.ied_tag_type_name).root_name
            current = highest.get(root_name)
            if current is None or entry.point_number > current.point_number:
                highest[root_name] = entry

        for root_name, entry in highest.items():
            offset = self.offset_for(root_name)
            if entry.point_number >= offset:
                raise TemplateValidationError(
                    f'Tag name "{entry.first_tag.ied_tag_name}" with point number {entry.point_number} '
                    f"is greater than or equal to the offset for the data type {root_name} at {offset}."
                )

    def _check_analog_limits(self, rtac: RtacTemplate) -> None:
        for entry in self.points:
            prototype = rtac.get_server_tag_prototype_by_device(entry.first_tag.ied_tag_type_name)
            if not (prototype.point_type.is_status and prototype.point_type.is_analog):
                continue
            lower, upper = prototype.nominal_columns
            limits = []
            for col, value in entry.scada_columns.items():
                if lower <= col <= upper and value.strip():
                    try:
                        limits.append(float(value))
                    except ValueError:
                        raise TemplateValidationError(
                            f'Tag name "{entry.first_tag.ied_tag_name}" has a non-numeric limit "{value}" '
                            f"in column {col}."
                        ) from None

            if len(limits) % 2 != 0:
                raise TemplateValidationError(
                    f'Tag name "{entry.first_tag.ied_tag_name}" has an odd number of limits. Limits must be in pairs.'
                )
            if len(limits) != len(set(limits)):
                raise TemplateValidationError(
                    f'Tag name "{entry.first_tag.ied_tag_name}" has a duplicate limit. Limits must be nested.'
                )

    def _check_binary_nominals(self, rtac: RtacTemplate) -> None:
        for entry in self.points:
            prototype = rtac.get_server_tag_prototype_by_device(entry.first_tag.ied_tag_type_name)
            if not (prototype.point_type.is_status and prototype.point_type.is_binary):
                continue
            column = prototype.nominal_columns[0]
            if column not in entry.scada_columns:
                raise TemplateValidationError(
                    f'Tag "{entry.first_tag.ied_tag_name}" is missing required column #{column}'
                )
            value = entry.scada_columns[column]
            try:
                state = int(value.strip())
            except ValueError:
                state = None
            if state not in (-1, 0, 1):
                raise TemplateValidationError(
                    f'Tag "{entry.first_tag.ied_tag_name}" has an invalid nominal state of "{value}".'
                )

    def _check_filters(self) -> None:
        device_names = {pair.ied_name for pair in self.ied_scada_names}
        for entry in self.points:
            unknown = [d for d in entry.device_filter.devices if d not in device_names]
            if unknown:
                raise TemplateValidationError(
                    f'Tag "{entry.first_tag.ied_tag_name}" has an invalid filter that references a device '
                    f"not in the template.\n\nFilter: {entry.device_filter}."
                )

    def _check_control_links(self, rtac: RtacTemplate) -> None:
        visible = [
            (entry.scada_point_name, rtac.get_server_tag_prototype_by_device(entry.first_tag.ied_tag_type_name).point_type)
            for entry in self.points
            if entry.scada_point_name != NO_SCADA_POINT
        ]
        status_names = {name for name, point_type in visible if point_type.is_status}
        for name, point_type in visible:
            if point_type.is_control and name not in status_names:
                raise TemplateValidationError(f'Tag "{name}" is a control with no linked status point.')

    # ------------------------------------------------------------------
    # Lookups used during expansion
    # ------------------------------------------------------------------

    def get_linked_status_point(self, ied_name: str, scada_point_name: str, rtac: RtacTemplate) -> IedTagEntry:
        """The single status point with this SCADA name generated for *ied_name*."""
        matches = [
            entry for entry in self.points
            if rtac.get_server_tag_prototype_by_device(entry.first_tag.ied_tag_type_name).point_type.is_status
            and entry.scada_point_name == scada_point_name
            and entry.device_filter.should_point_be_generated(ied_name)
        ]
        if len(matches) != 1:
            raise ConsistencyError(
                f'Search for linked point for tag "{scada_point_name}" returned something other than '
                f"exactly 1 result ({len(matches)} found)"
            )
        return matches[0]
