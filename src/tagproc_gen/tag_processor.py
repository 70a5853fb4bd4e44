"""RTAC tag processor map and bad-quality substitution wrapping.

At RTAC startup the tag processor can pass bad quality data to the server,
which shows up in SCADA as nuisance alarms. Device tags can be wrapped in
IEC 61131-3 conditionals that substitute a nominal value while the source
quality is bad:

    IF (IED1.Ind01.q.validity <> good) THEN
        dest := <nominal>
    ELSE
        dest := IED1.Ind01.stVal
    END_IF

Nominal values are the SCADA normal state for binaries, and a value inside
the innermost alarm limit pair for analogs.
"""
from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Sequence

from tagproc_gen.columns import replace_tag_keywords
from tagproc_gen.constants import TAG_PROCESSOR_SUFFIX
from tagproc_gen.errors import ConfigurationError
from tagproc_gen.models import (
    OutputRow, PointTypeInfo, QualityWrapMode, TagProcessorMapEntry,
)
from tagproc_gen.writers import output_path, write_rows

log = logging.getLogger(__name__)

DESTINATION = "{DESTINATION}"
DESTINATION_TYPE = "{DESTINATION_TYPE}"
SOURCE = "{SOURCE}"
SOURCE_TYPE = "{SOURCE_TYPE}"
TIME_SOURCE = "{TIME_SOURCE}"
QUALITY_SOURCE = "{QUALITY_SOURCE}"


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def get_nominal_value(
    point_type: PointTypeInfo,
    scada_row: OutputRow,
    nominal_columns: tuple[int, int],
) -> str:
    """Value to substitute for a bad quality point.

    Binaries: the SCADA normal state as TRUE/FALSE (FALSE when absent).
    Analogs: the mean of the two middle limits in the nominal column range,
    or 0 when fewer than two limits are defined.
    """
    lower, upper = nominal_columns
    if point_type.is_binary:
        if lower not in scada_row:
            return "FALSE"
        try:
            state = int(scada_row[lower].strip())
        except ValueError:
            raise ConfigurationError(
                f"Invalid nominal state {scada_row[lower]!r} in SCADA column {lower}"
            ) from None
        return "TRUE" if state else "FALSE"

    limits = []
    for col, value in scada_row.items():
        if lower <= col <= upper and value.strip():
            try:
                limits.append(float(value))
            except ValueError:
                raise ConfigurationError(f"Invalid analog limit {value!r} in SCADA column {col}") from None
    limits.sort()

    middle_start = math.floor(len(limits) / 2) - 1
    if middle_start < 0:
        return "0"
    return _format_number((limits[middle_start] + limits[middle_start + 1]) / 2)


class TagQualityWrapGenerator:
    """Wraps a group of tag processor entries in one quality check."""

    QUALITY_CONDITIONAL_TEMPLATE = "IF ({TAG}.q.validity <> good) THEN"
    ELSE_TEMPLATE = "ELSE"
    END_IF_TEMPLATE = "END_IF"
    TIME_SOURCE_TEMPLATE = "{TAG}.t"
    QUALITY_SOURCE_TEMPLATE = "{TAG}.q"
    TAG_KEYWORD = "{TAG}"

    def __init__(self, tags_to_wrap: Sequence[TagProcessorMapEntry]) -> None:
        self.tags_to_wrap = list(tags_to_wrap)

    def generate(self) -> list[TagProcessorMapEntry]:
        """Return IF / nominal entries / ELSE / original entries / END_IF.

        The condition checks the quality of the first tag only.
        """
        if not self.tags_to_wrap:
            return []

        first_tag_name = self.tags_to_wrap[0].parsed_tag_name
        output = [self.conditional(self.QUALITY_CONDITIONAL_TEMPLATE, first_tag_name)]

        for tag in self.tags_to_wrap:
            output.append(TagProcessorMapEntry(
                destination_tag_name=tag.destination_tag_name,
                destination_tag_data_type=tag.destination_tag_data_type,
                source_expression=get_nominal_value(tag.point_type, tag.scada_row, tag.nominal_value_columns),
                time_source_tag_name=self.TIME_SOURCE_TEMPLATE.replace(self.TAG_KEYWORD, tag.parsed_tag_name),
                quality_source_tag_name=self.QUALITY_SOURCE_TEMPLATE.replace(self.TAG_KEYWORD, tag.parsed_tag_name),
                point_type=tag.point_type,
            ))

        output.append(self.conditional(self.ELSE_TEMPLATE))
        output.extend(self.tags_to_wrap)
        output.append(self.conditional(self.END_IF_TEMPLATE))
        return output

    @classmethod
    def conditional(cls, text: str, quality_tag: str | None = None) -> TagProcessorMapEntry:
        if quality_tag is not None:
            text = text.replace(cls.TAG_KEYWORD, quality_tag)
        return TagProcessorMapEntry.conditional(text)


class RtacTagProcessorWorksheet:
    """Collects tag processor entries and writes the tag processor map."""

    def __init__(self) -> None:
        self.columns_template: OutputRow = {}
        self.entries: list[TagProcessorMapEntry] = []

    def add_entry(
        self,
        scada_tag: str,
        scada_tag_data_type: str,
        ied_tag_name: str,
        ied_data_type: str,
        point_type: PointTypeInfo,
        scada_row: OutputRow,
        perform_quality_wrapping: bool,
        nominal_value_columns: tuple[int, int] | None,
    ) -> TagProcessorMapEntry:
        """Add a map entry. Status flows IED -> SCADA, control flows SCADA -> IED."""
        if point_type is not None and point_type.is_status:
            dest, dest_type, source, source_type = scada_tag, scada_tag_data_type, ied_tag_name, ied_data_type
        elif point_type is not None and point_type.is_control:
            dest, dest_type, source, source_type = ied_tag_name, ied_data_type, scada_tag, scada_tag_data_type
        else:
            raise ConfigurationError("Invalid direction")

        entry = TagProcessorMapEntry(
            destination_tag_name=dest,
            destination_tag_data_type=dest_type,
            source_expression=source,
            source_expression_data_type=source_type,
            point_type=point_type,
            scada_row=scada_row,
            perform_quality_wrapping=perform_quality_wrapping,
            nominal_value_columns=nominal_value_columns,
        )
        self.entries.append(entry)
        return entry

    def wrap_with_quality_substitutions(self, wrap_mode: QualityWrapMode) -> list[TagProcessorMapEntry]:
        """Return the map with quality wrapping applied.

        Entries that are not quality wrapped follow all wrapped device groups.
        """
        wrap_mode = QualityWrapMode(wrap_mode)
        if wrap_mode == QualityWrapMode.NONE:
            return list(self.entries)

        wrapped = [e for e in self.entries if e.perform_quality_wrapping]
        unwrapped = [e for e in self.entries if not e.perform_quality_wrapping]

        # Group by device, keeping the order devices are first seen
        device_order: dict[str, list[TagProcessorMapEntry]] = {}
        for entry in wrapped:
            device_order.setdefault(entry.parsed_device_name, []).append(entry)

        output: list[TagProcessorMapEntry] = []
        for device_name, group in device_order.items():
            if wrap_mode == QualityWrapMode.GROUP_ALL_BY_DEVICE:
                # Some points initialize earlier than others, so one check per device can miss some
                output.extend(TagQualityWrapGenerator(group).generate())
            elif wrap_mode == QualityWrapMode.WRAP_FIRST_GROUP_REST_BY_DEVICE:
                output.extend(TagQualityWrapGenerator(group[:1]).generate())
                if len(group) > 1:
                    output.extend(TagQualityWrapGenerator(group[1:]).generate())
            elif wrap_mode == QualityWrapMode.WRAP_INDIVIDUALLY:
                for entry in group:
                    output.extend(TagQualityWrapGenerator([entry]).generate())
            log.debug("Wrapped %d tags of device %s (%s)", len(group), device_name, wrap_mode.name)

        output.extend(unwrapped)
        return output

    def output_rows(self, entries: Sequence[TagProcessorMapEntry]) -> list[OutputRow]:
        rows = []
        for entry in entries:
            row = dict(self.columns_template)
            replace_tag_keywords(row, {
                DESTINATION: entry.destination_tag_name,
                DESTINATION_TYPE: entry.destination_tag_data_type,
                SOURCE: entry.source_expression,
                SOURCE_TYPE: entry.source_expression_data_type,
                TIME_SOURCE: entry.time_source_tag_name,
                QUALITY_SOURCE: entry.quality_source_tag_name,
            })
            rows.append(row)
        return rows

    def write_csv(self, source: Path, wrap_mode: QualityWrapMode, output_dir: Path | None = None) -> Path:
        entries = self.wrap_with_quality_substitutions(wrap_mode)
        log.info("Tag processor: %d map entries, %d lines after wrapping", len(self.entries), len(entries))
        path = output_path(source, TAG_PROCESSOR_SUFFIX, output_dir)
        return write_rows(path, self.output_rows(entries))
