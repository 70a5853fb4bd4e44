"""Data models for tag processor generation."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from tagproc_gen.constants import (
    STATUS_BINARY, STATUS_ANALOG, CONTROL_BINARY, CONTROL_ANALOG,
)
from tagproc_gen.errors import ConfigurationError

# Key: 1-based column number, Value: cell text
OutputRow = dict[int, str]

_POINT_TYPES = {
    STATUS_BINARY.upper(): (True, True),
    STATUS_ANALOG.upper(): (True, False),
    CONTROL_BINARY.upper(): (False, True),
    CONTROL_ANALOG.upper(): (False, False),
}

_SERVER_TAG_TYPE_RE = re.compile(r"(\w+)(?:\[(\d+)\])?")

# Device.Tag pair, each part starting with a letter
_SOURCE_EXPRESSION_RE = re.compile(r"([^\W\d]\w*)\.([^\W\d]\w*)")


@dataclass(frozen=True)
class PointTypeInfo:
    """Status or control, binary or analog."""
    is_status: bool
    is_binary: bool

    @classmethod
    def from_text(cls, text: str) -> PointTypeInfo:
        """Parse text like ``StatusAnalog`` or ``CONTROLBINARY``."""
        flags = _POINT_TYPES.get(text.strip().upper())
        if flags is None:
            raise ConfigurationError(f"Point type {text} is not a valid point type.")
        return cls(is_status=flags[0], is_binary=flags[1])

    @property
    def is_control(self) -> bool:
        return not self.is_status

    @property
    def is_analog(self) -> bool:
        return not self.is_binary

    @property
    def name(self) -> str:
        if self.is_status:
            return STATUS_BINARY if self.is_binary else STATUS_ANALOG
        return CONTROL_BINARY if self.is_binary else CONTROL_ANALOG

    def __str__(self) -> str:
        return self.name


class FilterPredicate(Enum):
    ALL = "ALL"
    SOME = "SOME"
    NOT = "NOT"


@dataclass(frozen=True, eq=False)
class FilterInfo:
    """Device inclusion/exclusion filter parsed from text like ``NOT IED1,IED2``."""
    predicate: FilterPredicate = FilterPredicate.ALL
    devices: tuple[str, ...] = ()
    text: str = ""

    @classmethod
    def parse(cls, text: str) -> FilterInfo:
        raw = text or ""
        if not raw or raw.startswith("ALL"):
            return cls(FilterPredicate.ALL, (), raw)
        if raw.startswith("NOT"):
            rest = raw[len("NOT"):].strip()
            return cls(FilterPredicate.NOT, tuple(d.strip() for d in rest.split(",")), raw)
        # SOME is implied by the lack of a verb
        return cls(FilterPredicate.SOME, tuple(d.strip() for d in raw.strip().split(",")), raw)

    def should_point_be_generated(self, device_name: str) -> bool:
        if self.predicate == FilterPredicate.SOME:
            return device_name in self.devices
        if self.predicate == FilterPredicate.NOT:
            return device_name not in self.devices
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterInfo):
            return NotImplemented
        return self.predicate == other.predicate and self.devices == other.devices

    def __hash__(self) -> int:
        return hash((self.predicate, self.devices))

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ServerTagInfo:
    """Server tag type name split into root and array index, e.g. ``DNPC[2]``."""
    full_name: str
    root_name: str
    index: int = 0
    is_array: bool = False

    @classmethod
    def parse(cls, full_name: str) -> ServerTagInfo:
        m = _SERVER_TAG_TYPE_RE.search(full_name)
        if not m:
            raise ConfigurationError(f"Invalid tag type name: {full_name}")
        is_array = m.group(2) is not None
        return cls(
            full_name=full_name,
            root_name=m.group(1),
            index=int(m.group(2)) if is_array else 0,
            is_array=is_array,
        )


@dataclass
class ServerTagPrototypeEntry:
    """One slot of a server tag prototype. Non-array types have one slot."""
    name_template: str
    standard_columns: OutputRow = field(default_factory=dict)


@dataclass
class ServerTagRootPrototype:
    entries: list[Optional[ServerTagPrototypeEntry]] = field(default_factory=list)
    sorting_column: int = -1
    point_type: Optional[PointTypeInfo] = None
    # (lower, upper) SCADA columns; both equal for binaries
    nominal_columns: Optional[tuple[int, int]] = None


@dataclass(frozen=True)
class ServerTagMapInfo:
    server_tag_type_name: str
    perform_quality_wrapping: bool


@dataclass
class ScadaTagPrototype:
    standard_columns: OutputRow = field(default_factory=dict)
    key_format: str = ""
    csv_header: str = ""
    csv_row_defaults: str = ""
    sorting_column: int = 0


@dataclass
class IedTagNameTypePair:
    ied_tag_name: str
    ied_tag_type_name: str


@dataclass
class IedScadaNamePair:
    ied_name: str
    scada_name: str


@dataclass
class IedTagEntry:
    """A logical point: every device tag sharing one address and filter."""
    device_filter: FilterInfo = field(default_factory=FilterInfo)
    point_number: int = 0
    point_number_is_absolute: bool = False
    ied_tags: list[IedTagNameTypePair] = field(default_factory=list)
    rtac_columns: OutputRow = field(default_factory=dict)
    scada_point_name: str = ""
    scada_columns: OutputRow = field(default_factory=dict)

    @property
    def first_tag(self) -> IedTagNameTypePair:
        return self.ied_tags[0]


@dataclass
class RtacOutputRow:
    columns: OutputRow
    # Keeps array slots of the same address in slot order when sorted
    slot_fraction: float = 0.0


class QualityWrapMode(IntEnum):
    NONE = 0
    GROUP_ALL_BY_DEVICE = 1
    WRAP_FIRST_GROUP_REST_BY_DEVICE = 2
    WRAP_INDIVIDUALLY = 3

    @property
    def cli_name(self) -> str:
        return self.name.lower().replace("_", "-")


@dataclass
class TagProcessorMapEntry:
    """One line of the tag processor map.

    ``parsed_device_name`` and ``parsed_tag_name`` are derived from the source
    expression and must be refreshed through ``set_source_expression``.
    """
    destination_tag_name: str = ""
    destination_tag_data_type: str = ""
    source_expression: str = ""
    source_expression_data_type: str = ""
    point_type: Optional[PointTypeInfo] = None
    scada_row: Optional[OutputRow] = None
    perform_quality_wrapping: bool = False
    nominal_value_columns: Optional[tuple[int, int]] = None
    time_source_tag_name: str = ""
    quality_source_tag_name: str = ""
    parsed_device_name: str = field(default="", init=False)
    parsed_tag_name: str = field(default="", init=False)

    def __post_init__(self) -> None:
        self.recompute_derived()

    @classmethod
    def conditional(cls, text: str) -> TagProcessorMapEntry:
        """Build a pseudo-entry carrying only a conditional statement."""
        return cls(source_expression=text, point_type=PointTypeInfo(is_status=True, is_binary=True))

    def set_source_expression(self, expression: str) -> None:
        self.source_expression = expression
        self.recompute_derived()

    def recompute_derived(self) -> None:
        m = _SOURCE_EXPRESSION_RE.search(self.source_expression)
        if m:
            self.parsed_device_name = m.group(1)
            self.parsed_tag_name = f"{m.group(1)}.{m.group(2)}"
        else:
            self.parsed_device_name = self.source_expression
            self.parsed_tag_name = self.source_expression
