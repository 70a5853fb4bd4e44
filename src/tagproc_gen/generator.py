"""Generation driver: reads every template, expands device instances, writes the CSVs.

``generate()`` owns a ``GenerationContext`` holding the workbook and every
template for one run. Each step updates ``context.phase`` so a failure can
report what was running when it happened.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from openpyxl.workbook.workbook import Workbook

from tagproc_gen import parsers
from tagproc_gen.columns import merge_columns
from tagproc_gen.constants import (
    NO_SCADA_POINT, TPL_DEF, TPL_DEF_SHEET, TPL_IED_DEF, TPL_RTAC_DEF,
    TPL_RTAC_SHEET, TPL_RTAC_TAG_PROC_WRAP_MODE, TPL_SCADA_DEF, TPL_SCADA_SHEET,
)
from tagproc_gen.errors import (
    ConfigurationError, GenerationFailedError, TagGenerationError, TemplateValidationError,
)
from tagproc_gen.ied import IedTemplate, substitute_tag_name
from tagproc_gen.models import IedScadaNamePair, IedTagEntry, QualityWrapMode
from tagproc_gen.rtac import RtacTemplate
from tagproc_gen.scada import ScadaTemplate
from tagproc_gen.tag_processor import RtacTagProcessorWorksheet

log = logging.getLogger(__name__)


@dataclass
class GenerationContext:
    source: Path
    output_dir: Optional[Path] = None
    wrap_mode_override: Optional[QualityWrapMode] = None
    workbook: Optional[Workbook] = None
    global_pointers: dict[str, str] = field(default_factory=dict)
    rtac: RtacTemplate = field(default_factory=RtacTemplate)
    scada: ScadaTemplate = field(default_factory=ScadaTemplate)
    tag_processor: RtacTagProcessorWorksheet = field(default_factory=RtacTagProcessorWorksheet)
    ied_templates: list[IedTemplate] = field(default_factory=list)
    phase: str = "Starting"

    def enter(self, phase: str) -> None:
        self.phase = phase
        log.info(phase)


@dataclass
class GenerationResult:
    written: list[Path] = field(default_factory=list)
    wrap_mode: QualityWrapMode = QualityWrapMode.NONE
    map_entries: int = 0
    templates: int = 0
    longest_tag: str = ""
    longest_tag_length: int = 0


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def load_pointers(ctx: GenerationContext) -> None:
    """Read the global pointers, then the pointer ranges of every template sheet."""
    wb = ctx.workbook
    ctx.global_pointers = parsers.read_pointers(
        parsers.get_sheet(wb, TPL_DEF_SHEET), TPL_DEF, TPL_RTAC_DEF, TPL_SCADA_DEF, TPL_IED_DEF,
    )
    ctx.rtac.pointers = parsers.read_pointers(
        parsers.get_sheet(wb, TPL_RTAC_SHEET), ctx.global_pointers[TPL_RTAC_DEF], *parsers.RTAC_POINTERS,
    )
    ctx.scada.pointers = parsers.read_pointers(
        parsers.get_sheet(wb, TPL_SCADA_SHEET), ctx.global_pointers[TPL_SCADA_DEF], *parsers.SCADA_POINTERS,
    )
    for template in ctx.ied_templates:
        template.pointers = parsers.read_pointers(
            wb[template.name], ctx.global_pointers[TPL_IED_DEF], *parsers.IED_POINTERS,
        )


def resolve_wrap_mode(ctx: GenerationContext) -> QualityWrapMode:
    if ctx.wrap_mode_override is not None:
        return QualityWrapMode(ctx.wrap_mode_override)
    raw = ctx.rtac.pointers.get(TPL_RTAC_TAG_PROC_WRAP_MODE, "").strip()
    try:
        return QualityWrapMode(int(raw))
    except ValueError:
        raise ConfigurationError(
            f"Invalid tag processor quality wrap mode {raw!r}. Expecting 0, 1, 2 or 3."
        ) from None


def point_address(ctx: GenerationContext, entry: IedTagEntry) -> int:
    """Absolute point numbers are used as is; relative ones add the running type offset."""
    if entry.point_number_is_absolute:
        return entry.point_number
    root_name = ctx.rtac.get_server_tag_info_by_device(entry.first_tag.ied_tag_type_name).root_name
    return ctx.rtac.get_running_offset(root_name) + entry.point_number


def generate_point(ctx: GenerationContext, template: IedTemplate, names: IedScadaNamePair, tag: IedTagEntry) -> None:
    """Emit SCADA, RTAC and tag processor output of one point for one device."""
    rtac, scada = ctx.rtac, ctx.scada
    root_name = rtac.get_server_tag_info_by_device(tag.first_tag.ied_tag_type_name).root_name
    prototype = rtac.get_prototype(root_name)
    point_type = prototype.point_type
    address = point_address(ctx, tag)

    process_scada = tag.scada_point_name != NO_SCADA_POINT
    scada_full_name = ""
    rtac_alias = ""
    if process_scada:
        scada_full_name = scada.scada_name(names.scada_name, tag.scada_point_name)
        scada.validate_tag_name(scada_full_name)
        rtac_alias = rtac.get_rtac_alias(scada_full_name, point_type)
        rtac.validate_tag_alias(rtac_alias)

    scada_prototype = scada.get_prototype(point_type)
    scada_columns = dict(scada_prototype.standard_columns)
    if process_scada:
        scada_columns = merge_columns(scada_prototype.standard_columns, tag.scada_columns, "SCADA")
        key_address = None
        if point_type.is_control:
            # Controls key off their linked status point
            linked = template.get_linked_status_point(names.ied_name, tag.scada_point_name, rtac)
            key_address = point_address(ctx, linked)
        scada.replace_scada_keywords(scada_columns, scada_full_name, address, scada_prototype.key_format, key_address)
        scada.add_scada_tag_output(point_type.name, scada_columns)

    slot_count = len(prototype.entries)
    for index, entry in enumerate(prototype.entries):
        rtac_columns = merge_columns(entry.standard_columns, tag.rtac_columns, "RTAC")
        server_tag_name = rtac.generate_server_tag_name(entry, address)
        if not process_scada:
            continue

        slot_tags = [
            pair for pair in tag.ied_tags
            if rtac.get_server_tag_info_by_device(pair.ied_tag_type_name).index == index
        ]
        if len(slot_tags) > 1:
            raise TemplateValidationError(
                f"Too many tags that map to {root_name}. Tag = {slot_tags[0].ied_tag_name}"
            )
        if slot_tags:
            pair = slot_tags[0]
            map_info = rtac.get_server_type_by_ied_type(pair.ied_tag_type_name)
            suffix = rtac.get_array_suffix(rtac.get_server_tag_info_by_device(pair.ied_tag_type_name))
            ctx.tag_processor.add_entry(
                "Tags." + rtac_alias + suffix,
                map_info.server_tag_type_name,
                substitute_tag_name(pair.ied_tag_name, names.ied_name),
                pair.ied_tag_type_name,
                point_type,
                scada_columns,
                map_info.perform_quality_wrapping,
                prototype.nominal_columns,
            )

        rtac.replace_rtac_keywords(rtac_columns, server_tag_name, str(address), rtac_alias)
        rtac.add_rtac_tag_output(root_name, rtac_columns, index / slot_count)


def generate_ied_tags(ctx: GenerationContext, template: IedTemplate) -> None:
    """Expand every point of *template* for each of its device instances."""
    for names in template.ied_scada_names:
        generated = 0
        for tag in template.points:
            if not tag.device_filter.should_point_be_generated(names.ied_name):
                continue
            generate_point(ctx, template, names, tag)
            generated += 1
        log.debug("Device %s (%s): %d points", names.ied_name, names.scada_name, generated)

        # Next device starts after this one's reserved address block
        for root_name in template.offsets:
            ctx.rtac.increment_base_address(root_name, template.offset_for(root_name))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _run(ctx: GenerationContext) -> GenerationResult:
    ctx.enter("Opening workbook")
    ctx.workbook = parsers.open_workbook(ctx.source)

    ctx.enter("Locating templates")
    ctx.ied_templates = [IedTemplate(name) for name in parsers.template_sheet_names(ctx.workbook)]
    if not ctx.ied_templates:
        raise ConfigurationError("No device templates found. Template sheet names must start with TPL_.")

    ctx.enter("Loading pointers")
    load_pointers(ctx)

    ctx.enter("Reading RTAC template")
    parsers.read_rtac_template(ctx.workbook[TPL_RTAC_SHEET], ctx.rtac, ctx.tag_processor)
    wrap_mode = resolve_wrap_mode(ctx)

    ctx.enter("Reading SCADA template")
    parsers.read_scada_template(ctx.workbook[TPL_SCADA_SHEET], ctx.scada)

    for template in ctx.ied_templates:
        ctx.enter(f"Reading template {template.name}")
        parsers.read_ied_template(ctx.workbook[template.name], template, ctx.rtac)
        ctx.enter(f"Validating template {template.name}")
        template.validate(ctx.rtac)

    for template in ctx.ied_templates:
        ctx.enter(f"Generating tags for template {template.name}")
        generate_ied_tags(ctx, template)

    result = GenerationResult(wrap_mode=wrap_mode, templates=len(ctx.ied_templates))
    ctx.enter("Writing tag processor map")
    result.written.append(ctx.tag_processor.write_csv(ctx.source, wrap_mode, ctx.output_dir))
    result.map_entries = len(ctx.tag_processor.entries)

    ctx.enter("Writing SCADA tags")
    result.written.extend(ctx.scada.write_all_scada_tags(ctx.source, ctx.output_dir))

    ctx.enter("Writing RTAC server tags")
    result.written.extend(ctx.rtac.write_all_server_tags(ctx.source, ctx.output_dir))

    result.longest_tag = ctx.scada.max_validated_tag
    result.longest_tag_length = ctx.scada.max_validated_tag_length
    return result


def generate(
    filepath: Path,
    output_dir: Path | None = None,
    wrap_mode: QualityWrapMode | None = None,
) -> GenerationResult:
    """Generate every output CSV for the workbook at *filepath*.

    Output goes next to the workbook unless *output_dir* is given.
    *wrap_mode* overrides the workbook's quality wrap mode.

    Raises GenerationFailedError naming the phase that failed.
    """
    ctx = GenerationContext(source=Path(filepath), output_dir=output_dir, wrap_mode_override=wrap_mode)
    try:
        return _run(ctx)
    except TagGenerationError as exc:
        raise GenerationFailedError(str(exc), phase=ctx.phase) from exc
    finally:
        if ctx.workbook is not None:
            ctx.workbook.close()
