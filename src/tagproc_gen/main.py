"""CLI entry point for the tag processor generator."""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from tagproc_gen.errors import GenerationFailedError
from tagproc_gen.generator import generate
from tagproc_gen.models import QualityWrapMode

_WRAP_MODES = {mode.cli_name: mode for mode in QualityWrapMode}


def _wrap_mode(text: str) -> QualityWrapMode:
    """Accept a wrap mode by number (0-3) or by name, e.g. ``wrap-individually``."""
    value = text.strip().lower()
    if value in _WRAP_MODES:
        return _WRAP_MODES[value]
    try:
        return QualityWrapMode(int(value))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid wrap mode {text!r} (choose 0-3 or one of: {', '.join(_WRAP_MODES)})"
        ) from None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tagproc-gen",
        description="Tag Processor Generator: SCADA and RTAC tag maps from a template workbook",
    )
    parser.add_argument(
        "workbook",
        type=Path,
        help="Path to the template workbook (.xlsx / .xlsm)",
    )
    parser.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=None,
        help="Output directory for the CSV files (default: next to the workbook)",
    )
    parser.add_argument(
        "--wrap-mode",
        type=_wrap_mode,
        default=None,
        help="Override the workbook's tag processor quality wrap mode (0-3 or name)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log generation detail",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.workbook.exists():
        print(f"Error: workbook not found: {args.workbook}", file=sys.stderr)
        return 1

    print("=" * 60)
    print("Tag Processor Generator")
    print("=" * 60)

    print(f"\n[1/2] Generating from: {args.workbook}")
    t0 = time.perf_counter()
    try:
        result = generate(args.workbook, output_dir=args.output_dir, wrap_mode=args.wrap_mode)
    except GenerationFailedError as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        return 1
    t1 = time.perf_counter()
    print(f"       Processed {result.templates} templates in {t1 - t0:.2f}s")
    print(f"         Tag processor entries: {result.map_entries}")
    print(f"         Quality wrap mode: {result.wrap_mode.cli_name}")

    print(f"\n[2/2] Written files:")
    for path in result.written:
        print(f"       {path}")

    print(f"\n{'=' * 60}")
    if result.longest_tag:
        print(f"Done. Longest SCADA tag name: \"{result.longest_tag}\" ({result.longest_tag_length} characters)")
    else:
        print("Done. No SCADA tags generated.")
    print(f"{'=' * 60}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
