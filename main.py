from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from shadeplot.config import UsageArgumentParser, parse_hist2d_args, parse_plot_args
from shadeplot.devices.protocol import decode_stream, validate_stream
from shadeplot.errors import EXIT_INPUT_IO, EXIT_INTERRUPTED, EXIT_OK, EXIT_USAGE, InputReadFailure, PlotDataError
from shadeplot.histogram import Histogrammer, default_output_name, histogram_to_pages
from shadeplot.orchestrator import PlotSession
from shadeplot.pages import JsonlPageWriter, Page, read_pages


LOGGER = logging.getLogger("shadeplot")
PROG = "shadeplot"


def main(argv: list[str] | None = None) -> int:
    parser = UsageArgumentParser(prog=PROG)
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command", required=True)

    contour = sub.add_parser("contour", help="Shade or contour 2-D fields from a page file.", add_help=False)
    contour.add_argument("args", nargs=argparse.REMAINDER)

    hist2d = sub.add_parser("hist2d", help="Bin two columns into 2-D histogram pages.", add_help=False)
    hist2d.add_argument("args", nargs=argparse.REMAINDER)

    check = sub.add_parser("validate-stream", help="Check the frame bracketing of a recorded binary stream.")
    check.add_argument("stream", type=Path)
    check.add_argument("--json", action="store_true", help="Print a JSON summary instead of plain lines.")

    try:
        args = parser.parse_args(argv)
    except PlotDataError as exc:
        print(f"{PROG}: {exc.kind}: {exc}", file=sys.stderr)
        return exc.exit_code
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "contour":
            return _run_contour(args.args)
        if args.command == "hist2d":
            return _run_hist2d(args.args)
        if args.command == "validate-stream":
            return _run_validate(args.stream, as_json=args.json)
    except PlotDataError as exc:
        print(f"{PROG}: {exc.kind}: {exc}", file=sys.stderr)
        return exc.exit_code
    raise RuntimeError(f"unsupported command: {args.command}")


def _run_contour(argv: list[str]) -> int:
    config = parse_plot_args(argv)
    session = PlotSession(config)
    session.run()
    if session.interrupted:
        return EXIT_INTERRUPTED
    LOGGER.debug("plotted %d panels, skipped %d pages", len(session.results), session.pages_skipped)
    return EXIT_OK


def _run_hist2d(argv: list[str]) -> int:
    config = parse_hist2d_args(argv)
    hcfg = config.histogram
    output_name = config.output_name or default_output_name(hcfg, config.weight_column)
    writer = JsonlPageWriter(config.output)
    binner = Histogrammer(hcfg)
    histograms = binner.build_pages(
        read_pages(config.input),
        x_column=config.x_column,
        y_column=config.y_column,
        weight_column=config.weight_column,
        z_column=config.z_column,
    )
    for source, hist in histograms:
        pages = histogram_to_pages(
            hist,
            output_name=output_name,
            x_name=config.x_column,
            y_name=config.y_column,
            z_name=config.z_column,
            x_units=_column_units(source, config.x_column),
            y_units=_column_units(source, config.y_column),
            include_xy=hcfg.include_xy,
            source=source,
        )
        for page in pages:
            writer.write(page)
        LOGGER.debug("page %d: binned %d points", source.index, hist.n_binned)
    print(f"hist2d complete: pages={writer.pages_written} output={config.output}")
    return EXIT_OK


def _run_validate(path: Path, *, as_json: bool = False) -> int:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise InputReadFailure(f"unable to read {path}: {exc}") from exc
    try:
        commands = decode_stream(data)
    except ValueError as exc:
        print(f"{PROG}: {path}: {exc}", file=sys.stderr)
        return EXIT_INPUT_IO
    problems = validate_stream(commands)
    if as_json:
        print(json.dumps({"commands": len(commands), "problems": problems}, indent=2, sort_keys=True))
    else:
        for problem in problems:
            print(f"{path}: {problem}")
        print(f"commands={len(commands)} problems={len(problems)}")
    return EXIT_OK if not problems else EXIT_USAGE


def _column_units(page: Page, name: str) -> str:
    column = page.columns.get(name)
    return column.units if column is not None else ""


if __name__ == "__main__":
    raise SystemExit(main())
