#!/usr/bin/env python3
"""keypoints/cli.py — command-line front end for the key-point analysis.

Usage examples
--------------
    # Report key points of every function in a dump
    keypoints analyze prog.dump.json

    # Only main(), SARIF output to a file
    keypoints analyze prog.dump.json --function main -f sarif -o out.sarif

    # Treat a project-specific reader as an input source too
    keypoints analyze prog.dump.json --source read_packet

    # Recognize nothing but the named sources
    keypoints analyze prog.dump.json --only-sources --source recv

    # List the built-in input functions / registered passes
    keypoints sources
    keypoints passes

Exit codes
----------
    0   Success, no input-influenced loop condition found.
    1   At least one input-influenced loop condition was reported.
    2   Infrastructure failure (unreadable or malformed dump, bad option).

The module doubles as ``python -m keypoints`` via ``keypoints/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import time
from pathlib import Path
from typing import Optional, Sequence, TextIO

from . import __version__
from .errors import KeyPointsError
from .ir import Module
from .ir_dump import load_dump
from .passes import analyze_module, default_registry
from .reporter import FORMATS, Reporter
from .taint_analysis import TaintConfig, create_default_config

_log = logging.getLogger("keypoints")

EXIT_OK: int = 0
EXIT_FINDINGS: int = 1
EXIT_INFRA: int = 2

_HANDLER_NAME = "keypoints-cli"


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``keypoints`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("keypoints")
    root.setLevel(level)
    # main() may run more than once per process; keep a single CLI handler
    for old in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → stdout; otherwise open *dest* for writing."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _config_from_args(args: argparse.Namespace) -> TaintConfig:
    extra = args.source or []
    if args.only_sources:
        return TaintConfig.from_names(extra)
    return create_default_config().with_functions(*extra)


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    """Load a dump, run the pipeline over the selected functions, report."""
    config = _config_from_args(args)
    passes = default_registry().parse_pipeline(args.passes, config)

    _log.info("Loading dump file: %s", args.dump_file)
    module: Module = load_dump(args.dump_file)

    functions = module.functions
    if args.function:
        wanted = set(args.function)
        functions = [fn for fn in functions if fn.name in wanted]
        for name in sorted(wanted - {fn.name for fn in functions}):
            _log.warning("Function not found in dump: %s", name)

    t0 = time.monotonic()
    results = analyze_module(
        module, config, jobs=args.jobs, passes=passes, functions=functions,
    )

    out = _open_output(args.output)
    try:
        reporter = Reporter(out, fmt=args.format, tool_version=__version__)
        for fn in functions:
            reporter.report(fn.name, results[fn.name])
        stats = reporter.finish()
    finally:
        if out is not sys.stdout:
            out.close()
    _log.info("Analysis completed in %.3fs: %s",
              time.monotonic() - t0, stats.summary_line())

    return EXIT_FINDINGS if stats.influenced_loops else EXIT_OK


def cmd_sources(args: argparse.Namespace) -> int:
    for name in sorted(create_default_config().input_functions):
        sys.stdout.write(name + "\n")
    return EXIT_OK


def cmd_passes(args: argparse.Namespace) -> int:
    for name in default_registry().names():
        sys.stdout.write(name + "\n")
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keypoints",
        description=(
            "Locate instrumentation key points in an IR dump: indirect calls,\n"
            "conditional branches and loop conditions influenced by input."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              keypoints analyze prog.dump.json
              keypoints analyze prog.dump.json -f sarif -o prog.sarif
              keypoints analyze prog.dump.json --source read_packet
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        aliases=["analyse"],
        help="Report key points found in a JSON IR dump.",
    )
    p_analyze.add_argument(
        "dump_file",
        metavar="DUMP",
        help="JSON IR dump file.",
    )
    p_analyze.add_argument(
        "-f", "--format",
        choices=list(FORMATS),
        default="plain",
        help="Output format (default: plain).",
    )
    p_analyze.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p_analyze.add_argument(
        "--function",
        action="append",
        metavar="NAME",
        help="Only analyze the named function (repeatable).",
    )
    p_analyze.add_argument(
        "--source",
        action="append",
        metavar="NAME",
        help="Additional input-producing function name (repeatable).",
    )
    p_analyze.add_argument(
        "--only-sources",
        action="store_true",
        help="Recognize only the --source names, not the built-in list.",
    )
    p_analyze.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        metavar="N",
        help="Analyze up to N functions concurrently (default: 1).",
    )
    p_analyze.add_argument(
        "--passes",
        default="key-points-pass",
        metavar="PIPELINE",
        help="Comma-separated pass pipeline (default: key-points-pass).",
    )
    p_analyze.set_defaults(func=cmd_analyze)

    # --- sources / passes --------------------------------------------------
    p_sources = subparsers.add_parser(
        "sources", help="List the built-in input-producing function names.",
    )
    p_sources.set_defaults(func=cmd_sources)

    p_passes = subparsers.add_parser("passes", help="List registered passes.")
    p_passes.set_defaults(func=cmd_passes)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the keypoints CLI and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyPointsError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
