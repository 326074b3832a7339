"""Command line entry point.

    openapi-extractor [ROOT] [--output PATH] [--check] [--strict] [-v|-q]

Exit codes: 0 success, 1 error diagnostics or drift, 2 fatal error.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

from openapi_extractor.config import load_config
from openapi_extractor.errors import ExtractorError
from openapi_extractor.lib.env import get_project_root, relative_to_root
from openapi_extractor.lib.logging import configure_logging
from openapi_extractor.openapi.emitter import format_report
from openapi_extractor.pipeline import run
from openapi_extractor.settings import get_settings

EXIT_OK = 0
EXIT_DIAGNOSTICS = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openapi-extractor",
        description="Generate an OpenAPI document from annotated controllers",
    )
    parser.add_argument("root", nargs="?", help="Project root (default: current directory)")
    parser.add_argument("--output", help="Output path relative to the project root")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Compare against the existing document instead of writing it",
    )
    parser.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log progress")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        level = "DEBUG"
    elif args.quiet:
        level = "ERROR"
    else:
        level = get_settings().log_level
    configure_logging(level)

    root = Path(args.root).resolve() if args.root else get_project_root()
    overrides = {"output": args.output, "strict": True if args.strict else None}

    try:
        config = load_config(root, overrides)
        result = run(root, config, check=args.check)
    except ExtractorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL

    diagnostics = result.diagnostics
    if diagnostics and not (args.quiet and result.ok):
        print(format_report(diagnostics))

    if not result.ok:
        print("OpenAPI extraction FAILED.", file=sys.stderr)
        return EXIT_DIAGNOSTICS

    if not args.quiet:
        if result.written is not None:
            print(f"Wrote {relative_to_root(result.written, root)}")
        else:
            print("Document is up to date.")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
