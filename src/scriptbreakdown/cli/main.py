from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from scriptbreakdown.cli.commands import (
    documents_cmd,
    import_cmd,
    init_cmd,
    jobs_cmd,
    run_cmd,
    web_cmd,
)
from scriptbreakdown.cli.context import CLIContext
from scriptbreakdown.core.config import load_paths, load_settings
from scriptbreakdown.core.errors import BreakdownError
from scriptbreakdown.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="breakdown",
        description="Screenplay scene breakdown CLI",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .breakdown data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    import_cmd.register(subparsers)
    documents_cmd.register(subparsers)
    run_cmd.register(subparsers)
    jobs_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    ctx = CLIContext(
        paths=load_paths(args.project_root),
        settings=load_settings(),
        console=console,
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except BreakdownError as exc:
        logger.error(str(exc))
        return 1
