import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from rich.console import Console

from gnash.__version__ import __version__
from gnash.config import load_settings
from gnash.core.analysis import analyze_project
from gnash.core.errors import GnashError
from gnash.core.graph import MANIFEST
from gnash.report import print_report, report_dict

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gnash",
        description="Scan the installed dependencies of a node project for suspicious code patterns.",
    )
    parser.add_argument("project_dir", help="directory holding package.json and package-lock.json")
    parser.add_argument("--verbose", action="store_true", help="list every detection with its location")
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    parser.add_argument("--tui", action="store_true", help="browse the dependency tree interactively")
    parser.add_argument("--config", metavar="PATH", help="config file (default: PROJECT_DIR/.gnash.toml)")
    parser.add_argument("--debug", action="store_true", help="log debug messages")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def validate_project_dir(path: str) -> Optional[str]:
    """Returns an error message, or None when path looks like a node project."""
    if not os.path.exists(path):
        return f"{path} does not exist"
    if not os.path.isdir(path):
        return f"{path} is not a directory"
    if not os.path.isfile(os.path.join(path, MANIFEST)):
        return f"No {MANIFEST} found in {path}"
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """ Entrypoint when is installed via pip """
    args = build_parser().parse_args(argv)
    console = Console(stderr=True)
    level = logging.DEBUG if args.debug else logging.WARNING

    problem = validate_project_dir(args.project_dir)
    if problem:
        console.print(f"[bold red]Error:[/] {problem}", highlight=False)
        return 1

    try:
        settings = load_settings(args.project_dir, args.config)
    except GnashError as e:
        console.print(f"[bold red]Error:[/] {e}", highlight=False)
        return 1

    if args.tui:
        # The terminal belongs to the app
        logging.basicConfig(filename=settings.log_file, level=logging.DEBUG, filemode="w", format=LOG_FORMAT)

        from gnash.app import GnashApp

        GnashApp(args.project_dir, settings).run()
        return 0

    logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT)

    try:
        graph = asyncio.run(analyze_project(args.project_dir, settings))
    except GnashError as e:
        logging.debug(f"Analysis failed: {e!r}")
        console.print(f"[bold red]Error:[/] {e}", highlight=False)
        return 1

    out = Console()
    if args.json:
        out.print_json(data=report_dict(graph))
    else:
        print_report(graph, verbose=args.verbose, console=out)
    return 0


# Development mode
if __name__ == "__main__":
    sys.exit(main())
