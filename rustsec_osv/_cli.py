"""
Command-line entrypoints for `rustsec-osv`.
"""

from __future__ import annotations

import argparse
import enum
import logging
import os
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import NoReturn

from rustsec_osv import __version__
from rustsec_osv._export import DEFAULT_COLLECTIONS, ExportError, OsvExporter
from rustsec_osv._git import GitError
from rustsec_osv._state import ExportSpinner, ExportState

logging.basicConfig()
logger = logging.getLogger(__name__)

# NOTE: We configure the top package logger, rather than the root logger,
# to avoid overly verbose logging in third-party code by default.
package_logger = logging.getLogger("rustsec_osv")
package_logger.setLevel(os.environ.get("RUSTSEC_OSV_LOGLEVEL", "INFO").upper())


@enum.unique
class ProgressSpinnerChoice(str, enum.Enum):
    """
    Whether or not `rustsec-osv` should display a progress spinner.
    """

    On = "on"
    Off = "off"

    def __bool__(self) -> bool:
        return self is ProgressSpinnerChoice.On

    def __str__(self) -> str:
        return self.value


def _enum_help(msg: str, e: type[enum.Enum]) -> str:  # pragma: no cover
    """
    Render a `--help`-style string for the given enumeration.
    """
    return f"{msg} (choices: {', '.join(str(v) for v in e)})"


def _fatal(msg: str) -> NoReturn:  # pragma: no cover
    """
    Log a fatal error to the standard error stream and exit.
    """
    logger.error(msg)
    sys.exit(1)


def _parser() -> argparse.ArgumentParser:  # pragma: no cover
    parser = argparse.ArgumentParser(
        prog="rustsec-osv",
        description="export a RustSec advisory database to OSV JSON files",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=Path("."),
        help="filesystem path to the RustSec advisory database git repository",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        required=True,
        metavar="DIR",
        help="existing directory where OSV JSON files will be written",
    )
    parser.add_argument(
        "--collection",
        type=str,
        metavar="NAME",
        action="append",
        dest="collections",
        help="export advisories from the given top-level collection directory; "
        f"this option can be used multiple times (default: {', '.join(DEFAULT_COLLECTIONS)})",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="report advisories that fail to export and continue with the rest, "
        "instead of aborting on the first failure",
    )
    parser.add_argument(
        "--progress-spinner",
        type=ProgressSpinnerChoice,
        choices=ProgressSpinnerChoice,
        default=ProgressSpinnerChoice.On,
        help=_enum_help("display a progress spinner", ProgressSpinnerChoice),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="run with additional debug logging; supply multiple times to increase verbosity",
    )
    return parser


def _parse_args(
    parser: argparse.ArgumentParser, args: list[str] | None = None
) -> argparse.Namespace:  # pragma: no cover
    parsed = parser.parse_args(args)

    # Configure logging upfront, so that we don't miss anything.
    if parsed.verbose >= 1:
        package_logger.setLevel("DEBUG")
    if parsed.verbose >= 2:
        logging.getLogger().setLevel("DEBUG")

    logger.debug(f"parsed arguments: {parsed}")

    return parsed


def export(args: list[str] | None = None) -> None:
    """
    The primary entrypoint for `rustsec-osv`.
    """
    parser = _parser()
    parsed = _parse_args(parser, args)

    collections = parsed.collections or DEFAULT_COLLECTIONS

    with ExitStack() as stack:
        actors = []
        if parsed.progress_spinner:
            actors.append(ExportSpinner("Opening advisory database"))
        state = stack.enter_context(ExportState(members=actors))

        try:
            exporter = OsvExporter(parsed.path, collections=collections, state=state)
            result = exporter.export_all(parsed.out_dir, fail_fast=not parsed.keep_going)
        except (ExportError, GitError) as e:
            _fatal(str(e))

    exported_count = len(result.exported)
    summary_msg = (
        f"Exported {exported_count} {'advisory' if exported_count == 1 else 'advisories'} "
        f"to {parsed.out_dir}"
    )
    if not result.ok:
        failed_count = len(result.failures)
        summary_msg += f", {failed_count} failed"
    print(summary_msg, file=sys.stderr)

    if not result.ok:
        sys.exit(1)
