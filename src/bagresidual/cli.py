"""Command line entry point: ``bag-residual BAG1 BAG2``.

BAG2 is subtracted from BAG1 and the residual surface is written next to
BAG1 with a ``.ch2`` extension. The report goes to stdout; the banner,
progress and errors go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from .config import VERSION, ResidualConfig, apply_environment_overrides
from .errors import GeometryMismatchError, ResidualError, UsageError
from .pipeline import compute_residual_surface
from .report import print_report

logger = logging.getLogger(__name__)

USAGE = """
Usage: bag_residual BAG1 BAG2


\tBAG2 will be subtracted from BAG1.  A CHRTR2 file of the
\tdifference surface will be created.  The file will be
\tnamed BAG1.ch2.
"""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="bag_residual", add_help=False, usage=argparse.SUPPRESS)
    parser.add_argument("first", nargs="?")
    parser.add_argument("second", nargs="?")
    # Placeholder option accepted by the original tool; it has no effect.
    parser.add_argument("-b", action="store_true")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


class ProgressPrinter:
    """Writes ``NNN% processed`` to a stream, overwriting the line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = sys.stderr if stream is None else stream

    def __call__(self, percent: int) -> None:
        if percent >= 100:
            self.stream.write(f"{percent:03d}% processed        \n\n")
        else:
            self.stream.write(f"{percent:03d}% processed     \r")
        self.stream.flush()


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s', stream=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    print(f"\n\n {VERSION} \n", file=sys.stderr, flush=True)

    try:
        args = build_parser().parse_args(argv)
        if not args.first or not args.second:
            raise UsageError("Two input files are required")
    except UsageError as exc:
        logger.debug(f"Usage error: {exc}")
        print(USAGE, file=sys.stderr)
        return -1

    _configure_logging(args.verbose)
    apply_environment_overrides()

    try:
        config = ResidualConfig.from_environment()
        result = compute_residual_surface(
            args.first,
            args.second,
            config=config,
            progress=ProgressPrinter(),
        )
    except GeometryMismatchError as exc:
        print(f"\n{exc.describe()}\n", file=sys.stderr)
        return -1
    except (ResidualError, ValueError) as exc:
        logger.debug("Run failed", exc_info=True)
        print(f"\n{exc}\n", file=sys.stderr)
        return -1

    print_report(result.stats, args.first, args.second)
    return 0


if __name__ == "__main__":
    sys.exit(main())
