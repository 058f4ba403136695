"""Command-line entry point: ``layerapply LAYER_TAR``.

The rootfs comes from ``--rootfs`` or, by default, the ``ROOTFS``
registry value (``LAYERAPPLY_ROOTFS``).  Exit status is 0 on success and
255 on any fatal error, usage errors included.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("main",)

import argparse
import logging
import sys
from collections.abc import Sequence

from layerapply._config import Settings
from layerapply._core import apply_docker_layer
from layerapply._events import ExitStatus
from layerapply._exceptions import ConfigurationError

log = logging.getLogger("layerapply")


class _ArgumentParser(argparse.ArgumentParser):
    """``ArgumentParser`` that raises instead of exiting with status 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        raise ConfigurationError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="layerapply",
        description=(
            "Apply a docker/OCI image layer onto a rootfs directory, "
            "honouring AUFS whiteout and opaque markers."
        ),
    )
    parser.add_argument(
        "tarfile",
        help="Layer tarball (plain, gzip, bzip2 or xz compressed).",
    )
    parser.add_argument(
        "-r",
        "--rootfs",
        default=None,
        help="Target rootfs directory (default: $LAYERAPPLY_ROOTFS).",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        dest="log_level",
        action="store_const",
        const=logging.DEBUG,
        help="Log every marker and skipped entry.",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        dest="log_level",
        action="store_const",
        const=logging.ERROR,
        help="Only log errors.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        args = build_parser().parse_args(argv)
    except ConfigurationError as exc:
        log.error("Provide a single docker tar file to extract: %s", exc)
        return ExitStatus.FAILURE

    if args.log_level is not None:
        logging.getLogger().setLevel(args.log_level)

    return apply_docker_layer(args.tarfile, args.rootfs, settings=settings)
