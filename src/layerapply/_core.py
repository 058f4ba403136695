"""Layer application: the orchestrator.

``apply_layer`` runs the marker pass and then the extraction pass against
the same ``(layer, rootfs)`` pair.  Every deletion the layer records is
complete before the first entry is written; if the marker pass fails the
extraction pass never starts, because writes landing on a base whose
deletions are half applied cannot be trusted.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "apply_docker_layer",
    "apply_layer",
    "check_preconditions",
)

import logging
import os
from pathlib import Path

from layerapply._config import Settings, registry_get
from layerapply._events import ExitStatus, ExtractionReport
from layerapply._exceptions import (
    ConfigurationError,
    LayerapplyError,
    UnsafeEntryError,
    WhiteoutError,
)
from layerapply._extractor import extract_layer
from layerapply._whiteouts import apply_whiteouts

log = logging.getLogger("layerapply")


def check_preconditions(
    tar_path: str | os.PathLike[str],
    rootfs: str | os.PathLike[str] | None,
) -> tuple[Path, Path]:
    """Validate the invocation before anything is touched.

    Returns ``(tar_path, rootfs)`` as ``Path`` objects.

    :raises ConfigurationError: *rootfs* is unset or not a directory, or
        *tar_path* is not a regular file.
    """
    if rootfs is None or os.fspath(rootfs) == "":
        raise ConfigurationError("Rootfs is not configured")

    rootfs_path = Path(rootfs)
    if not rootfs_path.is_dir():
        raise ConfigurationError(f"Rootfs does not exist: {rootfs_path}")

    layer_path = Path(tar_path)
    if not layer_path.is_file():
        raise ConfigurationError(f"tar file does not exist: {layer_path}")

    return layer_path, rootfs_path


def apply_layer(
    tar_path: str | os.PathLike[str],
    rootfs: str | os.PathLike[str],
    *,
    settings: Settings | None = None,
) -> ExtractionReport:
    """Apply the layer at *tar_path* onto *rootfs*.

    Per-entry extraction warnings are returned in the report and do not
    fail the call.

    :raises ConfigurationError: Preconditions do not hold.
    :raises ArchiveOpenError: The layer cannot be opened.
    :raises MalformedArchiveError: The layer stream is corrupt.
    :raises UnsafeEntryError: A marker points outside *rootfs*.
    :raises WhiteoutError: A whiteout could not be applied.
    :raises ExtractionError: The extraction pass was aborted.
    """
    layer_path, rootfs_path = check_preconditions(tar_path, rootfs)

    log.debug("Applying whiteouts for tar file %s", layer_path)
    try:
        applied = apply_whiteouts(layer_path, rootfs_path)
    except (WhiteoutError, UnsafeEntryError):
        raise
    except LayerapplyError as exc:
        raise WhiteoutError(f"Error applying layer whiteouts: {exc}") from exc
    log.debug("Applied %d whiteout markers", applied)

    log.debug("Extracting docker tar file %s", layer_path)
    return extract_layer(layer_path, rootfs_path, settings=settings)


def apply_docker_layer(
    tar_path: str | os.PathLike[str],
    rootfs: str | os.PathLike[str] | None = None,
    *,
    settings: Settings | None = None,
) -> ExitStatus:
    """Apply a layer and return the process exit status.

    *rootfs* defaults to the ``ROOTFS`` registry value.  Every fatal error
    is logged and mapped to ``ExitStatus.FAILURE``.
    """
    if rootfs is None:
        rootfs = registry_get("ROOTFS")

    try:
        apply_layer(tar_path, rootfs, settings=settings)  # type: ignore[arg-type]
    except LayerapplyError as exc:
        log.error("%s", exc)
        return ExitStatus.FAILURE
    return ExitStatus.SUCCESS
