"""The marker pass: turn whiteout and opaque markers into deletions.

This pass runs over the whole layer before a single entry is extracted,
so every deletion a layer records has happened by the time its own files
are written.  Deleting in a separate, earlier pass also means an opaque
marker can only remove what lower layers left behind: this layer's own
content for that directory is not on disk yet, wherever the marker sits
in the archive.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("apply_whiteouts",)

import logging
import os
import posixpath
import stat
from pathlib import Path

from layerapply._archive import LayerArchive
from layerapply._exceptions import WhiteoutError
from layerapply._guard import (
    classify_marker,
    opaque_directory,
    validate_filename,
    whiteout_target,
)
from layerapply._sandbox import (
    clear_directory,
    remove_path,
    resolve_member_path,
)

log = logging.getLogger("layerapply.whiteouts")


def _normalise(name: str) -> str:
    name = posixpath.normpath(name)
    return "" if name in (".", "/") else name.lstrip("/")


def _remember_directories(name: str, seen: set[str]) -> None:
    """Record every directory *name* lives in."""
    parent = posixpath.dirname(_normalise(name))
    while parent:
        seen.add(parent)
        parent = posixpath.dirname(parent)


def _apply_opaque(base: Path, name: str, seen: set[str]) -> None:
    rel = opaque_directory(name)
    if _normalise(rel) in seen:
        log.warning(
            "Opaque marker %s follows entries of its own directory; "
            "only content from lower layers is removed",
            name,
        )

    target = resolve_member_path(base, rel, allow_root=True)
    if target == base:
        removed = clear_directory(base)
        log.debug("Opaque marker %s: cleared %d rootfs entries", name, removed)
        return

    try:
        st = os.lstat(target)
    except FileNotFoundError:
        return
    if stat.S_ISDIR(st.st_mode):
        log.debug("Opaque marker %s: removing directory %s", name, target)
        remove_path(target)


def _apply_whiteout(base: Path, name: str) -> None:
    target = resolve_member_path(base, whiteout_target(name))
    if remove_path(target):
        log.debug("Whiteout marker %s: removed %s", name, target)


def apply_whiteouts(
    tar_path: str | os.PathLike[str],
    rootfs: str | os.PathLike[str],
) -> int:
    """Apply every whiteout and opaque marker in *tar_path* to *rootfs*.

    Returns the number of markers applied.  Stops at the first failure:

    :raises ArchiveOpenError: The layer cannot be opened.
    :raises MalformedArchiveError: The layer stream breaks mid-pass.
    :raises UnsafeEntryError: A marker points outside *rootfs*.
    :raises WhiteoutError: A deletion failed.
    """
    base = Path(rootfs).resolve()
    seen: set[str] = set()
    applied = 0

    with LayerArchive(tar_path) as archive:
        for info in archive:
            kind = classify_marker(info.name)
            if kind is None:
                _remember_directories(info.name, seen)
                continue
            if kind == "meta":
                log.debug("Ignoring AUFS metadata entry %s", info.name)
                continue

            validate_filename(info)
            try:
                if kind == "opaque":
                    _apply_opaque(base, info.name, seen)
                else:
                    _apply_whiteout(base, info.name)
            except OSError as exc:
                raise WhiteoutError(
                    f"Cannot apply {kind} marker {info.name!r}: {exc}"
                ) from exc
            applied += 1

    return applied
