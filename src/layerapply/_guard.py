"""The Guard, phase A: marker recognition and entry-type classification.

Everything here is a pure function of a member name or a ``TarInfo``
header.  Nothing touches the filesystem; the Sandbox decides where a name
lands and the passes decide what to do with it.

AUFS encodes layer deletions as ordinary archive entries:

``<dir>/.wh.<name>``
    whiteout: ``<dir>/<name>`` was deleted in this layer.
``<dir>/.wh..wh..opq``
    opaque marker: ``<dir>`` hides everything lower layers put in it.
``<dir>/.wh..wh.<anything else>``
    AUFS bookkeeping (``.wh..wh.plnk``, ``.wh..wh.aufs``); never a deletion.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "OPAQUE_MARKER",
    "WHITEOUT_PREFIX",
    "classify_marker",
    "entry_disposition",
    "has_marker_component",
    "member_basename",
    "opaque_directory",
    "validate_filename",
    "whiteout_target",
)

import posixpath
import tarfile

from layerapply._exceptions import UnsafeEntryError

WHITEOUT_PREFIX = ".wh."
META_PREFIX = WHITEOUT_PREFIX + WHITEOUT_PREFIX
OPAQUE_MARKER = META_PREFIX + ".opq"

# TAR type codes, grouped by how the extractor treats them.
_REGULAR_TYPES = set(tarfile.REGULAR_TYPES)
_DIR_TYPE = {tarfile.DIRTYPE}
_SYMLINK_TYPE = {tarfile.SYMTYPE}
_HARDLINK_TYPE = {tarfile.LNKTYPE}
_SPECIAL_TYPES = {tarfile.CHRTYPE, tarfile.BLKTYPE, tarfile.FIFOTYPE}

# Maximum filename length we accept (conservative cross-platform limit).
MAX_PATH = 4096


def member_basename(name: str) -> str:
    """Return the last path component of *name*, ignoring a trailing slash."""
    return posixpath.basename(name.rstrip("/"))


def classify_marker(name: str) -> str | None:
    """Classify *name* as a layer marker.

    Returns ``"opaque"``, ``"whiteout"``, ``"meta"`` (AUFS bookkeeping), or
    ``None`` for an ordinary entry.
    """
    base = member_basename(name)
    if base == OPAQUE_MARKER:
        return "opaque"
    if base.startswith(META_PREFIX):
        return "meta"
    if base.startswith(WHITEOUT_PREFIX) and len(base) > len(WHITEOUT_PREFIX):
        return "whiteout"
    if base.startswith(WHITEOUT_PREFIX):
        # A bare ".wh." names nothing.
        return "meta"
    return None


def whiteout_target(name: str) -> str:
    """Return the member name a whiteout marker deletes.

    ``a/b/.wh.foo`` → ``a/b/foo``.
    """
    base = member_basename(name)
    if not base.startswith(WHITEOUT_PREFIX):
        raise ValueError(f"Not a whiteout marker: {name!r}")
    parent = posixpath.dirname(name.rstrip("/"))
    return posixpath.join(parent, base[len(WHITEOUT_PREFIX) :])


def opaque_directory(name: str) -> str:
    """Return the directory an opaque marker applies to.

    ``a/b/.wh..wh..opq`` → ``a/b``; a root-level marker yields ``""``.
    """
    if member_basename(name) != OPAQUE_MARKER:
        raise ValueError(f"Not an opaque marker: {name!r}")
    return posixpath.dirname(name.rstrip("/"))


def has_marker_component(name: str) -> bool:
    """Return ``True`` if any component of *name* starts with ``.wh.``.

    Such entries are markers, AUFS bookkeeping, or live beneath an AUFS
    bookkeeping directory, and are never written to the rootfs.
    """
    return any(part.startswith(WHITEOUT_PREFIX) for part in name.split("/"))


def entry_disposition(info: tarfile.TarInfo) -> str:
    """Decide how the extractor treats *info*.

    Returns one of ``"marker"``, ``"special"``, ``"directory"``,
    ``"file"``, ``"symlink"``, ``"hardlink"`` or ``"unknown"``.
    """
    if has_marker_component(info.name):
        return "marker"
    if info.type in _SPECIAL_TYPES:
        return "special"
    if info.type in _DIR_TYPE:
        return "directory"
    if info.type in _SYMLINK_TYPE:
        return "symlink"
    if info.type in _HARDLINK_TYPE:
        return "hardlink"
    if info.type in _REGULAR_TYPES:
        return "file"
    return "unknown"


def validate_filename(info: tarfile.TarInfo) -> str:
    """Validate *info*'s filename for basic sanity and return it.

    PAX ``path`` overrides and GNU long-name reassembly are already
    reflected in ``info.name`` by Python's ``tarfile`` module.

    Raises ``UnsafeEntryError`` for null bytes in the name or link
    target, empty names, or over-length names.
    """
    name = info.name

    if not name or name.strip() == "":
        raise UnsafeEntryError("Empty member filename")

    if "\x00" in name:
        raise UnsafeEntryError(f"Null byte in member filename: {name[:256]!r}")

    if len(name) > MAX_PATH:
        raise UnsafeEntryError(
            f"Filename length ({len(name)}) exceeds MAX_PATH ({MAX_PATH}): "
            f"{name[:256]!r}..."
        )

    if "\x00" in (info.linkname or ""):
        raise UnsafeEntryError(
            f"Null byte in link target of {name[:256]!r}: "
            f"{info.linkname[:256]!r}"
        )

    return name
