"""The Sandbox, phase B: rootfs confinement, deletion primitives,
and permission-bit sanitisation.

Every path derived from an archive entry is resolved against the rootfs
before anything is created or removed.  Parent components are resolved
(so symlinks the rootfs already contains are honoured as long as they
stay inside it); the final component is not, so an existing symlink at
the destination is replaced or removed rather than followed.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "clear_directory",
    "parse_fflags",
    "remove_path",
    "resolve_member_path",
    "sanitise_mode",
    "verify_hardlink_target",
    "working_directory",
    "xattr_headers",
)

import contextlib
import errno
import logging
import os
import shutil
import stat
from collections.abc import Iterator, Mapping
from pathlib import Path

from layerapply._exceptions import UnsafeEntryError

log = logging.getLogger("layerapply.sandbox")

# Maximum filename length (must match _guard.MAX_PATH).
MAX_PATH = 4096

_XATTR_HEADER = "SCHILY.xattr."

# libarchive's spelling of BSD file flags → ``stat`` constants.
_FFLAG_NAMES = {
    "nodump": "UF_NODUMP",
    "uchg": "UF_IMMUTABLE",
    "uimmutable": "UF_IMMUTABLE",
    "uappnd": "UF_APPEND",
    "uappend": "UF_APPEND",
    "opaque": "UF_OPAQUE",
    "hidden": "UF_HIDDEN",
    "arch": "SF_ARCHIVED",
    "archived": "SF_ARCHIVED",
    "schg": "SF_IMMUTABLE",
    "simmutable": "SF_IMMUTABLE",
    "sappnd": "SF_APPEND",
    "sappend": "SF_APPEND",
}


def _within(path: Path, base: Path) -> bool:
    return path == base or str(path).startswith(str(base) + os.sep)


# ---- path resolution -------------------------------------------------------


def resolve_member_path(
    base_dir: str | os.PathLike[str],
    member_name: str,
    *,
    allow_root: bool = False,
) -> Path:
    """Resolve *member_name* against *base_dir* and return a confined ``Path``.

    Pipeline (in order):

    1.  Reject absolute paths.
    2.  Drop empty and ``.`` components; reject ``..`` components.
    3.  Reject null bytes and over-length names.
    4.  Resolve the parent directory (following symlinks already on disk)
        and reject the result if it leaves *base_dir*.

    A name that reduces to nothing (``"."``, ``"./"``) is the rootfs
    itself, accepted only with *allow_root*.

    Raises ``UnsafeEntryError`` for any violation.
    """
    base = Path(base_dir).resolve()

    if member_name.startswith("/"):
        raise UnsafeEntryError(
            f"Absolute path detected in member name: {member_name!r}"
        )

    clean_parts: list[str] = []
    for part in member_name.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise UnsafeEntryError(
                f"Path traversal component '..' in member name: {member_name!r}"
            )
        clean_parts.append(part)

    if not clean_parts:
        if allow_root:
            return base
        raise UnsafeEntryError(f"Member name resolves to empty path: {member_name!r}")

    joined = "/".join(clean_parts)
    if "\x00" in joined:
        raise UnsafeEntryError(f"Null byte in member name: {member_name!r}")

    if len(str(base / joined)) > MAX_PATH:
        raise UnsafeEntryError(f"Resolved path length exceeds MAX_PATH ({MAX_PATH})")

    try:
        parent = base.joinpath(*clean_parts[:-1]).resolve()
    except (OSError, RuntimeError) as exc:
        # RuntimeError is a symlink loop on older interpreters.
        raise UnsafeEntryError(
            f"Cannot resolve parent of member name {member_name!r}: {exc}"
        ) from exc

    if not _within(parent, base):
        raise UnsafeEntryError(f"Resolved path escapes rootfs: {member_name!r}")

    return parent / clean_parts[-1]


# ---- hardlink verification ------------------------------------------------


def verify_hardlink_target(base_dir: str | os.PathLike[str], link_target: str) -> Path:
    """Resolve a hardlink target inside *base_dir* and check it is on disk.

    The target may come from this layer or from a lower one.  Returns the
    resolved target path.

    Raises ``UnsafeEntryError`` if the target escapes *base_dir* and
    ``FileNotFoundError`` if nothing exists there.
    """
    target = resolve_member_path(base_dir, link_target)
    if not os.path.lexists(target):
        raise FileNotFoundError(
            errno.ENOENT, "Hardlink target does not exist", str(target)
        )
    return target


# ---- deletion -------------------------------------------------------------


def remove_path(path: str | os.PathLike[str]) -> bool:
    """Remove whatever object sits at *path* without following a symlink.

    Directories are removed recursively; everything else is unlinked.
    Returns ``False`` if nothing existed.  ``OSError`` propagates.
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return False
    if stat.S_ISDIR(st.st_mode):
        shutil.rmtree(path)
    else:
        os.unlink(path)
    return True


def clear_directory(path: str | os.PathLike[str]) -> int:
    """Remove every child of directory *path*, keeping *path* itself.

    Returns the number of children removed.
    """
    removed = 0
    with os.scandir(path) as it:
        children = [entry.path for entry in it]
    for child in children:
        if remove_path(child):
            removed += 1
    return removed


# ---- working directory ----------------------------------------------------


@contextlib.contextmanager
def working_directory(path: str | os.PathLike[str]) -> Iterator[Path]:
    """Change the process working directory to *path* for the block.

    The previous working directory is restored on every exit path.
    """
    previous = os.getcwd()
    os.chdir(path)
    log.debug("Changed working directory to %s", path)
    try:
        yield Path(os.getcwd())
    finally:
        os.chdir(previous)


# ---- permission bits -------------------------------------------------------


def sanitise_mode(
    mode: int,
    *,
    strip_special_bits: bool = False,
) -> int:
    """Reduce *mode* to permission bits, optionally dropping dangerous ones.

    Setuid (``04000``), setgid (``02000``) and sticky (``01000``) are kept
    unless *strip_special_bits* is set.
    """
    mode &= 0o7777
    if strip_special_bits:
        mode &= ~(stat.S_ISUID | stat.S_ISGID | stat.S_ISVTX)
    return mode


# ---- extended metadata -----------------------------------------------------


def xattr_headers(pax_headers: Mapping[str, str]) -> dict[str, bytes]:
    """Extract extended attributes from ``SCHILY.xattr.*`` PAX headers.

    ``tarfile`` decodes these values with ``surrogateescape``; encoding
    them the same way gives back the original bytes.
    """
    return {
        key[len(_XATTR_HEADER) :]: value.encode("utf-8", "surrogateescape")
        for key, value in pax_headers.items()
        if key.startswith(_XATTR_HEADER) and len(key) > len(_XATTR_HEADER)
    }


def parse_fflags(text: str) -> int:
    """Turn a comma-separated ``SCHILY.fflags`` value into a flag mask.

    Raises ``ValueError`` for a flag this platform has no constant for.
    """
    mask = 0
    for name in filter(None, (n.strip() for n in text.split(","))):
        const = _FFLAG_NAMES.get(name)
        if const is None or not hasattr(stat, const):
            raise ValueError(f"Unsupported file flag: {name!r}")
        mask |= getattr(stat, const)
    return mask
