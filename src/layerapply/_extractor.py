"""The extraction pass: materialise a layer's entries under the rootfs.

Runs strictly after the marker pass.  Markers, AUFS bookkeeping and
special files (devices, FIFOs) are skipped; everything else goes through
Guard → Sandbox → Streamer and then has its metadata restored.

Failures are classified per entry with ``classify_error()``.  Anything
short of ``ErrorKind.ARCHIVE`` becomes an ``EntryWarning`` and extraction
moves on to the next entry.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "LayerExtractor",
    "extract_layer",
)

import logging
import os
import stat
import tarfile
from collections.abc import Callable
from pathlib import Path

from layerapply._archive import LayerArchive
from layerapply._config import Settings
from layerapply._events import ErrorKind, ExtractionReport, classify_error
from layerapply._exceptions import ExtractionError
from layerapply._guard import entry_disposition, validate_filename
from layerapply._sandbox import (
    parse_fflags,
    remove_path,
    resolve_member_path,
    sanitise_mode,
    verify_hardlink_target,
    working_directory,
    xattr_headers,
)
from layerapply._streamer import write_member_content

log = logging.getLogger("layerapply.extractor")

_ACL_HEADERS = ("SCHILY.acl.access", "SCHILY.acl.default")
_FFLAGS_HEADER = "SCHILY.fflags"


class LayerExtractor:
    """Extracts the entries of one open ``LayerArchive`` under *base_dir*.

    :param archive: Archive positioned before its first entry.
    :param base_dir: Resolved rootfs directory.
    :param settings: Metadata restoration switches.
    """

    def __init__(
        self,
        archive: LayerArchive,
        base_dir: Path,
        settings: Settings,
    ) -> None:
        self._archive = archive
        self._base = base_dir
        self._settings = settings
        self._report = ExtractionReport()
        self._deferred_dirs: list[tuple[tarfile.TarInfo, Path]] = []

    def run(self) -> ExtractionReport:
        """Extract every entry and return the report.

        Raises ``MalformedArchiveError`` if the stream becomes unreadable.
        """
        for info in self._archive:
            self._extract_one(info)

        # Directory metadata last, deepest first, so restrictive modes and
        # restored mtimes are not disturbed by writes into the directory.
        for info, dest_path in reversed(self._deferred_dirs):
            self._apply_metadata(info, dest_path)

        return self._report

    # ---- per entry ---------------------------------------------------------

    def _extract_one(self, info: tarfile.TarInfo) -> None:
        disposition = entry_disposition(info)

        if disposition in ("marker", "special"):
            log.debug("Skipping %s entry %s", disposition, info.name)
            self._report.skipped += 1
            return

        if disposition == "unknown":
            self._report.skipped += 1
            self._warn(
                ErrorKind.ENTRY,
                info,
                f"Unrecognised TAR type code {info.type!r}",
            )
            return

        try:
            self._materialise(info, disposition)
        except Exception as exc:
            kind = classify_error(exc)
            if kind is None or kind.is_fatal:
                raise
            self._warn(kind, info, str(exc))
            return

        self._report.extracted += 1

    def _materialise(self, info: tarfile.TarInfo, disposition: str) -> None:
        name = validate_filename(info)
        dest_path = resolve_member_path(
            self._base, name, allow_root=disposition == "directory"
        )

        if disposition == "directory":
            self._make_directory(dest_path)
            self._deferred_dirs.append((info, dest_path))
            return

        dest_path.parent.mkdir(parents=True, exist_ok=True)

        if disposition == "hardlink":
            target_path = verify_hardlink_target(self._base, info.linkname)
            if target_path == dest_path:
                return
            remove_path(dest_path)
            os.link(target_path, dest_path, follow_symlinks=False)
            return

        if disposition == "symlink":
            remove_path(dest_path)
            os.symlink(info.linkname, dest_path)
            self._apply_metadata(info, dest_path, symlink=True)
            return

        # Regular file.  A directory in the way is removed; any other
        # object is replaced by the atomic rename.
        if dest_path.is_dir() and not dest_path.is_symlink():
            remove_path(dest_path)
        write_member_content(self._archive, info, dest_path)
        self._apply_metadata(info, dest_path)

    def _make_directory(self, dest_path: Path) -> None:
        if dest_path == self._base:
            return
        try:
            st = os.lstat(dest_path)
        except FileNotFoundError:
            dest_path.mkdir(parents=True)
            return
        if not stat.S_ISDIR(st.st_mode):
            # A lower layer put a file or symlink here; the directory wins.
            remove_path(dest_path)
            dest_path.mkdir()

    # ---- metadata ----------------------------------------------------------

    def _apply_metadata(
        self,
        info: tarfile.TarInfo,
        dest_path: Path,
        *,
        symlink: bool = False,
    ) -> None:
        """Restore ownership, permissions, xattrs, ACLs, mtime and flags.

        Ownership goes first: chown(2) may clear setuid/setgid bits, so
        chmod must come after it.  File flags go last, since an immutable
        flag would block every later change.
        """
        settings = self._settings

        if settings.preserve_ownership:
            self._attempt(
                info,
                "ownership",
                os.chown,
                dest_path,
                info.uid,
                info.gid,
                follow_symlinks=not symlink,
            )

        if not symlink and info.mode is not None:
            safe_mode = sanitise_mode(
                info.mode, strip_special_bits=settings.strip_special_bits
            )
            self._attempt(info, "permissions", os.chmod, dest_path, safe_mode)

        pax = info.pax_headers or {}
        if settings.restore_xattrs:
            self._restore_xattrs(info, dest_path, pax)

        for header in _ACL_HEADERS:
            if header in pax:
                self._warn(
                    ErrorKind.METADATA,
                    info,
                    f"Cannot restore ACL from {header}: text ACLs are not "
                    "supported, only system.posix_acl_* xattrs",
                )

        if not symlink or os.utime in os.supports_follow_symlinks:
            mtime = info.mtime
            self._attempt(
                info,
                "modification time",
                os.utime,
                dest_path,
                (mtime, mtime),
                follow_symlinks=not symlink,
            )

        if _FFLAGS_HEADER in pax and not symlink:
            self._restore_fflags(info, dest_path, pax[_FFLAGS_HEADER])

    def _restore_xattrs(
        self,
        info: tarfile.TarInfo,
        dest_path: Path,
        pax: dict[str, str],
    ) -> None:
        xattrs = xattr_headers(pax)
        if not xattrs:
            return
        if not hasattr(os, "setxattr"):
            self._warn(
                ErrorKind.METADATA,
                info,
                "Cannot restore extended attributes on this platform",
            )
            return
        for key, value in xattrs.items():
            self._attempt(
                info,
                f"extended attribute {key}",
                os.setxattr,
                dest_path,
                key,
                value,
                follow_symlinks=False,
            )

    def _restore_fflags(
        self,
        info: tarfile.TarInfo,
        dest_path: Path,
        text: str,
    ) -> None:
        if not hasattr(os, "chflags"):
            self._warn(
                ErrorKind.METADATA,
                info,
                f"Cannot restore file flags {text!r} on this platform",
            )
            return
        try:
            flags = parse_fflags(text)
        except ValueError as exc:
            self._warn(ErrorKind.METADATA, info, str(exc))
            return
        self._attempt(info, "file flags", os.chflags, dest_path, flags)

    # ---- helpers -----------------------------------------------------------

    def _attempt(
        self,
        info: tarfile.TarInfo,
        what: str,
        func: Callable[..., object],
        *args: object,
        **kwargs: object,
    ) -> None:
        """Call *func*, downgrading its failure to a metadata warning.

        ``ValueError`` and ``OverflowError`` come from values the syscall
        wrappers cannot pass on, such as an xattr name with a NUL byte or
        an mtime beyond the platform's ``time_t``.
        """
        try:
            func(*args, **kwargs)
        except (OSError, OverflowError, ValueError) as exc:
            self._warn(ErrorKind.METADATA, info, f"Cannot restore {what}: {exc}")

    def _warn(self, kind: ErrorKind, info: tarfile.TarInfo, message: str) -> None:
        warning = self._report.warn(kind, info.name, message)
        log.warning("Warning extracting %s", warning)


def extract_layer(
    tar_path: str | os.PathLike[str],
    rootfs: str | os.PathLike[str],
    *,
    settings: Settings | None = None,
) -> ExtractionReport:
    """Extract *tar_path* under *rootfs*, skipping markers and special files.

    The process working directory is *rootfs* for the duration of the
    pass and is restored afterwards, whatever happens.

    :raises ArchiveOpenError: The layer cannot be opened.
    :raises MalformedArchiveError: The layer stream breaks mid-pass.
    :raises ExtractionError: The working directory cannot be changed.
    """
    if settings is None:
        settings = Settings.from_env()

    with LayerArchive(tar_path) as archive:
        try:
            with working_directory(rootfs) as base_dir:
                report = LayerExtractor(archive, base_dir, settings).run()
        except OSError as exc:
            # Per-entry OSErrors never escape the extractor; this is chdir.
            raise ExtractionError(
                f"Could not change working directory for {rootfs}: {exc}"
            ) from exc

    log.info(
        "Extracted %d entries from %s (%d skipped, %d warnings)",
        report.extracted,
        archive.name,
        report.skipped,
        len(report.warnings),
    )
    return report
