"""Severity enums and per-entry diagnostic records for layerapply."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

import lzma
import tarfile
import zlib
from dataclasses import dataclass, field
from enum import Enum, IntEnum

from layerapply._exceptions import (
    ArchiveOpenError,
    MalformedArchiveError,
    UnsafeEntryError,
)

# Exceptions raised by ``tarfile`` and the decompressors beneath it when the
# stream itself can no longer be read.  ``OSError`` is deliberately absent:
# it is only an archive error when raised on the read side, which the
# archive wrapper and the streamer sort out at the call site.
ARCHIVE_READ_ERRORS: tuple[type[BaseException], ...] = (
    tarfile.ReadError,
    tarfile.CompressionError,
    tarfile.StreamError,
    EOFError,
    zlib.error,
    lzma.LZMAError,
)


class ErrorKind(Enum):
    """Classifies a failure met while materialising one archive entry.

    ``ENTRY``
        The entry could not be written (I/O error, permission denied,
        missing hardlink target).  The entry is dropped.
    ``METADATA``
        The entry was written but an attribute (mode, mtime, ownership,
        xattr, ACL, file flag) could not be restored.
    ``UNSAFE``
        The entry's path escapes the rootfs and was rejected.
    ``ARCHIVE``
        The archive stream is unreadable.  Extraction aborts.
    """

    ENTRY = "entry"
    METADATA = "metadata"
    UNSAFE = "unsafe"
    ARCHIVE = "archive"

    @property
    def is_fatal(self) -> bool:
        return self is ErrorKind.ARCHIVE


class ExitStatus(IntEnum):
    """Process exit status of a layer application."""

    SUCCESS = 0
    FAILURE = 255


def classify_error(exc: BaseException) -> ErrorKind | None:
    """Map *exc* to an ``ErrorKind``.

    Returns ``None`` for exceptions that are programming errors rather than
    archive or filesystem conditions; those must propagate unchanged.
    """
    if isinstance(exc, (MalformedArchiveError, ArchiveOpenError)):
        return ErrorKind.ARCHIVE
    if isinstance(exc, UnsafeEntryError):
        return ErrorKind.UNSAFE
    if isinstance(exc, ARCHIVE_READ_ERRORS):
        return ErrorKind.ARCHIVE
    if isinstance(exc, (OSError, tarfile.ExtractError)):
        return ErrorKind.ENTRY
    return None


@dataclass(frozen=True, slots=True)
class EntryWarning:
    """Immutable record of a recoverable problem with one archive entry."""

    kind: ErrorKind
    """Severity class, never ``ErrorKind.ARCHIVE``."""

    name: str
    """Member name as stored in the archive."""

    message: str
    """Human-readable description of what went wrong."""

    def __str__(self) -> str:
        return f"{self.name}: {self.message} ({self.kind.value})"


@dataclass(slots=True)
class ExtractionReport:
    """Outcome of one extraction pass."""

    extracted: int = 0
    """Entries materialised on disk."""

    skipped: int = 0
    """Marker, special-file and unknown-type entries that were not written."""

    warnings: list[EntryWarning] = field(default_factory=list)

    def warn(self, kind: ErrorKind, name: str, message: str) -> EntryWarning:
        warning = EntryWarning(kind=kind, name=name, message=message)
        self.warnings.append(warning)
        return warning

    @property
    def ok(self) -> bool:
        """``True`` when no entry produced a warning."""
        return not self.warnings
