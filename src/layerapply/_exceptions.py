"""Exception hierarchy for layerapply.

All exceptions inherit from ``LayerapplyError`` so callers can catch the
package's entire error surface with a single ``except`` clause.  Every
exception defined here is fatal for the invocation; recoverable per-entry
problems are reported as ``EntryWarning`` records instead.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"


class LayerapplyError(Exception):
    """Base exception for all fatal layer application failures."""


class ConfigurationError(LayerapplyError):
    """The invocation is not set up correctly.

    Raised for a missing command-line argument, an unset or non-directory
    rootfs, and a tar path that does not name a regular file.  Raised before
    the filesystem is touched.
    """


class ArchiveOpenError(LayerapplyError):
    """The layer file cannot be opened or is not a recognised tar archive."""


class MalformedArchiveError(LayerapplyError):
    """The archive stream is unreadable beyond a single entry.

    Raised for truncated compressed streams, corrupt headers after the
    first one, and decompressor failures while reading member content.
    """


class UnsafeEntryError(LayerapplyError):
    """A path computed from an entry escapes the rootfs.

    Raised for ``..`` traversal, absolute member names, and names that
    resolve outside the rootfs through a symlink already present in it.
    """


class WhiteoutError(LayerapplyError):
    """A whiteout or opaque marker could not be applied.

    Raised by the marker pass; extraction is never attempted afterwards.
    """


class ExtractionError(LayerapplyError):
    """The extraction pass was aborted."""
