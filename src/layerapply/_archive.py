"""LayerArchive: read-only, sequential access to a layer tarball.

``LayerArchive`` wraps ``tarfile.TarFile`` via composition and exposes
only forward iteration over entries and content access for the current
entry.  Each pass over a layer opens its own ``LayerArchive``.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("LayerArchive",)

import logging
import os
import tarfile
from collections.abc import Iterator
from typing import IO

from layerapply._events import ARCHIVE_READ_ERRORS
from layerapply._exceptions import ArchiveOpenError, MalformedArchiveError

log = logging.getLogger("layerapply.archive")


class LayerArchive:
    """Streaming reader over one layer tarball.

    :param file: Path to the layer archive.
    :param mode: Read mode string.  Default ``"r:*"`` (auto-detect gzip,
        bzip2, xz or no compression).  Only read modes are accepted.
    :raises ValueError: If a write mode (``"w"``, ``"a"``, ``"x"``) is
        passed as *mode*.
    :raises ArchiveOpenError: If the file cannot be opened or is not a
        tar archive.
    """

    def __init__(self, file: str | os.PathLike[str], mode: str = "r:*") -> None:
        if any(mode.startswith(p) for p in ("w", "a", "x")):
            raise ValueError(
                f"LayerArchive is read-only; write mode {mode!r} is not permitted"
            )

        self.name = os.fspath(file)
        try:
            self._tf = tarfile.open(self.name, mode)  # noqa: SIM115
        except (tarfile.TarError, OSError, EOFError) as exc:
            raise ArchiveOpenError(
                f"Cannot open layer archive {self.name}: {exc}"
            ) from exc
        log.debug("Opened layer archive %s", self.name)

    # ---- context manager ---------------------------------------------------

    def __enter__(self) -> LayerArchive:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the archive."""
        self._tf.close()

    # ---- iteration ---------------------------------------------------------

    def __iter__(self) -> Iterator[tarfile.TarInfo]:
        """Yield entries in archive order, one header at a time.

        Raises ``MalformedArchiveError`` if a header cannot be read.
        """
        while True:
            try:
                member = self._tf.next()
            except (tarfile.TarError, OSError, *ARCHIVE_READ_ERRORS) as exc:
                # EOFError comes straight from the gzip/bz2/lzma decompressor
                # on a truncated stream; OSError here is always read-side.
                raise MalformedArchiveError(
                    f"Cannot read entry header from {self.name}: {exc}"
                ) from exc
            if member is None:
                return
            yield member

    def extractfile(self, member: tarfile.TarInfo) -> IO[bytes] | None:
        """Return a file object for *member*'s content, or ``None``."""
        return self._tf.extractfile(member)
