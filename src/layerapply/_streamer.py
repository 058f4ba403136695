"""The Streamer, phase C: atomic regular-file writes.

Content is copied chunk by chunk from the archive into a temporary file
beside the destination and renamed over it only once complete.  Failures
are split by side: a read failure means the archive stream is broken
(``MalformedArchiveError``, fatal), a write failure is an ``OSError`` that
only concerns this one entry.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("write_member_content",)

import contextlib
import os
import tarfile
import tempfile
from pathlib import Path
from typing import IO

from layerapply._archive import LayerArchive
from layerapply._events import ARCHIVE_READ_ERRORS
from layerapply._exceptions import MalformedArchiveError

# Chunk size for streaming extraction.
_CHUNK_SIZE = 65536


def _read_chunk(source: IO[bytes], info: tarfile.TarInfo) -> bytes:
    try:
        return source.read(_CHUNK_SIZE)
    except (OSError, *ARCHIVE_READ_ERRORS) as exc:
        raise MalformedArchiveError(
            f"Archive stream error while reading {info.name!r}: {exc}"
        ) from exc


def write_member_content(
    archive: LayerArchive,
    info: tarfile.TarInfo,
    dest_path: Path,
) -> int:
    """Write regular-file member *info* to *dest_path*.

    Whatever object already sits at *dest_path* is replaced, except a
    directory, which the caller must remove first.  Returns the number of
    bytes written.
    """
    fd, temp_name = tempfile.mkstemp(dir=dest_path.parent, prefix=".lat-")
    temp_path = Path(temp_name)
    written = 0

    try:
        with open(fd, "wb") as out:
            source = archive.extractfile(info)
            if source is not None:
                with source:
                    while chunk := _read_chunk(source, info):
                        out.write(chunk)
                        written += len(chunk)

        os.replace(temp_path, dest_path)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise

    return written
