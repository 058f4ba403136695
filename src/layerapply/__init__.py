"""layerapply: Apply container image layers onto a rootfs.

Whiteouts first, then extraction.  Zero dependencies.  Python 3.10+.
"""

from __future__ import annotations

__title__ = "layerapply"
__version__ = "0.1"
__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

from layerapply._archive import LayerArchive
from layerapply._config import Settings, registry_get
from layerapply._core import apply_docker_layer, apply_layer, check_preconditions
from layerapply._events import (
    EntryWarning,
    ErrorKind,
    ExitStatus,
    ExtractionReport,
    classify_error,
)
from layerapply._exceptions import (
    ArchiveOpenError,
    ConfigurationError,
    ExtractionError,
    LayerapplyError,
    MalformedArchiveError,
    UnsafeEntryError,
    WhiteoutError,
)
from layerapply._extractor import extract_layer
from layerapply._whiteouts import apply_whiteouts

__all__ = (
    # Core
    "apply_layer",
    "apply_docker_layer",
    "apply_whiteouts",
    "extract_layer",
    "check_preconditions",
    "LayerArchive",
    # Configuration
    "Settings",
    "registry_get",
    # Exceptions
    "LayerapplyError",
    "ConfigurationError",
    "ArchiveOpenError",
    "MalformedArchiveError",
    "UnsafeEntryError",
    "WhiteoutError",
    "ExtractionError",
    # Events & reports
    "ErrorKind",
    "EntryWarning",
    "ExtractionReport",
    "ExitStatus",
    "classify_error",
)
