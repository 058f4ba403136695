"""Environment-backed configuration for layerapply.

The rootfs path and the extraction switches come from ``LAYERAPPLY_*``
environment variables.  The helpers below read one variable each and fall
back to the given default on absence or parse failure.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "ENV_PREFIX",
    "Settings",
    "registry_get",
)

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_PREFIX = "LAYERAPPLY_"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def registry_get(key: str, environ: Mapping[str, str] | None = None) -> str | None:
    """Return the registry value stored under *key*, or ``None``.

    Registry keys map onto ``LAYERAPPLY_<KEY>`` environment variables.  An
    empty value counts as unset.
    """
    env = os.environ if environ is None else environ
    value = env.get(ENV_PREFIX + key.upper())
    if not value:
        return None
    return value


def _env_bool(name: str, fallback: bool, environ: Mapping[str, str]) -> bool:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None:
        return fallback
    return raw.lower() not in ("0", "false", "no", "off", "")


def _env_log_level(environ: Mapping[str, str], fallback: int = logging.INFO) -> int:
    raw = environ.get(ENV_PREFIX + "LOG_LEVEL")
    if raw is None or raw.upper() not in _LOG_LEVELS:
        return fallback
    return logging.getLevelName(raw.upper())


@dataclass(frozen=True, slots=True)
class Settings:
    """Switches controlling how extracted entries are materialised.

    :param preserve_ownership: ``chown`` entries to their archived UID/GID.
        Off by default, leaving files owned by the current process.
    :param strip_special_bits: Drop setuid/setgid/sticky bits.  Off by
        default since image layers legitimately carry them.
    :param restore_xattrs: Restore ``SCHILY.xattr.*`` PAX headers as
        extended attributes (POSIX ACLs included).
    :param log_level: Level the command-line entry point configures.
    """

    preserve_ownership: bool = False
    strip_special_bits: bool = False
    restore_xattrs: bool = True
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            preserve_ownership=_env_bool("PRESERVE_OWNERSHIP", False, env),
            strip_special_bits=_env_bool("STRIP_SPECIAL_BITS", False, env),
            restore_xattrs=_env_bool("RESTORE_XATTRS", True, env),
            log_level=_env_log_level(env),
        )
