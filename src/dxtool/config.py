"""Process-wide configuration read from the environment at startup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

LOGGER = logging.getLogger(__name__)

DUMP_METHODS_ENV = "DX_FILE_DUMP_METHODS"
DUMP_FIELDS_ENV = "DX_FILE_DUMP_FIELDS"
LOG_LEVEL_ENV = "DX_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class ToolConfig:
    """Settings shared by every subsystem for the lifetime of the process."""

    dump_methods: Path | None = None
    dump_fields: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "ToolConfig":
        """Build a configuration from ``environ`` (``os.environ`` by default).

        Empty values are treated the same as missing ones, so exporting an
        empty ``DX_FILE_DUMP_METHODS`` disables the method dump.
        """

        source = os.environ if environ is None else environ
        return cls(
            dump_methods=_optional_path(source.get(DUMP_METHODS_ENV)),
            dump_fields=_optional_path(source.get(DUMP_FIELDS_ENV)),
            log_level=_log_level_name(source.get(LOG_LEVEL_ENV)),
        )

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def _optional_path(raw: str | None) -> Path | None:
    if not raw:
        return None
    return Path(raw)


def _log_level_name(raw: str | None) -> str:
    if not raw:
        return DEFAULT_LOG_LEVEL
    name = raw.strip().upper()
    if not isinstance(getattr(logging, name, None), int):
        LOGGER.warning("ignoring unknown %s value %r", LOG_LEVEL_ENV, raw)
        return DEFAULT_LOG_LEVEL
    return name


__all__ = [
    "DEFAULT_LOG_LEVEL",
    "DUMP_FIELDS_ENV",
    "DUMP_METHODS_ENV",
    "LOG_LEVEL_ENV",
    "ToolConfig",
]
