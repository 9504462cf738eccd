"""Diagnostic dump files for the dex identifier sections."""

from __future__ import annotations

import contextlib
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Iterator, TextIO

from .config import ToolConfig
from .errors import DumpCreationError

LOGGER = logging.getLogger(__name__)


class DumpCategory(str, Enum):
    """Named trace streams that can be redirected to files."""

    METHOD_IDS = "method_ids"
    FIELD_IDS = "field_ids"


class DumpFacility:
    """Open dump sinks for the categories enabled in ``config``.

    Each call to :meth:`open_dump` opens the configured path afresh; opening
    the same category twice truncates whatever the first sink wrote.
    """

    def __init__(self, config: ToolConfig, status: TextIO | None = None) -> None:
        self._status = status
        self._paths: dict[DumpCategory, Path | None] = {
            DumpCategory.METHOD_IDS: config.dump_methods,
            DumpCategory.FIELD_IDS: config.dump_fields,
        }

    @classmethod
    def from_environ(cls) -> "DumpFacility":
        return cls(ToolConfig.from_environ())

    def path_for(self, category: DumpCategory | str) -> Path | None:
        """Return the configured path for ``category`` or ``None``."""

        return self._paths[DumpCategory(category)]

    def open_dump(self, category: DumpCategory | str) -> TextIO | None:
        """Create the dump file for ``category`` and return a writable sink.

        Returns ``None`` when the category is not configured. The caller owns
        the returned sink and must close it; :meth:`dump_writer` does so
        automatically.
        """

        path = self.path_for(category)
        if path is None:
            return None
        target = path.absolute()
        status = self._status if self._status is not None else sys.stdout
        print(f"Writing {target}", file=status)
        try:
            return target.open("w", encoding="utf-8")
        except OSError as exc:
            raise DumpCreationError(f"cannot create dump file {target}: {exc}") from exc

    @contextlib.contextmanager
    def dump_writer(self, category: DumpCategory | str) -> Iterator[TextIO | None]:
        """Context manager form of :meth:`open_dump`."""

        sink = self.open_dump(category)
        try:
            yield sink
        finally:
            if sink is not None:
                sink.close()
                LOGGER.debug("closed %s dump", DumpCategory(category).value)


__all__ = ["DumpCategory", "DumpFacility"]
