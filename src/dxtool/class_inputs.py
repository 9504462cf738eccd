"""Expand command-line paths into class file payloads."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .errors import UsageError

LOGGER = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = frozenset({".jar", ".zip", ".apk"})
CLASS_SUFFIX = ".class"


@dataclass(frozen=True)
class ClassInput:
    """Raw class file bytes plus the name used in diagnostics."""

    name: str
    data: bytes


def iter_class_inputs(paths: Iterable[str | Path]) -> Iterator[ClassInput]:
    """Yield class payloads for ``paths`` in command-line order."""

    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            yield from _iter_directory(path)
        elif path.suffix.lower() in ARCHIVE_SUFFIXES:
            yield from _iter_archive(path)
        elif path.suffix.lower() == CLASS_SUFFIX:
            if not path.is_file():
                raise UsageError(f"no such file: {path}")
            yield ClassInput(str(path), path.read_bytes())
        else:
            raise UsageError(f"unsupported input (expected .class, archive or directory): {path}")


def _iter_directory(root: Path) -> Iterator[ClassInput]:
    for path in sorted(root.rglob(f"*{CLASS_SUFFIX}")):
        if path.is_file():
            yield ClassInput(str(path), path.read_bytes())


def _iter_archive(path: Path) -> Iterator[ClassInput]:
    if not path.is_file():
        raise UsageError(f"no such file: {path}")
    try:
        archive = zipfile.ZipFile(path)
    except zipfile.BadZipFile as exc:
        raise UsageError(f"not a zip archive: {path}") from exc
    with archive:
        for info in archive.infolist():
            if info.is_dir() or not info.filename.endswith(CLASS_SUFFIX):
                continue
            LOGGER.debug("reading %s from %s", info.filename, path)
            yield ClassInput(f"{path}!{info.filename}", archive.read(info))


__all__ = ["ARCHIVE_SUFFIXES", "ClassInput", "iter_class_inputs"]
