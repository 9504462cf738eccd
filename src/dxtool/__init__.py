"""Command-line suite for converting and inspecting JVM class files."""
from __future__ import annotations

from .config import ToolConfig
from .dumps import DumpCategory, DumpFacility
from .errors import DumpCreationError, DxError, FailureKind, UsageError
from .registry import Command
from .version import VERSION

__version__ = VERSION

__all__ = [
    "Command",
    "DumpCategory",
    "DumpCreationError",
    "DumpFacility",
    "DxError",
    "FailureKind",
    "ToolConfig",
    "UsageError",
    "VERSION",
]
