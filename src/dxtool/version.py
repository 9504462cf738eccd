"""Version information for the dx tool suite."""

from __future__ import annotations

VERSION = "1.16"

__all__ = ["VERSION"]
