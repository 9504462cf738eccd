"""Argument parsing shared by the dx subsystems."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from .errors import UsageError


class ToolArgumentParser(argparse.ArgumentParser):
    """``ArgumentParser`` that reports problems as :class:`UsageError`.

    The message is printed to stderr before raising so the user still sees
    what was wrong once the dispatcher prints the general usage text.
    """

    def __init__(self, *args, **kwargs) -> None:
        kwargs.setdefault("add_help", False)
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(*args, **kwargs)

    def error(self, message: str) -> NoReturn:
        print(f"{self.prog}: {message}", file=sys.stderr)
        raise UsageError(message)


def positive_int(text: str) -> int:
    try:
        value = int(text, base=10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {text!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


__all__ = ["ToolArgumentParser", "positive_int"]
