"""Selector table mapping ``dx`` commands to their subsystem entrypoints."""

from __future__ import annotations

from enum import Enum
from importlib import import_module
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping, Sequence

from .errors import EntrypointError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .dumps import DumpFacility

SELECTOR_PREFIX = "--"

SubsystemEntrypoint = Callable[[Sequence[str], "DumpFacility | None"], "int | None"]


class Command(Enum):
    """Commands understood by the top-level dispatcher."""

    DEX = "--dex"
    DUMP = "--dump"
    ANNOTOOL = "--annotool"
    FIND_USAGES = "--find-usages"
    VERSION = "--version"
    HELP = "--help"
    UNRECOGNIZED = ""

    @property
    def selector(self) -> str:
        return self.value

    @classmethod
    def from_selector(cls, token: str) -> "Command | None":
        """Return the command named by ``token`` (exact match) or ``None``."""

        if not token:
            return None
        try:
            return cls(token)
        except ValueError:
            return None


SUBSYSTEMS: Mapping[Command, str] = MappingProxyType(
    {
        Command.DEX: "dxtool.dexer:main",
        Command.DUMP: "dxtool.dumper:main",
        Command.ANNOTOOL: "dxtool.annotool:main",
        Command.FIND_USAGES: "dxtool.find_usages:main",
    }
)


def resolve(command: Command) -> SubsystemEntrypoint:
    """Import and return the entrypoint for ``command``."""

    try:
        import_path = SUBSYSTEMS[command]
    except KeyError as exc:
        raise KeyError(f"{command.name} is handled by the dispatcher itself") from exc
    return import_entrypoint(import_path)


def import_entrypoint(import_path: str) -> SubsystemEntrypoint:
    """Resolve ``module:attribute`` to a callable."""

    module_name, _, attribute = import_path.partition(":")
    module = import_module(module_name)
    try:
        entrypoint: object = getattr(module, attribute)
    except AttributeError as exc:
        raise EntrypointError(
            f"subsystem '{import_path}' missing attribute '{attribute}'",
            name=module_name,
        ) from exc

    if not callable(entrypoint):
        raise TypeError(
            f"subsystem '{import_path}' resolved to non-callable {type(entrypoint)!r}"
        )
    return entrypoint


__all__ = [
    "Command",
    "SELECTOR_PREFIX",
    "SUBSYSTEMS",
    "SubsystemEntrypoint",
    "import_entrypoint",
    "resolve",
]
