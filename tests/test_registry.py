from __future__ import annotations

import pytest

from dxtool import registry
from dxtool.errors import EntrypointError, FailureKind, failure_kind
from dxtool.registry import Command


@pytest.mark.parametrize(
    "token, command",
    [
        ("--dex", Command.DEX),
        ("--dump", Command.DUMP),
        ("--annotool", Command.ANNOTOOL),
        ("--find-usages", Command.FIND_USAGES),
        ("--version", Command.VERSION),
        ("--help", Command.HELP),
    ],
)
def test_from_selector_matches_exactly(token: str, command: Command) -> None:
    assert Command.from_selector(token) is command


@pytest.mark.parametrize("token", ["", "--", "--Dex", "--dex ", "-dex", "--find_usages"])
def test_from_selector_rejects_near_misses(token: str) -> None:
    assert Command.from_selector(token) is None


def test_every_forwarded_command_resolves_to_callable() -> None:
    for command in (Command.DEX, Command.DUMP, Command.ANNOTOOL, Command.FIND_USAGES):
        entrypoint = registry.resolve(command)
        assert callable(entrypoint)
        assert entrypoint.__name__ == "main"


@pytest.mark.parametrize("command", [Command.VERSION, Command.HELP, Command.UNRECOGNIZED])
def test_local_commands_are_not_registered(command: Command) -> None:
    with pytest.raises(KeyError):
        registry.resolve(command)


def test_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        registry.SUBSYSTEMS[Command.DEX] = "x:y"  # type: ignore[index]


def test_missing_attribute_is_linkage_error() -> None:
    with pytest.raises(EntrypointError) as excinfo:
        registry.import_entrypoint("dxtool.dumper:no_such_entrypoint")
    assert isinstance(excinfo.value, ImportError)
    assert failure_kind(excinfo.value) is FailureKind.UNEXPECTED_ERROR


def test_missing_module_raises_module_not_found() -> None:
    with pytest.raises(ModuleNotFoundError):
        registry.import_entrypoint("dxtool.no_such_tool:main")


def test_non_callable_entrypoint_is_rejected() -> None:
    with pytest.raises(TypeError):
        registry.import_entrypoint("dxtool.dexer:MAX_MEMBER_IDS")


def test_import_path_requires_module_colon_attribute() -> None:
    assert registry.import_entrypoint("dxtool.dumper:main") is registry.resolve(Command.DUMP)
    with pytest.raises(EntrypointError):
        registry.import_entrypoint("dxtool.dumper")
