"""Top-level ``dx`` command: pick one subsystem and report how it ended."""

from __future__ import annotations

import logging
import sys
import traceback
from dataclasses import dataclass
from typing import Callable, Sequence, TextIO

from .config import ToolConfig
from .dumps import DumpFacility
from .errors import (
    INCOMPATIBLE_RUNTIME_NOTE,
    FailureKind,
    failure_kind,
    is_linkage_error,
)
from .registry import SELECTOR_PREFIX, Command, SubsystemEntrypoint, resolve
from .version import VERSION

LOGGER = logging.getLogger(__name__)

USAGE_MESSAGE = (
    "usage:\n"
    "  dx --dex [--verbose] [--statistics] [--core-library] "
    "[--dump-to=<file>]\n"
    "  [<file>.class | <file>.{zip,jar,apk} | <directory>] ...\n"
    "    Read a set of classfiles and build the dex identifier sections.\n"
    "    Set DX_FILE_DUMP_METHODS / DX_FILE_DUMP_FIELDS to write the method\n"
    "    and field id tables to files.\n"
    "  dx --annotool --annotation=<class> [--element=<element types>]\n"
    "  [--print=<print types>] <file> ...\n"
    "  dx --dump [--bytes] [--width=<n>] [--no-code]\n"
    "  [<file>.class | <file>.{zip,jar,apk} | <directory>] ...\n"
    "    Dump classfiles in a human-oriented format.\n"
    "  dx --find-usages <file> <declaring type> <member>\n"
    "    Find references and declarations to a field or method.\n"
    "    declaring type: a class name in internal form, like "
    "Ljava/lang/Object;\n"
    "    member: a field or method name, like hashCode\n"
    "  dx --version\n"
    f"    Print the version of this tool ({VERSION}).\n"
    "  dx --help\n"
    "    Print this message."
)

Resolver = Callable[[Command], SubsystemEntrypoint]


@dataclass(frozen=True)
class DispatchResult:
    """Command selected by :func:`dispatch` and the status it produced."""

    command: Command
    status: int = 0


def without(args: Sequence[str], index: int) -> tuple[str, ...]:
    """Return ``args`` minus the element at ``index``."""

    return tuple(args[:index]) + tuple(args[index + 1 :])


def find_command(args: Sequence[str]) -> tuple[Command, tuple[str, ...]]:
    """Locate the first selector in ``args``.

    Returns the command and the residual arguments. Scanning stops at the
    first token that is not shaped like a selector; unknown selectors are
    skipped.
    """

    for index, arg in enumerate(args):
        if arg == SELECTOR_PREFIX or not arg.startswith(SELECTOR_PREFIX):
            break
        command = Command.from_selector(arg)
        if command is None:
            LOGGER.debug("skipping unrecognized option %r", arg)
            continue
        return command, without(args, index)
    return Command.UNRECOGNIZED, tuple(args)


def dispatch(
    args: Sequence[str],
    *,
    dumps: DumpFacility | None = None,
    resolver: Resolver = resolve,
) -> DispatchResult:
    """Run the subsystem selected by ``args``.

    ``--version``, ``--help`` and the no-command case are returned to the
    caller untouched; every other command is forwarded to its entrypoint.
    An entrypoint returns an ``int`` exit status or ``None`` for success.
    """

    command, residual = find_command(args)
    if command in (Command.UNRECOGNIZED, Command.VERSION, Command.HELP):
        return DispatchResult(command)

    LOGGER.debug("dispatching %s with %d argument(s)", command.name, len(residual))
    entrypoint = resolver(command)
    result = entrypoint(list(residual), dumps)
    # bool is not an exit status.
    status = result if type(result) is int else 0
    return DispatchResult(command, status)


def print_usage(stream: TextIO | None = None) -> None:
    print(USAGE_MESSAGE, file=stream if stream is not None else sys.stderr)


def print_version(stream: TextIO | None = None) -> None:
    print(f"dx version {VERSION}", file=stream if stream is not None else sys.stderr)


def report_failure(exc: BaseException, stream: TextIO | None = None) -> int:
    """Print the report for ``exc`` and return the process exit status."""

    err = stream if stream is not None else sys.stderr
    kind = failure_kind(exc)
    if kind is FailureKind.USAGE_ERROR:
        LOGGER.debug("usage error: %s", exc)
        print_usage(err)
    else:
        print(f"\n{kind.header}", file=err)
        traceback.print_exception(exc, file=err)
        if kind is FailureKind.UNEXPECTED_ERROR and is_linkage_error(exc):
            print(INCOMPATIBLE_RUNTIME_NOTE, file=err)
    return kind.exit_status


def run(
    args: Sequence[str],
    config: ToolConfig | None = None,
    *,
    resolver: Resolver = resolve,
) -> int:
    """Dispatch ``args`` and return the exit status for the process."""

    dumps = DumpFacility(config if config is not None else ToolConfig.from_environ())
    try:
        result = dispatch(args, dumps=dumps, resolver=resolver)
    except Exception as exc:
        return report_failure(exc)

    if result.command is Command.VERSION:
        print_version()
        return 0
    if result.command is Command.UNRECOGNIZED:
        print("error: no command specified", file=sys.stderr)
        print_usage()
        return 1
    if result.command is Command.HELP:
        print_usage()
        return 1
    return result.status


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``dx`` console script."""

    args = list(sys.argv[1:] if argv is None else argv)
    config = ToolConfig.from_environ()
    logging.basicConfig(
        level=config.log_level_value,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return run(args, config)


__all__ = [
    "DispatchResult",
    "USAGE_MESSAGE",
    "dispatch",
    "find_command",
    "main",
    "print_usage",
    "print_version",
    "report_failure",
    "run",
    "without",
]


if __name__ == "__main__":  # pragma: no cover - exercised via python -m
    raise SystemExit(main())
