"""Dispatch and failure reporting for the top-level ``dx`` command."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Sequence

import pytest

from dxtool import cli
from dxtool.config import ToolConfig
from dxtool.errors import DumpCreationError, EntrypointError, UsageError
from dxtool.registry import Command


class RecordingResolver:
    """Resolver that records which subsystem ran and with what."""

    def __init__(self, result: object = None, raises: BaseException | None = None) -> None:
        self.calls: List[tuple[Command, List[str]]] = []
        self._result = result
        self._raises = raises

    def __call__(self, command: Command):
        def entrypoint(argv: Sequence[str], dumps) -> object:
            self.calls.append((command, list(argv)))
            if self._raises is not None:
                raise self._raises
            return self._result

        return entrypoint


@pytest.mark.parametrize(
    "selector, command",
    [
        ("--dex", Command.DEX),
        ("--dump", Command.DUMP),
        ("--annotool", Command.ANNOTOOL),
        ("--find-usages", Command.FIND_USAGES),
    ],
)
def test_dispatch_forwards_residual_to_matching_subsystem(selector: str, command: Command) -> None:
    resolver = RecordingResolver()
    result = cli.dispatch([selector, "a", "--b", "c"], resolver=resolver)

    assert result == cli.DispatchResult(command, 0)
    assert resolver.calls == [(command, ["a", "--b", "c"])]


@pytest.mark.parametrize("selector, command", [("--version", Command.VERSION), ("--help", Command.HELP)])
def test_dispatch_handles_local_commands_without_subsystem(selector: str, command: Command) -> None:
    resolver = RecordingResolver()
    assert cli.dispatch([selector], resolver=resolver).command is command
    assert resolver.calls == []


def test_selector_removed_preserving_order_of_other_arguments() -> None:
    resolver = RecordingResolver()
    cli.dispatch(["--verbose", "--dex", "--x=1", "Foo.class", "Bar.class"], resolver=resolver)

    assert resolver.calls == [(Command.DEX, ["--verbose", "--x=1", "Foo.class", "Bar.class"])]


def test_only_first_selector_is_honored() -> None:
    resolver = RecordingResolver()
    cli.dispatch(["--dump", "--dex", "x.class"], resolver=resolver)

    assert resolver.calls == [(Command.DUMP, ["--dex", "x.class"])]


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["Foo.class"],
        ["--"],
        ["--", "--dex"],
        ["Foo.class", "--dex"],
        ["--bogus"],
        ["--bogus", "Foo.class", "--dex"],
        ["--DEX"],
    ],
)
def test_no_command_found(args: List[str]) -> None:
    resolver = RecordingResolver()
    result = cli.dispatch(args, resolver=resolver)

    assert result.command is Command.UNRECOGNIZED
    assert resolver.calls == []


def test_unknown_flags_before_selector_are_skipped() -> None:
    resolver = RecordingResolver()
    result = cli.dispatch(["--bogus", "--dex", "x"], resolver=resolver)

    assert result.command is Command.DEX
    assert resolver.calls == [(Command.DEX, ["--bogus", "x"])]


def test_without_removes_single_element() -> None:
    assert cli.without(["a", "b", "c"], 0) == ("b", "c")
    assert cli.without(["a", "b", "c"], 1) == ("a", "c")
    assert cli.without(["a", "b", "c"], 2) == ("a", "b")


def test_subsystem_status_is_propagated() -> None:
    assert cli.dispatch(["--dex", "x"], resolver=RecordingResolver(result=2)).status == 2
    assert cli.dispatch(["--dex", "x"], resolver=RecordingResolver(result=None)).status == 0


def test_boolean_result_is_not_an_exit_status() -> None:
    assert cli.dispatch(["--dex", "x"], resolver=RecordingResolver(result=True)).status == 0
    assert cli.dispatch(["--dex", "x"], resolver=RecordingResolver(result=False)).status == 0


def _run(args: List[str], resolver: RecordingResolver) -> int:
    return cli.run(args, ToolConfig(), resolver=resolver)


def test_run_success_returns_zero(capsys: pytest.CaptureFixture[str]) -> None:
    resolver = RecordingResolver()
    assert _run(["--dex", "Foo.class"], resolver) == 0
    assert resolver.calls == [(Command.DEX, ["Foo.class"])]
    captured = capsys.readouterr()
    assert captured.err == ""


def test_run_without_arguments_reports_no_command(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run([], ToolConfig()) == 1
    err = capsys.readouterr().err
    assert err.startswith("error: no command specified\n")
    assert cli.USAGE_MESSAGE in err


def test_run_unknown_selector_prints_usage(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run(["--bogus"], ToolConfig()) == 1
    err = capsys.readouterr().err
    assert "no command specified" in err
    assert cli.USAGE_MESSAGE in err


def test_run_help_prints_usage_without_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run(["--help"], ToolConfig()) == 1
    err = capsys.readouterr().err
    assert "no command specified" not in err
    assert cli.USAGE_MESSAGE in err


def test_run_version(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run(["--version"], ToolConfig()) == 0
    captured = capsys.readouterr()
    assert captured.err == f"dx version {cli.VERSION}\n"
    assert cli.USAGE_MESSAGE not in captured.err


def test_usage_error_prints_only_usage(capsys: pytest.CaptureFixture[str]) -> None:
    resolver = RecordingResolver(raises=UsageError("bad flag"))
    assert _run(["--dump", "--nope"], resolver) == 1
    err = capsys.readouterr().err
    assert err.strip() == cli.USAGE_MESSAGE
    assert "Traceback" not in err


def test_ordinary_failure_exits_two_with_traceback(capsys: pytest.CaptureFixture[str]) -> None:
    resolver = RecordingResolver(raises=RuntimeError("boom"))
    assert _run(["--dex", "x"], resolver) == 2
    err = capsys.readouterr().err
    assert "UNEXPECTED TOP-LEVEL EXCEPTION:" in err
    assert "RuntimeError: boom" in err
    assert "Traceback" in err
    assert "incompatible" not in err
    assert cli.USAGE_MESSAGE not in err


def test_dump_creation_failure_is_ordinary_failure(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.report_failure(DumpCreationError("cannot create")) == 2
    assert "UNEXPECTED TOP-LEVEL EXCEPTION:" in capsys.readouterr().err


@pytest.mark.parametrize(
    "exc",
    [MemoryError("oom"), RecursionError("deep"), SystemError("internal")],
)
def test_severe_error_exits_three_without_hint(exc: BaseException, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.report_failure(exc) == 3
    err = capsys.readouterr().err
    assert "UNEXPECTED TOP-LEVEL ERROR:" in err
    assert type(exc).__name__ in err
    assert "incompatible" not in err


@pytest.mark.parametrize(
    "exc",
    [
        ModuleNotFoundError("No module named 'dxtool.missing'", name="dxtool.missing"),
        ImportError("cannot import name 'x'"),
        EntrypointError("subsystem 'dxtool.dumper:nope' missing attribute 'nope'"),
    ],
)
def test_linkage_error_gets_remediation_hint(exc: BaseException, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.report_failure(exc) == 3
    err = capsys.readouterr().err
    assert "UNEXPECTED TOP-LEVEL ERROR:" in err
    assert "Note: You may be using an incompatible Python interpreter" in err


def test_keyboard_interrupt_is_not_classified() -> None:
    resolver = RecordingResolver(raises=KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        _run(["--dex", "x"], resolver)


def test_main_reads_environment_once(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    seen: Dict[str, ToolConfig] = {}

    def fake_run(args, config):
        seen["config"] = config
        return 0

    monkeypatch.setenv("DX_FILE_DUMP_METHODS", "/tmp/methods.txt")
    monkeypatch.delenv("DX_FILE_DUMP_FIELDS", raising=False)
    monkeypatch.setattr(cli, "run", fake_run)

    assert cli.main(["--version"]) == 0
    assert seen["config"].dump_methods == Path("/tmp/methods.txt")
    assert seen["config"].dump_fields is None


def _python_env(**extra: str) -> Dict[str, str]:
    env = os.environ.copy()
    src_path = Path(__file__).resolve().parents[1] / "src"
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = os.pathsep.join([str(src_path), existing] if existing else [str(src_path)])
    env.pop("DX_FILE_DUMP_METHODS", None)
    env.pop("DX_FILE_DUMP_FIELDS", None)
    env.update(extra)
    return env


def _run_cli(args: List[str], **env: str) -> subprocess.CompletedProcess[str]:
    command = [sys.executable, "-m", "dxtool", *args]
    return subprocess.run(command, check=False, capture_output=True, text=True, env=_python_env(**env))


def test_cli_dex_from_subprocess(sample_class_file: Path) -> None:
    result = _run_cli(["--dex", str(sample_class_file)])
    assert result.returncode == 0, result.stderr


def test_cli_no_arguments_from_subprocess() -> None:
    result = _run_cli([])
    assert result.returncode == 1
    assert "error: no command specified" in result.stderr
    assert "usage:" in result.stderr


def test_cli_version_from_subprocess() -> None:
    result = _run_cli(["--version"])
    assert result.returncode == 0
    assert result.stderr.strip() == f"dx version {cli.VERSION}"


def test_cli_bogus_selector_from_subprocess() -> None:
    result = _run_cli(["--bogus"])
    assert result.returncode == 1
    assert "usage:" in result.stderr


def test_cli_subsystem_usage_error_from_subprocess() -> None:
    result = _run_cli(["--dump", "--no-such-flag"])
    assert result.returncode == 1
    assert "usage:" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_writes_method_dump_from_subprocess(sample_class_file: Path, tmp_path: Path) -> None:
    methods = tmp_path / "m.txt"
    result = _run_cli(["--dex", str(sample_class_file)], DX_FILE_DUMP_METHODS=str(methods))
    assert result.returncode == 0, result.stderr
    assert f"Writing {methods}" in result.stdout
    assert "Lcom/example/Greeter;.greet:()V" in methods.read_text(encoding="utf-8")
