# tests/test_invoker.py
from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

from runforge.executor import CancellationToken, CommandInvoker, CommandOutcome
from runforge.executor.invoker import (
    POSIX_SHELL,
    build_argv,
    format_timeout,
    needs_shell,
    quote_posix,
)
from runforge.executor.output import OutputBuffer


def _py(code: str) -> str:
    exe = str(Path(sys.executable))
    return f'"{exe}" -c "{code}"'


posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX process groups")


# -------------------------
# Shell predicate and quoting
# -------------------------


@pytest.mark.parametrize(
    "command",
    [
        "npm test && npm run build",
        "cat log | grep ERROR",
        "echo hi > out.txt",
        "echo $HOME",
        "ls *.py",
        'echo "quoted words"',
        "cd sub",
        "export A=1",
    ],
)
def test_shell_is_used_for_shell_syntax(command: str) -> None:
    assert needs_shell(command, platform="linux")
    assert build_argv(command, platform="linux") == [POSIX_SHELL, "-c", command]


@pytest.mark.parametrize("command", ["npm test", "python -m pytest -q", "go test ./..."])
def test_plain_commands_are_split_on_whitespace(command: str) -> None:
    assert not needs_shell(command, platform="linux")
    assert build_argv(command, platform="linux") == command.split()


def test_windows_builtins_go_through_cmd() -> None:
    assert build_argv("dir", platform="win32") == ["cmd.exe", "/c", "dir"]
    assert build_argv("DIR /b", platform="win32") == ["cmd.exe", "/c", "DIR /b"]
    assert build_argv("dotnet test", platform="win32") == ["dotnet", "test"]


def test_quote_posix_wraps_embedded_single_quotes() -> None:
    assert quote_posix("echo hi") == "'echo hi'"
    assert quote_posix("echo 'a b'") == "'echo '\\''a b'\\'''"


def test_format_timeout() -> None:
    assert format_timeout(2) == "2 seconds"
    assert format_timeout(600) == "10 minutes"


# -------------------------
# Output buffer
# -------------------------


def test_output_buffer_truncates_with_marker() -> None:
    buf = OutputBuffer(limit=5)
    buf.append("abc\n")
    buf.append("defgh\n")
    buf.append("never\n")

    assert buf.truncated
    assert buf.text() == "abc\nd\n[output truncated after 5 characters]"


def test_output_buffer_strips_trailing_newline() -> None:
    buf = OutputBuffer()
    buf.append("one\n")
    buf.append("two\r\n")
    assert buf.text() == "one\ntwo"
    assert not buf.truncated


# -------------------------
# Invocation
# -------------------------


def test_captures_stdout_and_stderr(tmp_path: Path) -> None:
    invoker = CommandInvoker()
    result = invoker.invoke(
        _py("import sys; print('out'); print('err', file=sys.stderr)"), tmp_path, {}, 10
    )

    assert result.outcome is CommandOutcome.COMPLETED
    assert result.exit_code == 0
    assert result.is_success
    assert result.output == "out"
    assert result.error == "err"
    assert result.end_time >= result.start_time


def test_nonzero_exit_code_is_reported(tmp_path: Path) -> None:
    result = CommandInvoker().invoke(_py("raise SystemExit(7)"), tmp_path, {}, 10)

    assert result.completed
    assert result.exit_code == 7
    assert not result.is_success


def test_environment_overlays_parent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RF_PARENT", "inherited")
    code = (
        "import os; "
        "raise SystemExit(0 if os.environ.get('RF_CHILD') == 'set' "
        "and os.environ.get('RF_PARENT') == 'inherited' else 3)"
    )
    result = CommandInvoker().invoke(_py(code), tmp_path, {"RF_CHILD": "set"}, 10)

    assert result.exit_code == 0


def test_runs_in_working_directory(tmp_path: Path) -> None:
    code = "from pathlib import Path; Path('marker.txt').write_text('ok')"
    result = CommandInvoker().invoke(_py(code), tmp_path, {}, 10)

    assert result.is_success
    assert (tmp_path / "marker.txt").read_text() == "ok"


def test_missing_working_directory_is_reported_without_running(tmp_path: Path) -> None:
    missing = tmp_path / "missing"
    result = CommandInvoker().invoke("echo hi", missing, {}, 10)

    assert result.outcome is CommandOutcome.INVALID_WORKING_DIRECTORY
    assert result.exit_code == -1
    assert "Working directory not found" in result.error


def test_missing_executable_is_reported(tmp_path: Path) -> None:
    result = CommandInvoker().invoke("runforge-no-such-binary --flag", tmp_path, {}, 10)

    assert result.outcome is CommandOutcome.INVOCATION_FAILED
    assert result.exit_code == -1
    assert result.error.startswith("Failed to execute command")


def test_timeout_kills_command(tmp_path: Path) -> None:
    started = time.monotonic()
    result = CommandInvoker().invoke(_py("import time; time.sleep(30)"), tmp_path, {}, 0.6)
    elapsed = time.monotonic() - started

    assert result.outcome is CommandOutcome.TIMED_OUT
    assert result.exit_code == -1
    assert "Command timed out after" in result.error
    assert elapsed < 10


@posix_only
def test_timeout_kills_grandchildren(tmp_path: Path) -> None:
    marker = tmp_path / "late.txt"
    grandchild = "import sys,time;time.sleep(2);open(sys.argv[1],sys.argv[2]).write(sys.argv[2])"
    code = (
        "import subprocess, sys, time; "
        f"subprocess.Popen([sys.executable, '-c', '{grandchild}', r'{marker}', 'w']); "
        "time.sleep(30)"
    )
    result = CommandInvoker().invoke(_py(code), tmp_path, {}, 0.8)

    assert result.outcome is CommandOutcome.TIMED_OUT
    time.sleep(3)
    assert not marker.exists()


def test_cancellation_is_distinct_from_timeout(tmp_path: Path) -> None:
    token = CancellationToken()
    timer = threading.Timer(0.5, token.cancel)
    timer.start()
    try:
        result = CommandInvoker().invoke(
            _py("import time; time.sleep(30)"), tmp_path, {}, 60, token
        )
    finally:
        timer.cancel()

    assert result.outcome is CommandOutcome.CANCELLED
    assert result.exit_code == -1
    assert "timed out" not in result.error


def test_already_cancelled_token_runs_nothing(tmp_path: Path) -> None:
    token = CancellationToken()
    token.cancel()
    code = "from pathlib import Path; Path('ran.txt').write_text('x')"
    result = CommandInvoker().invoke(_py(code), tmp_path, {}, 10, token)

    assert result.outcome is CommandOutcome.CANCELLED
    assert not (tmp_path / "ran.txt").exists()


def test_large_output_is_truncated(tmp_path: Path) -> None:
    invoker = CommandInvoker(max_output_chars=100)
    result = invoker.invoke(_py("print('x' * 5000)"), tmp_path, {}, 10)

    assert result.exit_code == 0
    assert result.output_truncated
    assert result.output.endswith("[output truncated after 100 characters]")
    assert len(result.output) < 200
