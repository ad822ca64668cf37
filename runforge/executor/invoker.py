from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import IO

from .cancel import CancellationToken
from .output import DEFAULT_MAX_OUTPUT_CHARS, OutputBuffer
from .types import CommandOutcome, CommandResult

POSIX_SHELL = "/bin/sh"
WINDOWS_SHELL = "cmd.exe"

# Any of these means the command string has to go through a shell:
# pipes, redirection, && / ||, sequencing, expansion and quoting.
SHELL_METACHARACTERS = frozenset("|&<>;$`'\"*?")

# Built-ins with no standalone executable.
POSIX_BUILTINS = frozenset(
    {"cd", "export", "source", ".", "set", "unset", "alias", "ulimit", "umask", "exec", "eval"}
)
WINDOWS_BUILTINS = frozenset(
    {"dir", "copy", "move", "del", "echo", "type", "cd", "md", "rd", "mkdir", "rmdir", "ren", "set", "cls"}
)

_POLL_INTERVAL_S = 0.05
_READER_JOIN_S = 5.0


def is_windows(platform: str | None = None) -> bool:
    return (platform or sys.platform).startswith("win")


def split_command(command: str) -> tuple[str, list[str]]:
    tokens = command.split()
    if not tokens:
        return "", []
    return tokens[0], tokens[1:]


def needs_shell(
    command: str,
    *,
    platform: str | None = None,
    metacharacters: frozenset[str] = SHELL_METACHARACTERS,
    builtins: frozenset[str] | None = None,
) -> bool:
    executable, _ = split_command(command)
    if not executable:
        return False

    if builtins is None:
        builtins = WINDOWS_BUILTINS if is_windows(platform) else POSIX_BUILTINS

    name = executable.lower() if is_windows(platform) else executable
    if name in builtins:
        return True

    return any(ch in command for ch in metacharacters)


def quote_posix(command: str) -> str:
    return "'" + command.replace("'", "'\\''") + "'"


def build_argv(command: str, *, platform: str | None = None) -> list[str]:
    if needs_shell(command, platform=platform):
        if is_windows(platform):
            return [WINDOWS_SHELL, "/c", command]
        return [POSIX_SHELL, "-c", command]

    executable, arguments = split_command(command)
    return [executable, *arguments]


def render_command_line(argv: Sequence[str]) -> str:
    if len(argv) == 3 and argv[0] == POSIX_SHELL and argv[1] == "-c":
        return f"{POSIX_SHELL} -c {quote_posix(argv[2])}"
    return " ".join(argv)


def format_timeout(timeout_s: float) -> str:
    if timeout_s >= 60:
        return f"{timeout_s / 60:g} minutes"
    return f"{timeout_s:g} seconds"


class CommandInvoker:
    def __init__(
        self,
        *,
        logger: logging.Logger | None = None,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        poll_interval_s: float = _POLL_INTERVAL_S,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._max_output_chars = max_output_chars
        self._poll_interval_s = poll_interval_s

    def invoke(
        self,
        command: str,
        working_directory: str | os.PathLike[str],
        environment: Mapping[str, str],
        timeout_s: float,
        cancellation: CancellationToken | None = None,
    ) -> CommandResult:
        start = datetime.now()
        cwd = os.fspath(working_directory)

        if cancellation is not None and cancellation.cancelled:
            return self._not_run(
                command, cwd, start, CommandOutcome.CANCELLED, "Command cancelled before start"
            )

        if not command.strip():
            return self._not_run(
                command, cwd, start, CommandOutcome.INVOCATION_FAILED,
                "Failed to execute command: empty command",
            )

        if not os.path.isdir(cwd):
            return self._not_run(
                command, cwd, start, CommandOutcome.INVALID_WORKING_DIRECTORY,
                f"Working directory not found: {cwd}",
            )

        argv = build_argv(command)
        self._logger.debug("Executing %s in %s", render_command_line(argv), cwd)

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env={**os.environ, **environment},
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **_new_process_group_kwargs(),
            )
        except (OSError, ValueError) as exc:
            self._logger.error("Failed to start command %r: %s", command, exc)
            return self._not_run(
                command, cwd, start, CommandOutcome.INVOCATION_FAILED,
                f"Failed to execute command: {exc}",
            )

        stdout = OutputBuffer(self._max_output_chars)
        stderr = OutputBuffer(self._max_output_chars)
        readers = [
            _start_reader(proc.stdout, stdout, "stdout"),
            _start_reader(proc.stderr, stderr, "stderr"),
        ]

        try:
            outcome = self._wait(proc, timeout_s, cancellation)
        except BaseException:
            self._kill_tree(proc)
            raise
        if outcome is not CommandOutcome.COMPLETED:
            self._kill_tree(proc)
        proc.wait()

        for reader in readers:
            reader.join(_READER_JOIN_S)
            if reader.is_alive():
                self._logger.warning(
                    "Output reader for %r still attached after %.0fs", command, _READER_JOIN_S
                )

        end = datetime.now()
        output = stdout.text()
        error = stderr.text()
        truncated = stdout.truncated or stderr.truncated

        match outcome:
            case CommandOutcome.TIMED_OUT:
                message = f"Command timed out after {format_timeout(timeout_s)}"
                self._logger.warning("%s: %s", message, command)
                return CommandResult(
                    command, -1, output, _join(error, message), start, end,
                    cwd, outcome, truncated,
                )
            case CommandOutcome.CANCELLED:
                self._logger.warning("Command cancelled: %s", command)
                return CommandResult(
                    command, -1, output, _join(error, "Command cancelled"), start, end,
                    cwd, outcome, truncated,
                )
            case _:
                self._logger.debug(
                    "Command completed with exit code %d: %s", proc.returncode, command
                )
                return CommandResult(
                    command, proc.returncode, output, error, start, end,
                    cwd, outcome, truncated,
                )

    def _wait(
        self,
        proc: subprocess.Popen,
        timeout_s: float,
        cancellation: CancellationToken | None,
    ) -> CommandOutcome:
        deadline = time.monotonic() + timeout_s

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                if proc.poll() is not None:
                    return CommandOutcome.COMPLETED
                return CommandOutcome.TIMED_OUT

            try:
                proc.wait(timeout=min(self._poll_interval_s, remaining))
                return CommandOutcome.COMPLETED
            except subprocess.TimeoutExpired:
                pass

            if cancellation is not None and cancellation.cancelled:
                return CommandOutcome.CANCELLED

    def _kill_tree(self, proc: subprocess.Popen) -> None:
        try:
            if is_windows():
                subprocess.run(
                    ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    check=False,
                )
            else:
                os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as exc:
            self._logger.warning("Failed to kill process tree of pid %d: %s", proc.pid, exc)

        if proc.poll() is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass

    def _not_run(
        self,
        command: str,
        cwd: str,
        start: datetime,
        outcome: CommandOutcome,
        message: str,
    ) -> CommandResult:
        if outcome is CommandOutcome.CANCELLED:
            self._logger.debug("%s: %s", message, command)
        else:
            self._logger.error("%s (%s)", message, command)
        return CommandResult(command, -1, "", message, start, datetime.now(), cwd, outcome)


def _new_process_group_kwargs() -> dict:
    # A fresh group lets a timeout take down grandchildren too.
    if is_windows():
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _start_reader(stream: IO[str] | None, buffer: OutputBuffer, name: str) -> threading.Thread:
    def pump() -> None:
        if stream is None:
            return
        with stream:
            for line in stream:
                buffer.append(line)

    thread = threading.Thread(target=pump, name=f"runforge-{name}", daemon=True)
    thread.start()
    return thread


def _join(first: str, second: str) -> str:
    return f"{first}\n{second}" if first else second
