from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import Protocol

from runforge.config.types import ProjectSpec

from .cancel import CancellationToken
from .events import EventKind, EventSink, ExecutionEvent, NullEventSink
from .invoker import CommandInvoker
from .types import CommandOutcome, CommandResult, ProjectResult, ProjectStatus

CANCELLED_MESSAGE = "cancelled"


class Invoker(Protocol):
    def invoke(
        self,
        command: str,
        working_directory: str,
        environment: dict[str, str],
        timeout_s: float,
        cancellation: CancellationToken | None = None,
    ) -> CommandResult: ...


class _Cancelled(Exception):
    pass


class ProjectRunner:
    def __init__(
        self,
        invoker: Invoker | None = None,
        *,
        logger: logging.Logger | None = None,
        events: EventSink | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._invoker = invoker or CommandInvoker(logger=self._logger)
        self._events = events or NullEventSink()

    def run(
        self, project: ProjectSpec, cancellation: CancellationToken | None = None
    ) -> ProjectResult:
        cancellation = cancellation or CancellationToken()
        start = datetime.now()
        results: list[CommandResult] = []

        def finish(status: ProjectStatus, error_message: str | None = None) -> ProjectResult:
            result = ProjectResult(
                name=project.name,
                path=project.path,
                type=project.type,
                tags=tuple(project.tags),
                status=status,
                start_time=start,
                end_time=datetime.now(),
                command_results=tuple(results),
                error_message=error_message,
            )
            self._logger.info(
                "Project %s completed with status %s in %.2fs",
                project.name, status.value, result.duration_s,
            )
            self._events.publish(
                ExecutionEvent(
                    EventKind.PROJECT_COMPLETED, project_name=project.name, project_result=result
                )
            )
            return result

        self._logger.info("Starting project: %s", project.name)
        self._events.publish(ExecutionEvent(EventKind.PROJECT_STARTED, project_name=project.name))

        try:
            if not project.enabled:
                self._logger.info("Project %s is disabled, skipping", project.name)
                return finish(ProjectStatus.SKIPPED)

            if not project.commands:
                self._logger.warning("No commands configured for project %s", project.name)
                return finish(ProjectStatus.SKIPPED, "No commands configured")

            workdir = project.effective_working_directory
            if not os.path.isdir(workdir):
                self._logger.error("Project directory not found: %s", workdir)
                return finish(ProjectStatus.ERROR, f"Project directory not found: {workdir}")

            if cancellation.cancelled:
                return finish(ProjectStatus.ERROR, CANCELLED_MESSAGE)

            checks = _OutputChecks(project)

            for command in project.pre_commands:
                result = self._invoke(project, command, cancellation)
                results.append(result)
                _raise_if_cancelled(result, cancellation)
                if not result.is_success:
                    self._logger.warning(
                        "Pre-command failed for %s: %s (exit code %d)",
                        project.name, command, result.exit_code,
                    )
                    return finish(ProjectStatus.FAILED, f"Pre-command failed: {command}")

            all_passed = True
            for command in project.commands:
                result = self._invoke_with_retry(project, command, checks, cancellation)
                results.append(result)
                _raise_if_cancelled(result, cancellation)
                if not _passes(project, checks, result):
                    all_passed = False
                    self._logger.warning(
                        "Command failed for %s: %s (exit code %d)",
                        project.name, command, result.exit_code,
                    )

            for command in project.post_commands:
                result = self._invoke(project, command, cancellation)
                results.append(result)
                _raise_if_cancelled(result, cancellation)

            return finish(ProjectStatus.PASSED if all_passed else ProjectStatus.FAILED)

        except _Cancelled:
            self._logger.warning("Project %s was cancelled", project.name)
            return finish(ProjectStatus.ERROR, CANCELLED_MESSAGE)
        except Exception as exc:
            self._logger.exception("Error executing project %s", project.name)
            return finish(ProjectStatus.ERROR, str(exc) or type(exc).__name__)

    def _invoke(
        self, project: ProjectSpec, command: str, cancellation: CancellationToken
    ) -> CommandResult:
        if cancellation.cancelled:
            raise _Cancelled()

        self._events.publish(
            ExecutionEvent(EventKind.COMMAND_STARTED, project_name=project.name, command=command)
        )
        result = self._invoker.invoke(
            command,
            project.effective_working_directory,
            dict(project.environment),
            project.timeout_s,
            cancellation,
        )
        self._events.publish(
            ExecutionEvent(
                EventKind.COMMAND_COMPLETED,
                project_name=project.name,
                command=command,
                command_result=result,
            )
        )

        return result

    def _invoke_with_retry(
        self,
        project: ProjectSpec,
        command: str,
        checks: _OutputChecks,
        cancellation: CancellationToken,
    ) -> CommandResult:
        attempts = project.retry_count + 1
        result = self._invoke(project, command, cancellation)

        for attempt in range(2, attempts + 1):
            if _passes(project, checks, result) or result.outcome is CommandOutcome.CANCELLED:
                break
            self._logger.info(
                "Attempt %d/%d of %r failed for %s (exit code %d), retrying in %gs",
                attempt - 1, attempts, command, project.name, result.exit_code,
                project.retry_delay_seconds,
            )
            if cancellation.wait(project.retry_delay_seconds):
                break
            result = self._invoke(project, command, cancellation)

        return result


class _OutputChecks:
    def __init__(self, project: ProjectSpec) -> None:
        self.expected = [re.compile(p, re.MULTILINE) for p in project.expected_output_patterns]
        self.forbidden = [re.compile(p, re.MULTILINE) for p in project.forbidden_output_patterns]

    def accept(self, result: CommandResult) -> bool:
        if not self.expected and not self.forbidden:
            return True

        text = "\n".join(part for part in (result.output, result.error) if part)
        if self.expected and not any(p.search(text) for p in self.expected):
            return False
        return not any(p.search(text) for p in self.forbidden)


def _passes(project: ProjectSpec, checks: _OutputChecks, result: CommandResult) -> bool:
    if not result.completed:
        return False

    exit_ok = result.is_success or result.exit_code in project.ignore_exit_codes
    return exit_ok and checks.accept(result)


def _raise_if_cancelled(result: CommandResult, cancellation: CancellationToken) -> None:
    if result.outcome is CommandOutcome.CANCELLED or cancellation.cancelled:
        raise _Cancelled()
