from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from runforge.config.types import ProjectType


class ProjectStatus(Enum):
    NOT_RUN = "not_run"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class CommandOutcome(Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    INVALID_WORKING_DIRECTORY = "invalid_working_directory"
    INVOCATION_FAILED = "invocation_failed"


@dataclass(frozen=True)
class CommandResult:
    command: str
    exit_code: int
    output: str
    error: str
    start_time: datetime
    end_time: datetime
    working_directory: str | None = None
    outcome: CommandOutcome = CommandOutcome.COMPLETED
    output_truncated: bool = False

    @property
    def duration_s(self) -> float:
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0

    @property
    def completed(self) -> bool:
        return self.outcome is CommandOutcome.COMPLETED


@dataclass(frozen=True)
class ProjectResult:
    name: str
    path: str
    type: ProjectType
    tags: tuple[str, ...]
    status: ProjectStatus
    start_time: datetime
    end_time: datetime
    command_results: tuple[CommandResult, ...] = ()
    error_message: str | None = None

    @property
    def duration_s(self) -> float:
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    @property
    def is_success(self) -> bool:
        return self.status is ProjectStatus.PASSED

    def all_output(self) -> str:
        return "\n".join(r.output for r in self.command_results)

    def all_errors(self) -> str:
        return "\n".join(r.error for r in self.command_results if r.error)


@dataclass(frozen=True)
class RunSummary:
    total_projects: int
    passed_projects: int
    failed_projects: int
    error_projects: int
    skipped_projects: int
    timeout_projects: int
    total_duration_s: float
    average_duration_s: float

    @classmethod
    def from_results(
        cls, results: Sequence[ProjectResult], total_duration_s: float
    ) -> RunSummary:
        counts = {status: 0 for status in ProjectStatus}
        for result in results:
            counts[result.status] += 1

        # NOT_RUN and RUNNING never survive a finished run; counted as errors
        # so the per-status counts always add up to the number of results.
        stray = counts[ProjectStatus.NOT_RUN] + counts[ProjectStatus.RUNNING]
        average = sum(r.duration_s for r in results) / len(results) if results else 0.0

        return cls(
            total_projects=len(results),
            passed_projects=counts[ProjectStatus.PASSED],
            failed_projects=counts[ProjectStatus.FAILED],
            error_projects=counts[ProjectStatus.ERROR] + stray,
            skipped_projects=counts[ProjectStatus.SKIPPED],
            timeout_projects=counts[ProjectStatus.TIMEOUT],
            total_duration_s=total_duration_s,
            average_duration_s=average,
        )

    @property
    def success_rate(self) -> float:
        if self.total_projects == 0:
            return 0.0
        return self.passed_projects / self.total_projects * 100

    @property
    def has_failures(self) -> bool:
        return (
            self.failed_projects > 0
            or self.error_projects > 0
            or self.timeout_projects > 0
        )


@dataclass(frozen=True)
class RunResult:
    start_time: datetime
    end_time: datetime
    project_results: tuple[ProjectResult, ...]
    summary: RunSummary

    @property
    def total_duration_s(self) -> float:
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    @property
    def is_success(self) -> bool:
        return all(r.is_success for r in self.project_results)
