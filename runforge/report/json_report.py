import json
from datetime import datetime
from typing import Any

from runforge.executor.types import CommandResult, ProjectResult, RunResult


def render_json(run: RunResult, *, generated_at: datetime | None = None) -> str:
    return json.dumps(report_payload(run, generated_at=generated_at), indent=2)


def report_payload(run: RunResult, *, generated_at: datetime | None = None) -> dict[str, Any]:
    summary = run.summary
    return {
        "timestamp": (generated_at or datetime.now()).isoformat(),
        "executionInfo": {
            "startTime": run.start_time.isoformat(),
            "endTime": run.end_time.isoformat(),
            "duration": round(run.total_duration_s, 3),
            "isSuccess": run.is_success,
        },
        "summary": {
            "totalProjects": summary.total_projects,
            "passedProjects": summary.passed_projects,
            "failedProjects": summary.failed_projects,
            "errorProjects": summary.error_projects,
            "skippedProjects": summary.skipped_projects,
            "timeoutProjects": summary.timeout_projects,
            "successRate": round(summary.success_rate, 2),
            "averageDuration": round(summary.average_duration_s, 3),
        },
        "projects": [_project(p) for p in run.project_results],
    }


def _project(result: ProjectResult) -> dict[str, Any]:
    return {
        "name": result.name,
        "path": result.path,
        "type": result.type.value,
        "status": result.status.value,
        "duration": round(result.duration_s, 2),
        "startTime": result.start_time.isoformat(),
        "endTime": result.end_time.isoformat(),
        "tags": list(result.tags),
        "errorMessage": result.error_message,
        "commands": [_command(c) for c in result.command_results],
    }


def _command(result: CommandResult) -> dict[str, Any]:
    return {
        "command": result.command,
        "exitCode": result.exit_code,
        "outcome": result.outcome.value,
        "duration": round(result.duration_s, 2),
        "isSuccess": result.is_success,
        "output": result.output,
        "error": result.error,
        "outputTruncated": result.output_truncated,
    }
