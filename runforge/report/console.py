from runforge.executor.types import ProjectResult, ProjectStatus, RunResult

RULE = "-" * 64

STATUS_LABELS = {
    ProjectStatus.PASSED: "PASS",
    ProjectStatus.FAILED: "FAIL",
    ProjectStatus.ERROR: "ERROR",
    ProjectStatus.SKIPPED: "SKIP",
    ProjectStatus.TIMEOUT: "TIMEOUT",
    ProjectStatus.RUNNING: "RUNNING",
    ProjectStatus.NOT_RUN: "NOT RUN",
}


def render_console(run: RunResult) -> str:
    summary = run.summary
    lines = [
        "",
        "TEST RESULTS",
        RULE,
        f"Execution time: {format_clock(run.total_duration_s)}",
        f"Total projects: {summary.total_projects}",
        f"Passed:         {summary.passed_projects}",
        f"Failed:         {summary.failed_projects}",
        f"Errors:         {summary.error_projects}",
        f"Skipped:        {summary.skipped_projects}",
        f"Success rate:   {summary.success_rate:.1f}%",
        "",
        f"Overall status: {'SUCCESS' if run.is_success else 'FAILURE'}",
        "",
    ]

    if run.project_results:
        lines.append("Project details:")
        lines.append(RULE)
        for result in sorted(run.project_results, key=lambda r: r.name.casefold()):
            lines.extend(_project_lines(result))
        lines.append("")

    return "\n".join(lines)


def _project_lines(result: ProjectResult) -> list[str]:
    label = STATUS_LABELS[result.status]
    lines = [f"{label:<8} {result.name:<30} {result.duration_s:.1f}s"]

    if result.status in (ProjectStatus.FAILED, ProjectStatus.ERROR, ProjectStatus.TIMEOUT):
        if result.error_message:
            lines.append(f"   Error: {result.error_message}")

        failed = [c for c in result.command_results if not c.is_success]
        if failed:
            lines.append("   Failed commands:")
            for command in failed:
                lines.append(f"   - {command.command} (exit code: {command.exit_code})")

    return lines


def format_clock(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"
