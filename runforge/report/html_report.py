from datetime import datetime
from html import escape

from runforge.executor.types import CommandResult, ProjectResult, RunResult

from .console import format_clock

STYLE = """
body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 20px; background: #f5f5f5; }
.container { max-width: 1200px; margin: 0 auto; background: white; border-radius: 8px; }
.header { background: #5a67d8; color: white; padding: 30px; border-radius: 8px 8px 0 0; }
.summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 20px; padding: 30px; }
.metric { background: #f8f9fa; padding: 20px; border-radius: 8px; text-align: center; }
.metric .value { font-size: 2em; font-weight: bold; }
.status { padding: 20px 30px; }
.status.success { background: #d4edda; color: #155724; }
.status.failure { background: #f8d7da; color: #721c24; }
.projects { padding: 30px; }
.project { border: 1px solid #eee; border-radius: 8px; margin-bottom: 20px; }
.project-header { padding: 15px 20px; background: #f8f9fa; display: flex; justify-content: space-between; }
.project-content { padding: 20px; }
.command { background: #f8f9fa; border-radius: 4px; padding: 10px; margin-bottom: 10px; font-family: monospace; }
.command.success { border-left: 4px solid #28a745; }
.command.failure { border-left: 4px solid #dc3545; }
.command-output { background: #1e1e1e; color: #d4d4d4; padding: 15px; white-space: pre-wrap; max-height: 300px; overflow-y: auto; }
.status-badge { padding: 4px 8px; border-radius: 4px; font-size: 0.8em; font-weight: bold; }
.status-badge.passed { background: #d4edda; }
.status-badge.failed, .status-badge.error, .status-badge.timeout { background: #f8d7da; }
.status-badge.skipped { background: #fff3cd; }
.footer { padding: 20px 30px; text-align: center; color: #666; }
"""


def render_html(run: RunResult, *, generated_at: datetime | None = None) -> str:
    summary = run.summary
    outcome = "success" if run.is_success else "failure"
    metrics = [
        (summary.total_projects, "Total Projects"),
        (summary.passed_projects, "Passed"),
        (summary.failed_projects, "Failed"),
        (summary.error_projects, "Errors"),
        (summary.skipped_projects, "Skipped"),
        (f"{summary.success_rate:.1f}%", "Success Rate"),
        (f"{summary.average_duration_s:.1f}s", "Avg Duration"),
    ]
    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")

    parts = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="UTF-8">',
        "<title>runforge report</title>",
        f"<style>{STYLE}</style>",
        "</head>",
        "<body>",
        '<div class="container">',
        f'<div class="header"><h1>runforge report</h1><div>Generated on {stamp}</div></div>',
        f'<div class="status {outcome}">',
        f"<h2>Overall Status: {outcome.upper()}</h2>",
        f"<p>Execution completed in {format_clock(run.total_duration_s)}</p>",
        "</div>",
        '<div class="summary">',
    ]
    for value, label in metrics:
        parts.append(
            f'<div class="metric"><div class="value">{value}</div><div class="label">{label}</div></div>'
        )
    parts.append("</div>")

    parts.append('<div class="projects"><h2>Project Results</h2>')
    for result in sorted(run.project_results, key=lambda r: r.name.casefold()):
        parts.extend(_project(result))
    parts.append("</div>")

    parts.extend(['<div class="footer">Report generated by runforge</div>', "</div>", "</body>", "</html>"])
    return "\n".join(parts) + "\n"


def _project(result: ProjectResult) -> list[str]:
    status = result.status.value
    parts = [
        '<div class="project">',
        '<div class="project-header">',
        f'<div><strong>{escape(result.name)}</strong> <span class="status-badge {status}">{status.upper()}</span></div>',
        f"<div>{result.duration_s:.1f}s</div>",
        "</div>",
        '<div class="project-content">',
        f"<p><strong>Path:</strong> {escape(result.path)}</p>",
        f"<p><strong>Type:</strong> {result.type.value}</p>",
    ]
    if result.tags:
        parts.append(f"<p><strong>Tags:</strong> {escape(', '.join(result.tags))}</p>")
    if result.error_message:
        parts.append(f'<div class="status failure"><strong>Error:</strong> {escape(result.error_message)}</div>')
    if result.command_results:
        parts.append("<h4>Commands:</h4>")
        for command in result.command_results:
            parts.extend(_command(command))
    parts.append("</div></div>")
    return parts


def _command(command: CommandResult) -> list[str]:
    css = "success" if command.is_success else "failure"
    parts = [
        f'<div class="command {css}">',
        f"<code>{escape(command.command)}</code> <small>Exit: {command.exit_code} | {command.duration_s:.1f}s</small>",
    ]
    if command.output or command.error:
        parts.append("<details><summary>Show Output</summary>")
        if command.output:
            parts.append(f'<div class="command-output">{escape(command.output)}</div>')
        if command.error:
            parts.append(f'<div class="command-output"><strong>STDERR:</strong>\n{escape(command.error)}</div>')
        parts.append("</details>")
    parts.append("</div>")
    return parts
