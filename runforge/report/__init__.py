import logging
from pathlib import Path

from runforge.config.types import OutputFormat
from runforge.executor.types import RunResult

from .console import render_console
from .html_report import render_html
from .json_report import render_json
from .junit import render_junit
from .types import ReportError

logger = logging.getLogger(__name__)

__all__ = [
    "render_console",
    "render_html",
    "render_json",
    "render_junit",
    "render_report",
    "write_report",
    "ReportError",
]


def render_report(run: RunResult, fmt: OutputFormat) -> str:
    match fmt:
        case OutputFormat.CONSOLE:
            return render_console(run)
        case OutputFormat.JSON:
            return render_json(run)
        case OutputFormat.XML:
            return render_junit(run)
        case OutputFormat.HTML:
            return render_html(run)
        case _:
            raise ReportError(f"Unsupported report format: {fmt}")


def write_report(run: RunResult, fmt: OutputFormat, path: str | Path) -> Path:
    target = Path(path).expanduser()
    logger.info("Generating %s report to %s", fmt.value, target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(render_report(run, fmt), encoding="utf-8")
    except OSError as exc:
        raise ReportError(f"Could not write report to {target}: {exc}") from exc
    return target
