from __future__ import annotations

from typing import TextIO

from runforge.executor import EventKind, ExecutionEvent, ProjectStatus

LABELS = {
    ProjectStatus.PASSED: "OK",
    ProjectStatus.FAILED: "FAIL",
    ProjectStatus.ERROR: "ERROR",
    ProjectStatus.SKIPPED: "SKIP",
    ProjectStatus.TIMEOUT: "FAIL",
}


class ProgressPrinter:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def on_event(self, event: ExecutionEvent) -> None:
        match event.kind:
            case EventKind.PROJECT_STARTED:
                self._print(f"START {event.project_name}")
            case EventKind.PROJECT_COMPLETED if event.project_result is not None:
                result = event.project_result
                label = LABELS.get(result.status, "ERROR")
                line = f"{label} {result.name}, {result.duration_s:.3f}s"
                if result.error_message and not result.is_success:
                    line += f", {result.error_message}"
                self._print(line)
            case _:
                pass

    def _print(self, line: str) -> None:
        print(line, file=self._stream, flush=True)
