from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Protocol

from runforge.config.types import ExecutionPolicy, ProjectSpec
from runforge.selection import select_projects

from .cancel import CancellationToken
from .events import EventKind, EventSink, ExecutionEvent, NullEventSink
from .runner import ProjectRunner
from .types import ProjectResult, ProjectStatus, RunResult, RunSummary

_GATE_POLL_S = 0.1


class Runner(Protocol):
    def run(
        self, project: ProjectSpec, cancellation: CancellationToken | None = None
    ) -> ProjectResult: ...


class ExecutionCoordinator:
    """
    Runs a set of projects sequentially or with bounded parallelism.

    The parallel path admits a project only after taking a permit from a
    counting gate of `max_parallel` permits; the permit is handed back when
    the project's task exits, however it exits. Once a failure has been seen
    with `stop_on_first_failure`, no further project is admitted, while
    projects already running are left to finish.
    """

    def __init__(
        self,
        runner: Runner | None = None,
        *,
        logger: logging.Logger | None = None,
        events: EventSink | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._events = events or NullEventSink()
        self._runner = runner or ProjectRunner(logger=self._logger, events=self._events)

    def run(
        self,
        projects: Sequence[ProjectSpec],
        policy: ExecutionPolicy | None = None,
        name_filter: Iterable[str] | None = None,
        tag_filter: Iterable[str] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> RunResult:
        policy = policy or ExecutionPolicy()
        if policy.max_parallel < 1:
            raise ValueError(f"max_parallel must be >= 1, got {policy.max_parallel}")

        cancellation = cancellation or CancellationToken()
        start = datetime.now()
        results: list[ProjectResult] = []

        self._logger.info("Starting execution for %d projects", len(projects))
        selected = select_projects(projects, name_filter, tag_filter)

        if not selected:
            self._logger.warning("No projects matched the filter criteria")
            return self._finish(start, results)

        self._logger.info("Executing %d projects after filtering", len(selected))

        try:
            if policy.parallel:
                self._run_parallel(selected, policy, cancellation, results)
            else:
                self._run_sequential(selected, policy, cancellation, results)
        except Exception:
            self._logger.exception("Error during execution, keeping %d partial results", len(results))

        return self._finish(start, results)

    def _run_sequential(
        self,
        projects: Sequence[ProjectSpec],
        policy: ExecutionPolicy,
        cancellation: CancellationToken,
        results: list[ProjectResult],
    ) -> None:
        for project in projects:
            if cancellation.cancelled:
                self._logger.warning("Execution cancelled before project %s", project.name)
                break

            result = self._run_project(project, cancellation)
            results.append(result)

            if policy.stop_on_first_failure and not result.is_success:
                self._logger.warning(
                    "Stopping execution due to failure in project %s", project.name
                )
                break

    def _run_parallel(
        self,
        projects: Sequence[ProjectSpec],
        policy: ExecutionPolicy,
        cancellation: CancellationToken,
        results: list[ProjectResult],
    ) -> None:
        gate = threading.BoundedSemaphore(policy.max_parallel)
        stop = threading.Event()
        lock = threading.Lock()
        futures: list[Future] = []

        def work(project: ProjectSpec) -> None:
            try:
                result = self._run_project(project, cancellation)
                with lock:
                    results.append(result)
                if policy.stop_on_first_failure and not result.is_success:
                    stop.set()
            finally:
                gate.release()

        workers = min(policy.max_parallel, len(projects))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="runforge-project") as pool:
            try:
                for project in projects:
                    if not self._admit(gate, cancellation):
                        self._logger.warning("Execution cancelled before project %s", project.name)
                        break

                    if stop.is_set() or cancellation.cancelled:
                        gate.release()
                        if stop.is_set():
                            self._logger.warning(
                                "Not starting %s: a previous project failed", project.name
                            )
                        break

                    try:
                        futures.append(pool.submit(work, project))
                    except RuntimeError:
                        gate.release()
                        raise

                wait(futures)
            except KeyboardInterrupt:
                cancellation.cancel("interrupted")
                raise

        for future in futures:
            exc = future.exception()
            if exc is not None:
                self._logger.error("Project task failed unexpectedly: %s", exc)

    def _admit(self, gate: threading.BoundedSemaphore, cancellation: CancellationToken) -> bool:
        while not gate.acquire(timeout=_GATE_POLL_S):
            if cancellation.cancelled:
                return False
        return True

    def _run_project(self, project: ProjectSpec, cancellation: CancellationToken) -> ProjectResult:
        start = datetime.now()
        try:
            return self._runner.run(project, cancellation)
        except Exception as exc:
            self._logger.exception("Unhandled error while running project %s", project.name)
            return ProjectResult(
                name=project.name,
                path=project.path,
                type=project.type,
                tags=tuple(project.tags),
                status=ProjectStatus.ERROR,
                start_time=start,
                end_time=datetime.now(),
                error_message=str(exc) or type(exc).__name__,
            )

    def _finish(self, start: datetime, results: list[ProjectResult]) -> RunResult:
        end = datetime.now()
        run = RunResult(
            start_time=start,
            end_time=end,
            project_results=tuple(results),
            summary=RunSummary.from_results(results, (end - start).total_seconds()),
        )
        self._logger.info(
            "Execution completed. Success: %s, Duration: %.2fs",
            run.is_success, run.total_duration_s,
        )
        self._events.publish(ExecutionEvent(EventKind.RUN_COMPLETED, run_result=run))
        return run
