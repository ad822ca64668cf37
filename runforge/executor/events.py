from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from .types import CommandResult, ProjectResult, RunResult


class EventKind(Enum):
    PROJECT_STARTED = "project_started"
    COMMAND_STARTED = "command_started"
    COMMAND_COMPLETED = "command_completed"
    PROJECT_COMPLETED = "project_completed"
    RUN_COMPLETED = "run_completed"


@dataclass(frozen=True)
class ExecutionEvent:
    kind: EventKind
    timestamp: datetime = field(default_factory=datetime.now)
    project_name: str | None = None
    command: str | None = None
    command_result: CommandResult | None = None
    project_result: ProjectResult | None = None
    run_result: RunResult | None = None


class ExecutionObserver(Protocol):
    def on_event(self, event: ExecutionEvent) -> None: ...


class EventSink(Protocol):
    def publish(self, event: ExecutionEvent) -> None: ...


class NullEventSink:
    def publish(self, event: ExecutionEvent) -> None:
        return None


_STOP = object()


class EventDispatcher:
    """
    Delivers events to observers from a background thread.

    `publish` only enqueues, so a slow observer never holds up the thread
    that is racing a child process against its timeout.
    """

    def __init__(
        self,
        observers: Iterable[ExecutionObserver],
        *,
        logger: logging.Logger | None = None,
        drain_timeout_s: float = 5.0,
    ) -> None:
        self._observers = list(observers)
        self._logger = logger or logging.getLogger(__name__)
        self._drain_timeout_s = drain_timeout_s
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> EventDispatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        if not self._observers or self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._pump, name="runforge-events", daemon=True
        )
        self._thread.start()

    def publish(self, event: ExecutionEvent) -> None:
        if self._thread is None:
            return
        self._queue.put(event)

    def close(self) -> None:
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(self._drain_timeout_s)
        if self._thread.is_alive():
            self._logger.warning(
                "Event observers did not drain within %.1fs", self._drain_timeout_s
            )
        self._thread = None

    def _pump(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                return
            for observer in self._observers:
                try:
                    observer.on_event(event)
                except Exception:
                    # One faulty observer never stops delivery to the rest.
                    self._logger.warning(
                        "Observer %r failed on %s", observer, event.kind.value, exc_info=True
                    )
