from .cancel import CancellationToken
from .coordinator import ExecutionCoordinator
from .events import (
    EventDispatcher,
    EventKind,
    ExecutionEvent,
    ExecutionObserver,
    NullEventSink,
)
from .invoker import CommandInvoker, build_argv, needs_shell, quote_posix
from .runner import ProjectRunner
from .types import (
    CommandOutcome,
    CommandResult,
    ProjectResult,
    ProjectStatus,
    RunResult,
    RunSummary,
)

__all__ = [
    "CancellationToken",
    "CommandInvoker",
    "ProjectRunner",
    "ExecutionCoordinator",
    "EventDispatcher",
    "EventKind",
    "ExecutionEvent",
    "ExecutionObserver",
    "NullEventSink",
    "CommandOutcome",
    "CommandResult",
    "ProjectResult",
    "ProjectStatus",
    "RunResult",
    "RunSummary",
    "build_argv",
    "needs_shell",
    "quote_posix",
]
