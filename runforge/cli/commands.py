from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import replace
from pathlib import Path

from runforge.config import (
    ConfigError,
    ExecutionPolicy,
    OutputFormat,
    ProjectSpec,
    RunnerConfig,
    default_config,
    detected_config,
    load_config,
    save_config,
)
from runforge.detect import DetectionError, detect_projects
from runforge.executor import CancellationToken, EventDispatcher, ExecutionCoordinator, RunResult
from runforge.logs import configure_logging
from runforge.report import ReportError, render_console, render_report, write_report
from runforge.selection import SelectionError, select_projects

from .args import build_parser
from .progress import ProgressPrinter

GLOBAL_TIMEOUT_REASON = "global timeout"

logger = logging.getLogger(__name__)


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        configure_logging("debug" if args.verbose else "warning", args.log_file)

        match args.command:
            case "run":
                return cmd_run(args)
            case "list":
                return cmd_list(args)
            case "validate":
                return cmd_validate(args)
            case "detect":
                return cmd_detect(args)
            case "init":
                return cmd_init(args)
            case _:
                return 2

    except (ConfigError, SelectionError, DetectionError, ReportError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


def main() -> None:
    sys.exit(run_cli())


def cmd_run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if not args.verbose:
        configure_logging(config.log_level, args.log_file)

    policy = _policy_from(args, config.policy)
    fmt = OutputFormat(args.format) if args.format else config.report_format
    report_path = args.report or config.report_file

    if args.dry_run:
        return _print_plan(config, args)

    rr = _run_with(config, policy, args)

    if fmt is OutputFormat.CONSOLE or report_path:
        print(render_console(rr))
    else:
        print(render_report(rr, fmt))

    if report_path:
        written = write_report(rr, fmt, report_path)
        print(f"Report written to {written}")

    return 0 if rr.is_success else 1


def cmd_list(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    for project in sort_projects(config.projects, args.sort):
        print(project.name)
    return 0


def sort_projects(projects, order: str = "config") -> list[ProjectSpec]:
    """Order projects for display. Ties keep configuration order."""
    match order:
        case "name":
            return sorted(projects, key=lambda p: p.name.casefold())
        case "priority":
            return sorted(projects, key=lambda p: -p.priority)
        case _:
            return list(projects)


def cmd_validate(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    policy = config.policy

    print(f"Configuration is valid: {args.config}")
    print(f"  Name: {config.name}")
    print(f"  Projects: {len(config)} ({config.enabled_count()} enabled)")
    print(f"  Parallel: {policy.parallel} (max {policy.max_parallel})")
    print(f"  Stop on first failure: {policy.stop_on_first_failure}")

    issues = []
    for project in config:
        workdir = project.effective_working_directory
        if not os.path.isdir(workdir):
            issues.append(f"{project.name}: directory not found: {workdir}")
        if not project.commands:
            issues.append(f"{project.name}: no commands configured")

    if issues:
        print("Potential issues:")
        for issue in issues:
            print(f"  - {issue}")

    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    if args.depth < 0:
        raise DetectionError("--depth cannot be negative")

    projects = detect_projects(args.path, max_depth=args.depth)
    if not projects:
        print(f"No projects detected in {args.path}")
        return 0

    for project in projects:
        print(f"{project.name} ({project.type.value}): {project.path}")
        for command in project.commands:
            print(f"  {command}")

    if args.output:
        written = save_config(detected_config(projects), args.output)
        print(f"Saved {len(projects)} projects to {written}")

    return 0


def cmd_init(args: argparse.Namespace) -> int:
    target = Path(args.config)
    if target.exists() and not args.force:
        raise ConfigError(f"Config file already exists: {target} (use --force to overwrite)")

    if args.auto:
        projects = detect_projects(args.path)
        if not projects:
            raise DetectionError(f"No projects detected in {args.path}")
        config = detected_config(projects)
    else:
        config = default_config()

    written = save_config(config, target)
    print(f"Created {written} with {len(config)} projects")
    return 0


def _policy_from(args: argparse.Namespace, policy: ExecutionPolicy) -> ExecutionPolicy:
    overrides = {}
    if args.parallel is not None:
        overrides["parallel"] = args.parallel
    if args.max_parallel is not None:
        if args.max_parallel < 1:
            raise ConfigError("max_parallel must be greater than 0")
        overrides["max_parallel"] = args.max_parallel
    if args.stop_on_first_failure is not None:
        overrides["stop_on_first_failure"] = args.stop_on_first_failure
    return replace(policy, **overrides)


def _print_plan(config: RunnerConfig, args: argparse.Namespace) -> int:
    selected = select_projects(config.projects, args.projects, args.tags)
    print(f"Would run {len(selected)} of {len(config)} projects:")
    for project in selected:
        state = "" if project.enabled else " (disabled)"
        print(
            f"  {project.name}{state}: {project.effective_working_directory}"
            f" ({project.total_commands} commands, priority {project.priority})"
        )
        for command in (*project.pre_commands, *project.commands, *project.post_commands):
            print(f"    {command}")
    return 0


def _run_with(config: RunnerConfig, policy: ExecutionPolicy, args: argparse.Namespace) -> RunResult:
    token = CancellationToken()
    timer = None
    if policy.global_timeout_minutes is not None:
        timer = threading.Timer(
            policy.global_timeout_minutes * 60, token.cancel, kwargs={"reason": GLOBAL_TIMEOUT_REASON}
        )
        timer.daemon = True
        timer.start()

    try:
        with EventDispatcher([ProgressPrinter()], logger=logger) as events:
            coordinator = ExecutionCoordinator(events=events)
            rr = coordinator.run(config.projects, policy, args.projects, args.tags, token)
    except KeyboardInterrupt:
        token.cancel("interrupted")
        raise
    finally:
        if timer is not None:
            timer.cancel()

    if token.reason == GLOBAL_TIMEOUT_REASON:
        print(
            f"Global timeout of {policy.global_timeout_minutes:g} minutes reached",
            file=sys.stderr,
        )
    return rr
