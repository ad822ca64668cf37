import json
from pathlib import Path
from typing import Any

import yaml

from .loader import detect_format
from .types import (
    ExecutionPolicy,
    OutputFormat,
    ProjectSpec,
    ProjectType,
    RunnerConfig,
    UnsupportedConfigFormatError,
)


def save_config(config: RunnerConfig, path: str | Path) -> Path:
    target = Path(path).expanduser()
    fmt = detect_format(target)
    raw = config_to_mapping(config)

    match fmt:
        case "yaml":
            text = yaml.safe_dump(raw, sort_keys=False, allow_unicode=True)
        case "json":
            text = json.dumps(raw, indent=2) + "\n"
        case _:
            raise UnsupportedConfigFormatError(f"Writing {fmt} configuration files is not supported")

    target.write_text(text, encoding="utf-8")
    return target


def config_to_mapping(config: RunnerConfig) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "name": config.name,
        "description": config.description,
        "parallel": config.policy.parallel,
        "max_parallel": config.policy.max_parallel,
        "stop_on_first_failure": config.policy.stop_on_first_failure,
    }
    if config.policy.global_timeout_minutes is not None:
        raw["global_timeout_minutes"] = config.policy.global_timeout_minutes
    raw["log_level"] = config.log_level
    raw["report_format"] = config.report_format.value
    if config.report_file is not None:
        raw["report_file"] = config.report_file
    raw["projects"] = {p.name: _project_to_mapping(p) for p in config.projects}
    return raw


def _project_to_mapping(project: ProjectSpec) -> dict[str, Any]:
    # Optional fields are written only when set.
    raw: dict[str, Any] = {"path": project.path, "type": project.type.value}
    raw["commands"] = list(project.commands)
    if project.pre_commands:
        raw["pre_commands"] = list(project.pre_commands)
    if project.post_commands:
        raw["post_commands"] = list(project.post_commands)
    if project.environment:
        raw["environment"] = dict(project.environment)
    raw["timeout_minutes"] = project.timeout_minutes
    if project.working_directory:
        raw["working_directory"] = project.working_directory
    if not project.enabled:
        raw["enabled"] = False
    if project.tags:
        raw["tags"] = list(project.tags)
    if project.retry_count:
        raw["retry_count"] = project.retry_count
        raw["retry_delay_seconds"] = project.retry_delay_seconds
    if project.ignore_exit_codes:
        raw["ignore_exit_codes"] = sorted(project.ignore_exit_codes)
    if project.expected_output_patterns:
        raw["expected_output_patterns"] = list(project.expected_output_patterns)
    if project.forbidden_output_patterns:
        raw["forbidden_output_patterns"] = list(project.forbidden_output_patterns)
    if project.description:
        raw["description"] = project.description
    if project.priority:
        raw["priority"] = project.priority
    return raw


def default_config() -> RunnerConfig:
    projects = (
        ProjectSpec(
            name="example-web-app",
            path="./web-app",
            type=ProjectType.WEB_APP,
            commands=("npm test", "npm run build"),
            tags=("frontend", "web"),
            timeout_minutes=10,
        ),
        ProjectSpec(
            name="example-mobile-app",
            path="./mobile-app",
            type=ProjectType.MOBILE_APP,
            commands=("npm test",),
            tags=("mobile", "react-native"),
            timeout_minutes=15,
        ),
        ProjectSpec(
            name="example-python-script",
            path="./python-scripts",
            type=ProjectType.PYTHON_SCRIPT,
            commands=("python -m pytest",),
            tags=("backend", "python"),
            timeout_minutes=5,
        ),
    )
    return RunnerConfig(
        projects=projects,
        policy=ExecutionPolicy(global_timeout_minutes=60),
        report_format=OutputFormat.CONSOLE,
    )


def detected_config(projects: list[ProjectSpec]) -> RunnerConfig:
    policy = ExecutionPolicy(
        parallel=len(projects) > 1,
        max_parallel=max(1, min(ExecutionPolicy().max_parallel, len(projects))),
        global_timeout_minutes=60,
    )
    return RunnerConfig(projects=tuple(projects), policy=policy)
