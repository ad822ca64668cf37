from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class ProjectType(Enum):
    AUTO = "auto"
    WEB_APP = "web_app"
    MOBILE_APP = "mobile_app"
    PYTHON_SCRIPT = "python_script"
    JAVASCRIPT_APP = "javascript_app"
    DOTNET_APP = "dotnet_app"
    JAVA_APP = "java_app"
    GO_APP = "go_app"
    RUST_APP = "rust_app"
    PHP_APP = "php_app"
    RUBY_APP = "ruby_app"
    DOCKER_APP = "docker_app"
    CUSTOM = "custom"


class OutputFormat(Enum):
    CONSOLE = "console"
    JSON = "json"
    XML = "xml"
    HTML = "html"


LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class ProjectSpec:
    name: str
    path: str
    type: ProjectType = ProjectType.AUTO
    commands: tuple[str, ...] = ()
    pre_commands: tuple[str, ...] = ()
    post_commands: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout_minutes: float = 10
    working_directory: str | None = None
    enabled: bool = True
    tags: tuple[str, ...] = ()
    retry_count: int = 0
    retry_delay_seconds: float = 5
    ignore_exit_codes: frozenset[int] = frozenset()
    expected_output_patterns: tuple[str, ...] = ()
    forbidden_output_patterns: tuple[str, ...] = ()
    description: str = ""
    priority: int = 0

    @property
    def effective_working_directory(self) -> str:
        return self.working_directory or self.path

    @property
    def timeout_s(self) -> float:
        return self.timeout_minutes * 60

    @property
    def total_commands(self) -> int:
        return len(self.pre_commands) + len(self.commands) + len(self.post_commands)

    def has_tag(self, tag: str) -> bool:
        wanted = tag.casefold()
        return any(t.casefold() == wanted for t in self.tags)


@dataclass(frozen=True)
class ExecutionPolicy:
    parallel: bool = False
    max_parallel: int = field(default_factory=lambda: os.cpu_count() or 1)
    stop_on_first_failure: bool = False
    # Enforced by the caller (the CLI cancels the run token), not by the engine.
    global_timeout_minutes: float | None = None


@dataclass(frozen=True)
class RunnerConfig:
    projects: tuple[ProjectSpec, ...]
    policy: ExecutionPolicy = field(default_factory=ExecutionPolicy)
    name: str = "runforge suite"
    description: str = ""
    log_level: str = "info"
    report_format: OutputFormat = OutputFormat.CONSOLE
    report_file: str | None = None

    def __iter__(self):
        yield from self.projects

    def __len__(self):
        return len(self.projects)

    def has_project(self, name: str) -> bool:
        return any(p.name.casefold() == name.casefold() for p in self.projects)

    def get_project(self, name: str) -> ProjectSpec:
        for project in self.projects:
            if project.name.casefold() == name.casefold():
                return project
        raise KeyError(name)

    def project_names(self) -> list[str]:
        return [p.name for p in self.projects]

    def enabled_count(self) -> int:
        return sum(1 for p in self.projects if p.enabled)

    def all_tags(self) -> list[str]:
        seen: dict[str, str] = {}
        for project in self.projects:
            for tag in project.tags:
                seen.setdefault(tag.casefold(), tag)
        return sorted(seen.values(), key=str.casefold)


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
