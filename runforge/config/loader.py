import json
import os
import re
import tomllib
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .types import (
    LOG_LEVELS,
    ConfigError,
    ExecutionPolicy,
    OutputFormat,
    ProjectSpec,
    ProjectType,
    RunnerConfig,
    UnsupportedConfigFormatError,
)

_TOP_LEVEL_KEYS = {
    "name",
    "description",
    "parallel",
    "max_parallel",
    "stop_on_first_failure",
    "global_timeout_minutes",
    "global_environment",
    "global_tags",
    "base_directory",
    "log_level",
    "report_format",
    "report_file",
    "projects",
}

_PROJECT_KEYS = {
    "path",
    "type",
    "commands",
    "pre_commands",
    "post_commands",
    "environment",
    "timeout_minutes",
    "working_directory",
    "enabled",
    "tags",
    "retry_count",
    "retry_delay_seconds",
    "ignore_exit_codes",
    "expected_output_patterns",
    "forbidden_output_patterns",
    "description",
    "priority",
}


_SUFFIX_FORMATS = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".json": "json",
}

# format -> (decoder, error raised by the decoder)
_DECODERS = {
    "yaml": (yaml.safe_load, yaml.YAMLError),
    "toml": (tomllib.loads, tomllib.TOMLDecodeError),
    "json": (json.loads, json.JSONDecodeError),
}


def load_config(path: str | Path) -> RunnerConfig:
    """Read a YAML, TOML or JSON file and build a validated RunnerConfig."""
    config_path = Path(path).expanduser().resolve()

    if not config_path.is_file():
        reason = "is not a file" if config_path.exists() else "does not exist"
        raise ConfigError(f"Config file {config_path} {reason}")

    raw = _read_document(config_path, detect_format(config_path))
    return build_runner_config(raw, config_dir=config_path.parent)


def detect_format(path: Path) -> str:
    fmt = _SUFFIX_FORMATS.get(path.suffix.lower())
    if fmt is None:
        expected = ", ".join(sorted(_SUFFIX_FORMATS))
        raise UnsupportedConfigFormatError(
            f"Unsupported config file extension '{path.suffix}' (expected one of: {expected})"
        )
    return fmt


def _read_document(path: Path, fmt: str) -> Mapping[str, Any]:
    decode, decode_error = _DECODERS[fmt]

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    try:
        document = decode(text)
    except decode_error as exc:
        raise ConfigError(f"{path} is not valid {fmt.upper()}: {exc}") from exc

    if not isinstance(document, Mapping):
        found = "an empty document" if document is None else type(document).__name__
        raise ConfigError(f"{path} must contain a mapping at the top level, found {found}")

    return document


def build_runner_config(
    raw: Mapping[str, Any], *, config_dir: Path | None = None
) -> RunnerConfig:
    for key in raw.keys():
        if key not in _TOP_LEVEL_KEYS:
            raise ConfigError(f"Can't process top-level field: {key}")

    if "projects" not in raw:
        raise ConfigError("Missing 'projects' field")

    if not isinstance(raw["projects"], Mapping):
        raise ConfigError(f"'projects' must be a mapping, got {type(raw['projects'])}")

    if len(raw["projects"]) < 1:
        raise ConfigError("There must be at least one project in the config file")

    root = config_dir or Path.cwd()
    base_directory = root
    if raw.get("base_directory") is not None:
        base_directory = _resolve(root, _string("config", "base_directory", raw["base_directory"]))

    global_env = _string_map("config", "global_environment", raw.get("global_environment", {}))
    global_tags = _string_list("config", "global_tags", raw.get("global_tags", []))

    projects: list[ProjectSpec] = []
    seen: set[str] = set()

    for name, fields in raw["projects"].items():
        if not isinstance(name, str):
            raise ConfigError(f"Project name must be a string, got {type(name)}")

        name_norm = name.strip()

        if len(name_norm) < 1:
            raise ConfigError("A project name can't be empty")

        if name_norm.casefold() in seen:
            raise ConfigError(f"Duplicate project name after normalization: {name_norm}")

        if not isinstance(fields, Mapping):
            raise ConfigError(f"{name_norm} must be a mapping")

        spec = _build_project_spec(name_norm, fields, base_directory, global_env, global_tags)
        projects.append(spec)
        seen.add(name_norm.casefold())

    return RunnerConfig(
        projects=tuple(projects),
        policy=_build_policy(raw),
        name=_string("config", "name", raw.get("name", "runforge suite")),
        description=_string("config", "description", raw.get("description", ""), allow_empty=True),
        log_level=_choice("config", "log_level", raw.get("log_level", "info"), LOG_LEVELS),
        report_format=OutputFormat(
            _choice(
                "config",
                "report_format",
                raw.get("report_format", "console"),
                [f.value for f in OutputFormat],
            )
        ),
        report_file=_optional_string("config", "report_file", raw.get("report_file")),
    )


def _build_policy(raw: Mapping[str, Any]) -> ExecutionPolicy:
    max_parallel = raw.get("max_parallel", os.cpu_count() or 1)
    if isinstance(max_parallel, bool) or not isinstance(max_parallel, int):
        raise ConfigError("max_parallel should be an integer")
    if max_parallel < 1:
        raise ConfigError("max_parallel must be greater than 0")

    global_timeout = raw.get("global_timeout_minutes")
    if global_timeout is not None:
        global_timeout = _positive_number("config", "global_timeout_minutes", global_timeout)

    return ExecutionPolicy(
        parallel=_bool("config", "parallel", raw.get("parallel", False)),
        max_parallel=max_parallel,
        stop_on_first_failure=_bool(
            "config", "stop_on_first_failure", raw.get("stop_on_first_failure", False)
        ),
        global_timeout_minutes=global_timeout,
    )


def _build_project_spec(
    name: str,
    fields: Mapping[str, Any],
    base_directory: Path,
    global_env: Mapping[str, str],
    global_tags: list[str],
) -> ProjectSpec:
    for field in fields.keys():
        if field not in _PROJECT_KEYS:
            raise ConfigError(f"{name}: Can't process: {field}")

    if "path" not in fields:
        raise ConfigError(f"{name}: missing 'path'")

    path = _resolve(base_directory, _string(name, "path", fields["path"]))

    working_directory = None
    if fields.get("working_directory") is not None:
        working_directory = str(
            _resolve(base_directory, _string(name, "working_directory", fields["working_directory"]))
        )

    project_type = ProjectType(
        _choice(name, "type", fields.get("type", "auto"), [t.value for t in ProjectType])
    )

    environment = dict(global_env)
    environment.update(_string_map(name, "environment", fields.get("environment", {})))

    tags = _string_list(name, "tags", fields.get("tags", []))
    for tag in global_tags:
        if tag.casefold() not in {t.casefold() for t in tags}:
            tags.append(tag)

    retry_count = fields.get("retry_count", 0)
    if isinstance(retry_count, bool) or not isinstance(retry_count, int):
        raise ConfigError(f"{name}: retry_count should be an integer")
    if retry_count < 0:
        raise ConfigError(f"{name}: Retry count cannot be negative")

    retry_delay = fields.get("retry_delay_seconds", 5)
    if isinstance(retry_delay, bool) or not isinstance(retry_delay, (int, float)):
        raise ConfigError(f"{name}: retry_delay_seconds should be a number")
    if retry_delay < 0:
        raise ConfigError(f"{name}: Retry delay cannot be negative")

    ignore_exit_codes = fields.get("ignore_exit_codes", [])
    if not isinstance(ignore_exit_codes, list):
        raise ConfigError(f"{name}: ignore_exit_codes should be a list")
    for code in ignore_exit_codes:
        if isinstance(code, bool) or not isinstance(code, int):
            raise ConfigError(f"{name}: {code!r} should be an integer in ignore_exit_codes")

    priority = fields.get("priority", 0)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ConfigError(f"{name}: priority should be an integer")

    return ProjectSpec(
        name=name,
        path=str(path),
        type=project_type,
        commands=tuple(_string_list(name, "commands", fields.get("commands", []))),
        pre_commands=tuple(_string_list(name, "pre_commands", fields.get("pre_commands", []))),
        post_commands=tuple(_string_list(name, "post_commands", fields.get("post_commands", []))),
        environment=MappingProxyType(environment),
        timeout_minutes=_positive_number(name, "timeout_minutes", fields.get("timeout_minutes", 10)),
        working_directory=working_directory,
        enabled=_bool(name, "enabled", fields.get("enabled", True)),
        tags=tuple(tags),
        retry_count=retry_count,
        retry_delay_seconds=retry_delay,
        ignore_exit_codes=frozenset(ignore_exit_codes),
        expected_output_patterns=tuple(
            _pattern_list(name, "expected_output_patterns", fields.get("expected_output_patterns", []))
        ),
        forbidden_output_patterns=tuple(
            _pattern_list(name, "forbidden_output_patterns", fields.get("forbidden_output_patterns", []))
        ),
        description=_string(name, "description", fields.get("description", ""), allow_empty=True),
        priority=priority,
    )


def _resolve(base: Path, value: str) -> Path:
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()


def _string(owner: str, key: str, value: Any, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{owner}: {key} should be a string")

    if not allow_empty and len(value.strip()) < 1:
        raise ConfigError(f"{owner}: Please provide a non-empty {key} or remove this field")

    return value.strip()


def _optional_string(owner: str, key: str, value: Any) -> str | None:
    if value is None:
        return None
    return _string(owner, key, value)


def _bool(owner: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{owner}: {key} should be true or false")
    return value


def _positive_number(owner: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{owner}: {key} should be a number")

    if value <= 0:
        raise ConfigError(f"{owner}: {key} must be greater than 0")

    return value


def _choice(owner: str, key: str, value: Any, allowed) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{owner}: {key} should be a string")

    norm = value.strip().lower()
    if norm not in allowed:
        raise ConfigError(f"{owner}: unknown {key} '{value}', expected one of: {', '.join(allowed)}")

    return norm


def _string_list(owner: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ConfigError(f"{owner}: {key} should be in a list.")

    items = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{owner}: {item} should be a string in {key}")

        if len(item.strip()) < 1:
            raise ConfigError(f"{owner}: An entry of {key} is empty")

        items.append(item.strip())

    return items


def _pattern_list(owner: str, key: str, value: Any) -> list[str]:
    patterns = _string_list(owner, key, value)
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"{owner}: invalid regular expression in {key}: {pattern}") from exc
    return patterns


def _string_map(owner: str, key: str, value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{owner}: {key} should be a mapping")

    env = {}
    for env_key, item in value.items():
        if not isinstance(env_key, str):
            raise ConfigError(f"{owner}: {env_key} should be a string")

        if len(env_key.strip()) < 1:
            raise ConfigError(f"{owner}: A key can't be empty")

        if not isinstance(item, str):
            raise ConfigError(f"{owner}: {item} should be a string")

        env[env_key.strip()] = item

    return env
