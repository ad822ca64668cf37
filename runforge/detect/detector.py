from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path

from runforge.config.types import ProjectSpec, ProjectType

from .types import DetectionError

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset(
    {
        "node_modules",
        "bin",
        "obj",
        "dist",
        "build",
        "__pycache__",
        "coverage",
        "tmp",
        "temp",
        "venv",
        "target",
    }
)

_MOBILE_MARKERS = ("metro.config.js", "react-native.config.js", "app.json")
_PYTHON_MARKERS = ("pyproject.toml", "setup.py", "setup.cfg", "requirements.txt")
_GRADLE_MARKERS = ("build.gradle", "build.gradle.kts")


def detect_projects(root: str | Path, max_depth: int = 3) -> list[ProjectSpec]:
    root_path = Path(root).expanduser()
    if not root_path.is_dir():
        raise DetectionError(f"Directory not found: {root_path}")

    found: list[ProjectSpec] = []
    _walk(root_path.resolve(), 0, max_depth, found)
    return _unique_names(found)


def _walk(path: Path, depth: int, max_depth: int, found: list[ProjectSpec]) -> None:
    if depth > max_depth:
        return

    project = analyze_directory(path)
    if project is not None:
        # A recognised project is not searched for nested ones.
        found.append(project)
        return

    try:
        children = sorted(p for p in path.iterdir() if p.is_dir() and not _should_skip(p.name))
    except PermissionError:
        logger.debug("No access to %s, skipping", path)
        return

    for child in children:
        _walk(child, depth + 1, max_depth, found)


def analyze_directory(path: str | Path) -> ProjectSpec | None:
    directory = Path(path)
    if not directory.is_dir():
        return None

    names = {p.name.lower() for p in directory.iterdir() if p.is_file()}
    project_type = _detect_type(names)
    if project_type is ProjectType.AUTO:
        return None

    commands = _commands_for(project_type, directory, names)
    return ProjectSpec(
        name=directory.resolve().name,
        path=str(directory.resolve()),
        type=project_type,
        commands=tuple(commands),
        tags=(project_type.value,),
    )


def _detect_type(names: set[str]) -> ProjectType:
    if "package.json" in names:
        if any(marker in names for marker in _MOBILE_MARKERS):
            return ProjectType.MOBILE_APP
        return ProjectType.WEB_APP

    if any(marker in names for marker in _PYTHON_MARKERS) or _any_suffix(names, ".py"):
        return ProjectType.PYTHON_SCRIPT

    if _any_suffix(names, ".csproj", ".sln"):
        return ProjectType.DOTNET_APP

    if "go.mod" in names:
        return ProjectType.GO_APP

    if "cargo.toml" in names:
        return ProjectType.RUST_APP

    if "pom.xml" in names or any(marker in names for marker in _GRADLE_MARKERS):
        return ProjectType.JAVA_APP

    if "composer.json" in names:
        return ProjectType.PHP_APP

    if "gemfile" in names:
        return ProjectType.RUBY_APP

    if _any_suffix(names, ".js"):
        return ProjectType.JAVASCRIPT_APP

    return ProjectType.AUTO


def _commands_for(project_type: ProjectType, directory: Path, names: set[str]) -> list[str]:
    match project_type:
        case ProjectType.WEB_APP | ProjectType.MOBILE_APP:
            return _node_commands(project_type, directory, names)
        case ProjectType.PYTHON_SCRIPT:
            if _has_python_tests(directory, names):
                return ["python -m pytest"]
            return ["python -m compileall -q ."]
        case ProjectType.DOTNET_APP:
            if any("test" in n and n.endswith(".csproj") for n in names):
                return ["dotnet test"]
            return ["dotnet build"]
        case ProjectType.GO_APP:
            return ["go test ./..."]
        case ProjectType.RUST_APP:
            return ["cargo test"]
        case ProjectType.JAVA_APP:
            if "pom.xml" in names:
                return ["mvn test"]
            if "gradlew" in names:
                return ["./gradlew test"]
            return ["gradle test"]
        case ProjectType.PHP_APP:
            if "test" in _json_scripts(directory / "composer.json"):
                return ["composer test"]
            return ["composer validate"]
        case ProjectType.RUBY_APP:
            if "rakefile" in names:
                return ["bundle exec rake test"]
            return ["bundle exec rspec"]
        case ProjectType.JAVASCRIPT_APP:
            scripts = sorted(p.name for p in directory.iterdir() if p.suffix.lower() == ".js")
            return [f"node --check {name}" for name in scripts]
        case _:
            return []


def _node_commands(project_type: ProjectType, directory: Path, names: set[str]) -> list[str]:
    scripts = _json_scripts(directory / "package.json")
    commands = []

    if "test" in scripts:
        commands.append("npm test")
    if "lint" in scripts:
        commands.append("npm run lint")
    if project_type is ProjectType.WEB_APP and "build" in scripts:
        commands.append("npm run build")

    uses_typescript = _any_suffix(names, ".ts", ".tsx") or "tsconfig.json" in names
    if uses_typescript and (project_type is ProjectType.MOBILE_APP or "test" not in scripts):
        commands.append("npx tsc --noEmit")

    return commands


def _json_scripts(path: Path) -> Mapping[str, object]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read scripts from %s: %s", path, exc)
        return {}

    scripts = data.get("scripts") if isinstance(data, Mapping) else None
    return scripts if isinstance(scripts, Mapping) else {}


def _has_python_tests(directory: Path, names: set[str]) -> bool:
    if any(n.startswith("test_") and n.endswith(".py") or n.endswith("_test.py") for n in names):
        return True
    return (directory / "tests").is_dir() or (directory / "test").is_dir()


def _any_suffix(names: set[str], *suffixes: str) -> bool:
    return any(n.endswith(suffixes) for n in names)


def _should_skip(name: str) -> bool:
    return name.startswith(".") or name.lower() in SKIP_DIRS


def _unique_names(projects: list[ProjectSpec]) -> list[ProjectSpec]:
    seen: dict[str, int] = {}
    unique = []
    for project in projects:
        key = project.name.casefold()
        seen[key] = seen.get(key, 0) + 1
        if seen[key] > 1:
            project = replace(project, name=f"{project.name}-{seen[key]}")
        unique.append(project)
    return unique
