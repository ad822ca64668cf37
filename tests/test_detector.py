# tests/test_detector.py
from __future__ import annotations

import json
from pathlib import Path

import pytest

from runforge.config import ProjectType
from runforge.detect import DetectionError, analyze_directory, detect_projects


def _make(root: Path, rel: str, files: dict[str, str]) -> Path:
    d = root / rel
    d.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (d / name).write_text(content, encoding="utf-8")
    return d


def _package_json(**scripts: str) -> str:
    return json.dumps({"name": "x", "scripts": scripts})


def test_web_app_uses_package_scripts(tmp_path: Path) -> None:
    d = _make(tmp_path, "web", {"package.json": _package_json(test="jest", build="vite build")})
    project = analyze_directory(d)

    assert project is not None
    assert project.type is ProjectType.WEB_APP
    assert project.commands == ("npm test", "npm run build")
    assert project.tags == ("web_app",)
    assert project.name == "web"


def test_mobile_app_is_detected_from_markers(tmp_path: Path) -> None:
    d = _make(
        tmp_path,
        "mobile",
        {"package.json": _package_json(test="jest"), "app.json": "{}", "tsconfig.json": "{}"},
    )
    project = analyze_directory(d)

    assert project.type is ProjectType.MOBILE_APP
    assert project.commands == ("npm test", "npx tsc --noEmit")


def test_python_project_with_tests(tmp_path: Path) -> None:
    d = _make(tmp_path, "svc", {"pyproject.toml": "", "test_app.py": ""})
    project = analyze_directory(d)

    assert project.type is ProjectType.PYTHON_SCRIPT
    assert project.commands == ("python -m pytest",)


@pytest.mark.parametrize(
    "files, expected_type, expected_command",
    [
        ({"go.mod": "module x"}, ProjectType.GO_APP, "go test ./..."),
        ({"Cargo.toml": ""}, ProjectType.RUST_APP, "cargo test"),
        ({"pom.xml": ""}, ProjectType.JAVA_APP, "mvn test"),
        ({"Gemfile": "", "Rakefile": ""}, ProjectType.RUBY_APP, "bundle exec rake test"),
        ({"App.Tests.csproj": ""}, ProjectType.DOTNET_APP, "dotnet test"),
    ],
)
def test_other_ecosystems(tmp_path: Path, files: dict, expected_type: ProjectType, expected_command: str) -> None:
    project = analyze_directory(_make(tmp_path, "proj", files))

    assert project.type is expected_type
    assert project.commands[0] == expected_command


def test_unknown_directory_is_not_a_project(tmp_path: Path) -> None:
    assert analyze_directory(_make(tmp_path, "notes", {"README.md": "hi"})) is None


def test_bad_package_json_still_detects(tmp_path: Path) -> None:
    project = analyze_directory(_make(tmp_path, "web", {"package.json": "{broken"}))

    assert project.type is ProjectType.WEB_APP
    assert project.commands == ()


def test_detect_walks_and_skips_vendored_dirs(tmp_path: Path) -> None:
    _make(tmp_path, "apps/web", {"package.json": _package_json(test="jest")})
    _make(tmp_path, "apps/web/node_modules/dep", {"package.json": _package_json(test="x")})
    _make(tmp_path, "services/api", {"go.mod": ""})
    _make(tmp_path, ".hidden/tool", {"go.mod": ""})
    _make(tmp_path, "node_modules/pkg", {"go.mod": ""})

    projects = detect_projects(tmp_path)

    assert sorted(p.name for p in projects) == ["api", "web"]


def test_detect_respects_depth(tmp_path: Path) -> None:
    _make(tmp_path, "a/b/c/deep", {"go.mod": ""})

    assert detect_projects(tmp_path, max_depth=2) == []
    assert [p.name for p in detect_projects(tmp_path, max_depth=4)] == ["deep"]


def test_detect_gives_unique_names(tmp_path: Path) -> None:
    _make(tmp_path, "one/api", {"go.mod": ""})
    _make(tmp_path, "two/api", {"Cargo.toml": ""})

    assert [p.name for p in detect_projects(tmp_path)] == ["api", "api-2"]


def test_detect_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(DetectionError):
        detect_projects(tmp_path / "missing")
