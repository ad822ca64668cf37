# tests/test_cli.py
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

import pytest

from runforge.cli import run_cli
from runforge.config import load_config


def _py(code: str) -> str:
    exe = str(Path(sys.executable))
    # This returns a shell command string. JSON will escape it safely.
    return f'"{exe}" -c "{code}"'


def _write_json_config(path: Path, projects: dict, **settings: object) -> None:
    path.write_text(json.dumps({**settings, "projects": projects}), encoding="utf-8")


def _project(tmp_path: Path, *commands: str, **fields: object) -> dict:
    return {"path": str(tmp_path), "commands": list(commands), **fields}


def test_list_prints_one_project_per_line_in_config_order(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "b": _project(tmp_path, _py("raise SystemExit(0)")),
            "a": _project(tmp_path, _py("raise SystemExit(0)")),
        },
    )

    code = run_cli(["--config", str(cfg), "list"])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert out == ["b", "a"]


def test_run_all_executes_and_reports(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    log = tmp_path / "log.txt"

    _write_json_config(
        cfg,
        {
            "a": _project(tmp_path, _py(f"open(r'{log}','a').write('a')")),
            "b": _project(tmp_path, _py(f"open(r'{log}','a').write('b')")),
        },
    )

    code = run_cli(["--config", str(cfg), "run"])
    captured = capsys.readouterr()

    assert code == 0
    assert log.read_text(encoding="utf-8") == "ab"
    assert "START a" in captured.out
    assert "OK a" in captured.out
    assert "OK b" in captured.out
    assert "Overall status: SUCCESS" in captured.out


def test_run_failure_returns_1(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(cfg, {"fail": _project(tmp_path, _py("raise SystemExit(5)"))})

    code = run_cli(["--config", str(cfg), "run"])
    out = capsys.readouterr().out

    assert code == 1
    assert "FAIL fail" in out


def test_run_with_project_and_tag_filters(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "api": _project(tmp_path, _py("raise SystemExit(0)"), tags=["backend"]),
            "web": _project(tmp_path, _py("raise SystemExit(1)"), tags=["frontend"]),
        },
    )

    assert run_cli(["--config", str(cfg), "run", "--project", "API"]) == 0
    assert "web" not in capsys.readouterr().out
    assert run_cli(["--config", str(cfg), "run", "--tag", "frontend"]) == 1


def test_dry_run_runs_nothing(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    marker = tmp_path / "ran.txt"
    _write_json_config(cfg, {"a": _project(tmp_path, _py(f"open(r'{marker}','w')"))})

    code = run_cli(["--config", str(cfg), "run", "--dry-run"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Would run 1 of 1 projects" in out
    assert not marker.exists()


def test_run_writes_report_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    report = tmp_path / "reports" / "run.json"
    _write_json_config(cfg, {"a": _project(tmp_path, _py("print('hello')"))})

    code = run_cli(["--config", str(cfg), "run", "--format", "json", "--report", str(report)])
    _ = capsys.readouterr()

    assert code == 0
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["summary"]["passedProjects"] == 1
    assert data["projects"][0]["commands"][0]["output"] == "hello"


def test_parallel_flags_are_applied(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    projects = {f"p{i}": _project(tmp_path, _py("import time; time.sleep(1)")) for i in range(4)}
    _write_json_config(cfg, projects)

    started = time.monotonic()
    code = run_cli(["--config", str(cfg), "run", "--parallel", "--max-parallel", "4"])
    elapsed = time.monotonic() - started
    _ = capsys.readouterr()

    assert code == 0
    assert elapsed < 3.5


def test_invalid_max_parallel_returns_2(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(cfg, {"a": _project(tmp_path, _py("pass"))})

    code = run_cli(["--config", str(cfg), "run", "--max-parallel", "0"])

    assert code == 2
    assert "max_parallel" in capsys.readouterr().err


def test_global_timeout_cancels_the_run(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "slow": _project(tmp_path, _py("import time; time.sleep(30)")),
            "never": _project(tmp_path, _py("pass")),
        },
        global_timeout_minutes=0.01,
    )

    started = time.monotonic()
    code = run_cli(["--config", str(cfg), "run"])
    elapsed = time.monotonic() - started
    captured = capsys.readouterr()

    assert code == 1
    assert elapsed < 15
    assert "Global timeout" in captured.err
    assert "ERROR slow" in captured.out
    assert "START never" not in captured.out


def test_invalid_config_path_returns_2(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "missing.json"

    code = run_cli(["--config", str(missing), "list"])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err != ""


def test_invalid_config_content_returns_2(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    cfg.write_text(json.dumps({"projects": {"a": {"commands": ["x"]}}}), encoding="utf-8")

    code = run_cli(["--config", str(cfg), "run"])

    assert code == 2
    assert "missing 'path'" in capsys.readouterr().err


def test_validate_reports_potential_issues(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "ok": _project(tmp_path, _py("pass")),
            "gone": {"path": str(tmp_path / "gone"), "commands": ["make"]},
            "empty": {"path": str(tmp_path)},
        },
    )

    code = run_cli(["--config", str(cfg), "validate"])
    out = capsys.readouterr().out

    assert code == 0
    assert "Projects: 3 (3 enabled)" in out
    assert "gone: directory not found" in out
    assert "empty: no commands configured" in out


def test_detect_lists_and_saves_projects(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "svc").mkdir()
    (tmp_path / "svc" / "go.mod").write_text("module svc", encoding="utf-8")
    output = tmp_path / "detected.yml"

    code = run_cli(["detect", "--path", str(tmp_path), "--output", str(output)])
    out = capsys.readouterr().out

    assert code == 0
    assert "svc (go_app)" in out
    assert load_config(output).project_names() == ["svc"]


def test_init_writes_default_config_and_refuses_overwrite(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.yml"

    assert run_cli(["--config", str(cfg), "init"]) == 0
    assert len(load_config(cfg)) == 3

    assert run_cli(["--config", str(cfg), "init"]) == 2
    assert "already exists" in capsys.readouterr().err

    assert run_cli(["--config", str(cfg), "init", "--force"]) == 0


def test_init_auto_without_projects_returns_2(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.yml"
    empty = tmp_path / "empty"
    empty.mkdir()

    code = run_cli(["--config", str(cfg), "init", "--auto", "--path", str(empty)])

    assert code == 2
    assert not cfg.exists()


@pytest.mark.parametrize(
    "order, expected",
    [
        ("config", ["beta", "Alpha", "gamma"]),
        ("name", ["Alpha", "beta", "gamma"]),
        ("priority", ["gamma", "beta", "Alpha"]),
    ],
)
def test_list_sort_orders(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], order: str, expected: list[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "beta": _project(tmp_path, _py("pass"), priority=1),
            "Alpha": _project(tmp_path, _py("pass"), priority=1),
            "gamma": _project(tmp_path, _py("pass"), priority=7),
        },
    )

    code = run_cli(["--config", str(cfg), "list", "--sort", order])

    assert code == 0
    assert capsys.readouterr().out.splitlines() == expected


def test_dry_run_shows_command_count_and_priority(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    _write_json_config(
        cfg,
        {
            "api": _project(
                tmp_path, _py("pass"), _py("pass"), pre_commands=["make deps"], priority=3
            )
        },
    )

    code = run_cli(["--config", str(cfg), "run", "--dry-run"])
    out = capsys.readouterr().out

    assert code == 0
    assert "(3 commands, priority 3)" in out
    assert "    make deps" in out


def test_run_writes_html_report(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = tmp_path / "runforge.json"
    report = tmp_path / "run.html"
    _write_json_config(cfg, {"a<b": _project(tmp_path, _py("print('hi')"))})

    code = run_cli(["--config", str(cfg), "run", "--format", "html", "--report", str(report)])
    _ = capsys.readouterr()

    assert code == 0
    page = report.read_text(encoding="utf-8")
    assert page.startswith("<!DOCTYPE html>")
    assert "<strong>a&lt;b</strong>" in page
