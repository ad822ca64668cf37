# tests/test_filter.py
from __future__ import annotations

import pytest

from runforge.config import ProjectSpec
from runforge.selection import FilterError, select_projects


def _projects() -> list[ProjectSpec]:
    return [
        ProjectSpec(name="A", path=".", tags=("x",)),
        ProjectSpec(name="B", path=".", tags=("y",)),
        ProjectSpec(name="C", path=".", tags=("X", "z")),
    ]


def _names(projects: list[ProjectSpec]) -> list[str]:
    return [p.name for p in projects]


def test_no_filters_selects_everything_in_order() -> None:
    assert _names(select_projects(_projects())) == ["A", "B", "C"]
    assert _names(select_projects(_projects(), [], [])) == ["A", "B", "C"]


def test_name_filter_is_case_insensitive() -> None:
    assert _names(select_projects(_projects(), ["a", "c"])) == ["A", "C"]


def test_tag_filter_matches_any_tag() -> None:
    assert _names(select_projects(_projects(), tag_filter=["x"])) == ["A", "C"]
    assert _names(select_projects(_projects(), tag_filter=["y", "Z"])) == ["B", "C"]


def test_both_filters_intersect() -> None:
    assert _names(select_projects(_projects(), ["A", "B"], ["x"])) == ["A"]


def test_unmatched_filters_select_nothing() -> None:
    assert select_projects(_projects(), ["nope"]) == []
    assert select_projects(_projects(), tag_filter=["nope"]) == []


def test_disabled_projects_are_still_selected() -> None:
    projects = [ProjectSpec(name="off", path=".", enabled=False)]
    assert _names(select_projects(projects)) == ["off"]


def test_duplicate_names_are_rejected() -> None:
    projects = [ProjectSpec(name="api", path="."), ProjectSpec(name="API", path=".")]
    with pytest.raises(FilterError, match="API"):
        select_projects(projects)


def test_bare_string_filter_is_rejected() -> None:
    with pytest.raises(FilterError):
        select_projects(_projects(), "A")


def test_non_project_entries_are_rejected() -> None:
    with pytest.raises(FilterError):
        select_projects(["A"])  # type: ignore[list-item]
