from __future__ import annotations

from collections.abc import Iterable, Sequence

from runforge.config.types import ProjectSpec

from .types import FilterError


def select_projects(
    projects: Sequence[ProjectSpec],
    name_filter: Iterable[str] | None = None,
    tag_filter: Iterable[str] | None = None,
) -> list[ProjectSpec]:
    _check_input(projects)

    names = _normalize(name_filter)
    tags = _normalize(tag_filter)

    selected: list[ProjectSpec] = []
    for project in projects:
        if names and project.name.casefold() not in names:
            continue
        if tags and not any(tag.casefold() in tags for tag in project.tags):
            continue
        selected.append(project)

    return selected


def _normalize(values: Iterable[str] | None) -> set[str]:
    if values is None:
        return set()

    if isinstance(values, str):
        raise FilterError(f"Filter must be a list of strings, got a single string {values!r}")

    normalized: set[str] = set()
    for value in values:
        if not isinstance(value, str):
            raise FilterError(f"Filter entries must be strings, got {type(value).__name__}")
        if value.strip():
            normalized.add(value.strip().casefold())
    return normalized


def _check_input(projects: Sequence[ProjectSpec]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []

    for project in projects:
        if not isinstance(project, ProjectSpec):
            raise FilterError(f"Expected ProjectSpec, got {type(project).__name__}")

        key = project.name.casefold()
        if key in seen:
            duplicates.append(project.name)
        seen.add(key)

    if duplicates:
        raise FilterError("Duplicate project names", duplicates)
