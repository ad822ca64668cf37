from .filter import select_projects
from .types import FilterError, SelectionError

__all__ = ["select_projects", "FilterError", "SelectionError"]
