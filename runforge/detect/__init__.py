from .detector import analyze_directory, detect_projects
from .types import DetectionError

__all__ = ["detect_projects", "analyze_directory", "DetectionError"]
