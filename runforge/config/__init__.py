from .loader import build_runner_config, load_config
from .types import (
    ConfigError,
    ExecutionPolicy,
    OutputFormat,
    ProjectSpec,
    ProjectType,
    RunnerConfig,
    UnsupportedConfigFormatError,
)
from .writer import default_config, detected_config, save_config

__all__ = [
    "load_config",
    "build_runner_config",
    "save_config",
    "default_config",
    "detected_config",
    "ProjectSpec",
    "ProjectType",
    "ExecutionPolicy",
    "OutputFormat",
    "RunnerConfig",
    "ConfigError",
    "UnsupportedConfigFormatError",
]
