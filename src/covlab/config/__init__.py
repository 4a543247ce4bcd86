"""Config module exports."""

from covlab.config.loader import load_config
from covlab.config.models import (
    CovLabConfig,
    CoverageConfig,
    LoggingConfig,
    LogOutputConfig,
    TransformConfig,
)

__all__ = [
    "load_config",
    "CovLabConfig",
    "CoverageConfig",
    "LoggingConfig",
    "LogOutputConfig",
    "TransformConfig",
]
