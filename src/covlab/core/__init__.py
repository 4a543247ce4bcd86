"""Core module exports."""

from covlab.core.errors import (
    ConfigError,
    CovLabError,
    ErrorCode,
    InstrumentError,
    PatternError,
)
from covlab.core.logging import (
    clear_run_id,
    configure_logging,
    ensure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "CovLabError",
    "ErrorCode",
    "InstrumentError",
    "PatternError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "ensure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
