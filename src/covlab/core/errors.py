"""covlab error types with typed error codes.

Error code ranges:
- 2xxx: Config (including include/exclude patterns)
- 3xxx: Instrumentation
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004
    PATTERN_EMPTY_EXCLUSION = 2101
    PATTERN_INVALID = 2102

    # Instrumentation (3xxx)
    INSTRUMENT_PARSE_ERROR = 3001
    INSTRUMENT_INVALID_OUTPUT = 3002


@dataclass(frozen=True, slots=True)
class CovLabError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CovLabError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class PatternError(ConfigError):
    """Malformed include/exclude configuration."""

    @classmethod
    def empty_exclusion(cls, root: str) -> "PatternError":
        return cls(
            code=ErrorCode.PATTERN_EMPTY_EXCLUSION,
            message=f"Empty exclusion path under {root}",
            details={"root": root},
        )

    @classmethod
    def invalid_pattern(cls, pattern: str, reason: str) -> "PatternError":
        return cls(
            code=ErrorCode.PATTERN_INVALID,
            message=f"Invalid path pattern {pattern!r}: {reason}",
            details={"pattern": pattern, "reason": reason},
        )


class InstrumentError(CovLabError):
    """A file could not be instrumented; the loader serves it unchanged."""

    @classmethod
    def parse_error(cls, path: str, reason: str, line: int | None = None) -> "InstrumentError":
        details: dict[str, Any] = {"path": path, "reason": reason}
        if line is not None:
            details["line"] = line
        return cls(
            code=ErrorCode.INSTRUMENT_PARSE_ERROR,
            message=f"Failed to parse {path}: {reason}",
            details=details,
        )

    @classmethod
    def invalid_output(cls, path: str, reason: str, line: int | None = None) -> "InstrumentError":
        details: dict[str, Any] = {"path": path, "reason": reason}
        if line is not None:
            details["line"] = line
        return cls(
            code=ErrorCode.INSTRUMENT_INVALID_OUTPUT,
            message=f"Instrumented text of {path} does not compile: {reason}",
            details=details,
        )
