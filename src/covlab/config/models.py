"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (COVLAB__SECTION__KEY)
3. Repo YAML (.covlab.yaml)
4. Global YAML (~/.config/covlab/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    COVLAB__<SECTION>__<KEY>=<VALUE>

Examples:
    COVLAB__LOGGING__LEVEL=DEBUG
    COVLAB__COVERAGE__ROOT=src
    COVLAB__COVERAGE__EXCLUDE='["tests", "migrations"]'
    COVLAB__COVERAGE__THRESHOLD=90
"""

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ImportString, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Line map values: an original line of the same file, or (original file, line).
LineMap = Mapping[int, int | tuple[str, int]]
TransformFn = Callable[[str, str], str | tuple[str, LineMap]]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVLAB__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs every instrumented file.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class TransformConfig(BaseModel):
    """Pre-processing stage for one file extension.

    The transform runs on the file text before parsing: ``transform(text, path) -> text``.
    When it moves lines it may return ``(text, line_map)`` instead, mapping each
    transformed line number to its original line (or ``(original_path, line)``);
    reports built with source maps on then point back at the original.
    It may be given as a callable or as a dotted import string
    (``"mypkg.templates.render"``). ``None`` leaves the text unchanged, which is
    how an extra extension is registered for plain Python source.
    """

    extension: str = Field(description="File suffix including the dot, e.g. '.pyt'.")
    transform: ImportString[TransformFn] | None = Field(
        default=None,
        description="Callable or dotted path applied to the text before instrumentation.",
    )

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2:
            raise ValueError(f"Extension must start with '.', got {v!r}")
        return v


class CoverageConfig(BaseModel):
    """What to instrument and how to report it.

    Env vars:
        COVLAB__COVERAGE__ROOT: Inclusion root (default: current directory)
        COVLAB__COVERAGE__EXCLUDE: JSON list of sub-paths excluded under the root
        COVLAB__COVERAGE__SOURCE_MAPS: Enrich report lines with original positions
        COVLAB__COVERAGE__ALL_FILES: Report matching files that were never loaded
        COVLAB__COVERAGE__THRESHOLD: Minimum total percent for `covlab run`
    """

    root: str = Field(
        default=".",
        description="Inclusion root. Only files under this path are instrumented.",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Sub-paths of the root never instrumented (whole path segments).",
    )
    transforms: list[TransformConfig] = Field(
        default_factory=list,
        description="Per-extension pre-processing. Extra extensions become importable.",
    )
    source_maps: bool = Field(
        default=False,
        description="Consult the position-mapping bridge when building reports.",
    )
    all_files: bool = Field(
        default=True,
        description="Report files under the root that were never imported as fully missed. "
        "TRADEOFF: walks the whole root; disable for very large trees.",
    )
    relative_to: str | None = Field(
        default=None,
        description="Directory report filenames are made relative to. Default: cwd.",
    )
    threshold: float | None = Field(
        default=None,
        description="Minimum total coverage percent. `covlab run` exits 1 below it.",
    )

    @field_validator("root")
    @classmethod
    def validate_root(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Inclusion root must not be empty")
        return v

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float | None) -> float | None:
        if v is not None and not (0 <= v <= 100):
            raise ValueError(f"Threshold must be 0-100, got {v}")
        return v


class CovLabConfig(BaseModel):
    """Root configuration for covlab.

    All settings can be configured via:
    1. Environment variables: COVLAB__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
