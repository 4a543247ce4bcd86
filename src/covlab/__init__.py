"""covlab - statement and branch coverage by source instrumentation."""

from covlab.config import CoverageConfig, CovLabConfig, load_config
from covlab.coverage import (
    AggregateReport,
    CoverageContext,
    CoverageSession,
    analyze,
    instrument,
    instrument_source,
)

__version__ = "0.1.0"

__all__ = [
    "AggregateReport",
    "CovLabConfig",
    "CoverageConfig",
    "CoverageContext",
    "CoverageSession",
    "analyze",
    "instrument",
    "instrument_source",
    "load_config",
]
