"""Coverage module - instrumentation, counting and analysis."""

from covlab.coverage.analyze import Analyzer, analyze, compare_paths
from covlab.coverage.hook import CoverageHook, CoverageSession, instrument
from covlab.coverage.instrument import InstrumentedFile, Instrumenter, instrument_source
from covlab.coverage.models import (
    AggregateReport,
    BranchStatement,
    Chunk,
    FileRecord,
    FileReport,
    LineReport,
    Verdict,
)
from covlab.coverage.pattern import PathFilter
from covlab.coverage.registry import TRACKER_NAME, CoverageContext
from covlab.coverage.sourcemaps import LineMapBridge, OriginalPosition

__all__ = [
    "AggregateReport",
    "Analyzer",
    "BranchStatement",
    "Chunk",
    "CoverageContext",
    "CoverageHook",
    "CoverageSession",
    "FileRecord",
    "FileReport",
    "InstrumentedFile",
    "Instrumenter",
    "LineMapBridge",
    "LineReport",
    "OriginalPosition",
    "PathFilter",
    "TRACKER_NAME",
    "Verdict",
    "analyze",
    "compare_paths",
    "instrument",
    "instrument_source",
]
