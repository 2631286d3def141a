# logsieve/core/__init__.py
"""
Core modules for logsieve
"""

from .models import (
    VectorizeMode,
    ProgressPhase,
    ProgressEvent,
    SkippedRecord,
    VectorizeParams,
    RankedEntry,
    RankedResult,
    SimilarityStat,
    RarityResult,
    AnomalyReport,
)

from .errors import (
    AnalysisError,
    ConfigurationError,
    EmptyCorpusError,
    EmptyVocabularyError,
    VectorLengthMismatchError,
    NotFittedError,
)

from .control import CancellationToken, ProgressReporter

from .config import settings, Settings, get_settings, reload_settings, configure_logging

__all__ = [
    # Models
    "VectorizeMode",
    "ProgressPhase",
    "ProgressEvent",
    "SkippedRecord",
    "VectorizeParams",
    "RankedEntry",
    "RankedResult",
    "SimilarityStat",
    "RarityResult",
    "AnomalyReport",
    # Errors
    "AnalysisError",
    "ConfigurationError",
    "EmptyCorpusError",
    "EmptyVocabularyError",
    "VectorLengthMismatchError",
    "NotFittedError",
    # Control
    "CancellationToken",
    "ProgressReporter",
    # Config
    "settings",
    "Settings",
    "get_settings",
    "reload_settings",
    "configure_logging",
]
