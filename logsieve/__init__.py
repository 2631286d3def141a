"""
logsieve - surface rare and anomalous lines in large log collections

    from logsieve import detect_anomalies, find_rare_logs

    report = detect_anomalies(lines, mode="sql", seed=42)
    rare = find_rare_logs(lines, top_n=10)
"""

from .core import (
    VectorizeMode,
    VectorizeParams,
    RankedResult,
    RarityResult,
    AnomalyReport,
    CancellationToken,
    AnalysisError,
    ConfigurationError,
    settings,
)
from .services import (
    SimilarityEngine,
    OutlierScorer,
    RarityFilter,
    vectorize,
    detect_anomalies,
    find_rare_logs,
)

__version__ = "0.1.0"

__all__ = [
    "VectorizeMode",
    "VectorizeParams",
    "RankedResult",
    "RarityResult",
    "AnomalyReport",
    "CancellationToken",
    "AnalysisError",
    "ConfigurationError",
    "settings",
    "SimilarityEngine",
    "OutlierScorer",
    "RarityFilter",
    "vectorize",
    "detect_anomalies",
    "find_rare_logs",
]
