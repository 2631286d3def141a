"""
Analysis services: vectorizers, similarity engine, outlier scorer, rarity filter
"""

from .similarity import SimilarityEngine
from .vectorizer import VectorizeResult, vectorize, keyword_vector, walu_vector, extract_numbers
from .outlier import OutlierScorer, fit_forest
from .rarity import RarityFilter, TruncationCoordinator, find_rare
from .pipeline import detect_anomalies, find_rare_logs

__all__ = [
    "SimilarityEngine",
    "VectorizeResult",
    "vectorize",
    "keyword_vector",
    "walu_vector",
    "extract_numbers",
    "OutlierScorer",
    "fit_forest",
    "RarityFilter",
    "TruncationCoordinator",
    "find_rare",
    "detect_anomalies",
    "find_rare_logs",
]
