# logsieve/core/errors.py
"""
Typed errors raised by the analysis core.

Only global contract violations are raised. Problems with a single record
(missing request token, absent delimiter, ...) are recorded as skips instead.
"""

from typing import Any, Dict, Optional


class AnalysisError(Exception):
    """Base exception for analysis errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(AnalysisError):
    """Raised when the caller's input or parameters are unusable."""


class EmptyCorpusError(ConfigurationError):
    """Raised when there is nothing to analyze."""

    def __init__(self, what: str = "corpus", details: Optional[Dict[str, Any]] = None):
        self.what = what
        super().__init__(f"Cannot analyze an empty {what}", details)


class EmptyVocabularyError(ConfigurationError):
    """Raised when the TF-IDF model ends up without a single term."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "TF-IDF vocabulary is empty; the documents only contain stop words or no tokens",
            details
        )


class VectorLengthMismatchError(AnalysisError):
    """Raised in strict numeric mode when a record yields a different vector length."""

    def __init__(self, index: int, expected: int, actual: int, line: str = ""):
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Extracted number length mismatch at record {index}: "
            f"expected {expected}, got {actual}",
            {"index": index, "expected": expected, "actual": actual, "line": line}
        )


class NotFittedError(AnalysisError):
    """Raised when a model is queried before it was built."""
