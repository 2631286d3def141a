# logsieve/services/vectorizer.py
"""
Vectorizer family
=================

Turns log lines into fixed-width numeric feature vectors. Every record in
one run gets a vector of the same length, or no vector at all.

Modes:
    tfidf   TF-IDF weights over the corpus vocabulary
    sql     counts of SQL injection keywords
    os      counts of OS command injection keywords
    dir     counts of directory traversal keywords
    walu    heuristics over the quoted HTTP request line
            (after https://github.com/Kanatoko/Walu)
    number  the numbers found in the line

A record that cannot be vectorized (no request token, missing delimiter,
inconsistent number count) is skipped and reported, the run goes on.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import unquote

import numpy as np

from ..core.config import get_settings
from ..core.control import CancellationToken, ProgressReporter, as_reporter, is_cancelled
from ..core.errors import ConfigurationError, EmptyCorpusError, VectorLengthMismatchError
from ..core.models import ProgressPhase, SkippedRecord, VectorizeMode, VectorizeParams
from .keywords import keywords_for
from .similarity import SimilarityEngine

logger = logging.getLogger(__name__)

# Walu features
WALU_COUNTED_CHARS = (":", "(", ";", "%", "/", "'", "<", "?", ".", "#")
WALU_ENCODED = (("%3D", "%3d"), ("%2F", "%2f"), ("%5C", "%5c"), ("%25",), ("%20",))
WALU_PATTERNS = ("/%", "//", "/.", "..", "=/", "./", "/?")
WALU_VECTOR_LENGTH = 2 + len(WALU_COUNTED_CHARS) + len(WALU_ENCODED) + 1 + 4 + len(WALU_PATTERNS)

NUMBER_PATTERN = re.compile(r"[-+0-9.]+")

# (vector, None) on success, (None, reason) when the record is skipped
Extraction = Tuple[Optional[List[float]], Optional[str]]


@dataclass
class VectorizeResult:
    """
    Feature matrix of one run.

    vectors[k] belongs to corpus record indices[k]; skipped records have
    no row.
    """
    mode: VectorizeMode
    vectors: np.ndarray
    indices: List[int]
    skipped: List[SkippedRecord] = field(default_factory=list)
    records_total: int = 0
    cancelled: bool = False
    engine: Optional[SimilarityEngine] = None  # Only set in tfidf mode

    @property
    def width(self) -> int:
        return int(self.vectors.shape[1]) if self.vectors.ndim == 2 else 0

    @property
    def skip_count(self) -> int:
        return len(self.skipped)

    def __len__(self) -> int:
        return len(self.indices)


# ============================================================
# Per-line feature functions
# ============================================================

def keyword_vector(line: str, keywords: Sequence[str]) -> List[float]:
    """Occurrences of each keyword, in keyword order"""
    return [float(line.count(k)) for k in keywords]


def _is_alnum(c: str) -> bool:
    # ASCII letters and digits only
    return ("a" <= c <= "z") or ("A" <= c <= "Z") or ("0" <= c <= "9")


def _non_alnum_count(s: str) -> int:
    return sum(1 for c in s if not _is_alnum(c))


def _longest_non_alnum_run(s: str) -> int:
    longest = 0
    run = 0
    for c in s:
        if _is_alnum(c):
            run = 0
        else:
            run += 1
            longest = max(longest, run)
    return longest


def request_token(line: str) -> Optional[str]:
    """
    The first double-quoted field of a line, e.g. 'GET /a?b=c HTTP/1.1'

    None only when the line has no double quote at all; an empty field
    still counts as a (blank) request.
    """
    parts = line.split('"')
    if len(parts) < 2:
        return None
    return parts[1]


def walu_vector(line: str) -> List[float]:
    """
    HTTP request-line heuristics.

    Returns an empty list when the line has no double quote.
    """
    request = request_token(line)
    if request is None:
        return []

    path = ""
    query = ""
    fields = request.split()
    if len(fields) > 1 and "?" in fields[1]:
        path, query = fields[1].split("?", 1)
    path = unquote(path)
    query = unquote(query)

    vector = [float(request.find("%")), float(request.find(":"))]
    vector.extend(float(request.count(c)) for c in WALU_COUNTED_CHARS)
    for variants in WALU_ENCODED:
        vector.append(float(sum(request.count(v) for v in variants)))
    vector.append(1.0 if request.startswith("POST") else 0.0)
    vector.append(float(_non_alnum_count(path)))
    vector.append(float(_non_alnum_count(query)))
    vector.append(float(_longest_non_alnum_run(request)))
    vector.append(float(_non_alnum_count(request)))
    vector.extend(float(request.count(p)) for p in WALU_PATTERNS)
    return vector


def extract_numbers(line: str, prefix: str = "", suffix: str = "") -> Optional[List[float]]:
    """
    Signed decimal numbers found in a line.

    With a prefix only the text after its first occurrence is searched,
    with a suffix only the text before it. Returns None when a delimiter
    is missing from the line.
    """
    text = line
    if prefix:
        _, found, text = text.partition(prefix)
        if not found:
            return None
    if suffix:
        text, found, _ = text.partition(suffix)
        if not found:
            return None

    values = []
    for token in NUMBER_PATTERN.findall(text):
        try:
            values.append(float(token))
        except ValueError:
            # "-", ".", "1.2.3" and friends
            continue
    return values


class _NumberExtractor:
    """Number mode with the equal-length rule across the whole run"""

    def __init__(self, prefix: str, suffix: str, strict: bool):
        self.prefix = prefix
        self.suffix = suffix
        self.strict = strict
        self.expected_length: Optional[int] = None

    def __call__(self, index: int, line: str) -> Extraction:
        values = extract_numbers(line, self.prefix, self.suffix)
        if values is None:
            return None, "delimiter not found"
        if not values:
            return None, "no numeric values"
        if self.expected_length is None:
            self.expected_length = len(values)
        elif len(values) != self.expected_length:
            if self.strict:
                raise VectorLengthMismatchError(index, self.expected_length, len(values), line)
            logger.warning(
                "Extracted number length mismatch at record %d: expected %d, got %d",
                index, self.expected_length, len(values)
            )
            return None, f"length mismatch ({len(values)} != {self.expected_length})"
        return values, None


# ============================================================
# Corpus level
# ============================================================

def resolve_mode(mode) -> VectorizeMode:
    """Accept a VectorizeMode or its name; None means the configured default"""
    if isinstance(mode, VectorizeMode):
        return mode
    name = mode if mode is not None else get_settings().default_mode
    try:
        return VectorizeMode(str(name).lower())
    except ValueError:
        valid = "|".join(m.value for m in VectorizeMode)
        raise ConfigurationError(
            f"Unknown vectorize mode '{name}' (expected {valid})",
            {"mode": name}
        ) from None


def vectorize(
    corpus: Sequence[str],
    mode=None,
    params: Optional[VectorizeParams] = None,
    cancel: Optional[CancellationToken] = None,
    progress=None
) -> VectorizeResult:
    """
    Vectorize every record of the corpus under one mode.

    Args:
        corpus: Ordered log lines; their positions are the record indices
        mode: VectorizeMode or its name (defaults to settings.default_mode)
        params: Mode specific parameters (keyword override, extract pattern)
        cancel: Stops the run early; the vectors built so far are returned
        progress: Sink callable or ProgressReporter

    Raises:
        EmptyCorpusError: nothing to vectorize
        ConfigurationError: unknown mode or unusable parameters
        EmptyVocabularyError: tfidf mode found no terms
        VectorLengthMismatchError: number mode in strict mode only
    """
    mode = resolve_mode(mode)
    params = params or VectorizeParams()
    if len(corpus) == 0:
        raise EmptyCorpusError()

    reporter = as_reporter(progress, total=len(corpus))
    logger.info("Vectorizing %d records (mode=%s)", len(corpus), mode.value)

    if mode == VectorizeMode.TFIDF:
        result = _vectorize_tfidf(corpus, reporter, cancel)
    else:
        extractor, width = _extractor_for(mode, params)
        vectors, indices, skipped, cancelled = _collect(corpus, extractor, reporter, cancel)
        if isinstance(extractor, _NumberExtractor):
            width = extractor.expected_length or 0
        matrix = np.array(vectors, dtype=np.float64) if vectors else np.empty((0, width))
        result = VectorizeResult(
            mode=mode,
            vectors=matrix.reshape(len(vectors), width),
            indices=indices,
            skipped=skipped,
            records_total=len(corpus),
            cancelled=cancelled,
        )

    if result.skipped:
        logger.warning(
            "Skipped %d of %d records in %s mode",
            result.skip_count, len(corpus), mode.value
        )
    logger.info("Vectorized %d records, width %d", len(result), result.width)
    return result


def _extractor_for(mode: VectorizeMode, params: VectorizeParams) -> Tuple[Callable[[int, str], Extraction], int]:
    cfg = get_settings()

    if mode.is_keyword_count:
        keywords = list(params.keywords) if params.keywords is not None else keywords_for(mode)
        if any(k == "" for k in keywords):
            raise ConfigurationError("Keyword lists must not contain empty strings", {"mode": mode.value})

        def by_keywords(index: int, line: str) -> Extraction:
            return keyword_vector(line, keywords), None

        return by_keywords, len(keywords)

    if mode == VectorizeMode.WALU:
        min_length = cfg.walu_min_length

        def by_walu(index: int, line: str) -> Extraction:
            vector = walu_vector(line)
            if not vector:
                return None, "no quoted request"
            if len(vector) <= min_length:
                return None, "request vector too short"
            return vector, None

        return by_walu, WALU_VECTOR_LENGTH

    if mode == VectorizeMode.NUMBER:
        strict = cfg.number_strict_length if params.strict_length is None else params.strict_length
        return _NumberExtractor(params.prefix, params.suffix, strict), 0

    raise ConfigurationError(f"No extractor for mode '{mode.value}'", {"mode": mode.value})


def _collect(
    corpus: Sequence[str],
    extractor: Callable[[int, str], Extraction],
    reporter: ProgressReporter,
    cancel: Optional[CancellationToken]
):
    vectors: List[List[float]] = []
    indices: List[int] = []
    skipped: List[SkippedRecord] = []
    cancelled = False

    for i, line in enumerate(corpus):
        if is_cancelled(cancel):
            cancelled = True
            logger.warning("Vectorization cancelled after %d of %d records", i, len(corpus))
            break
        vector, reason = extractor(i, line)
        if vector is None:
            logger.debug("Skipping record %d: %s", i, reason)
            skipped.append(SkippedRecord(index=i, reason=reason))
        else:
            vectors.append(vector)
            indices.append(i)
        reporter.tick(ProgressPhase.ADD, i, len(vectors))

    return vectors, indices, skipped, cancelled


def _vectorize_tfidf(
    corpus: Sequence[str],
    reporter: ProgressReporter,
    cancel: Optional[CancellationToken]
) -> VectorizeResult:
    engine = SimilarityEngine.build(corpus)
    reporter.emit(ProgressPhase.ADD, len(corpus), 0)

    step = reporter.interval
    blocks = []
    done = 0
    cancelled = False
    for start in range(0, engine.document_count, step):
        if is_cancelled(cancel):
            cancelled = True
            logger.warning("TF-IDF vectorization cancelled after %d records", done)
            break
        block = engine.matrix[start:start + step].toarray()
        blocks.append(block)
        done += block.shape[0]
        reporter.tick(ProgressPhase.TFIDF, start, done)

    width = engine.vocabulary_size
    vectors = np.vstack(blocks) if blocks else np.empty((0, width))
    return VectorizeResult(
        mode=VectorizeMode.TFIDF,
        vectors=vectors,
        indices=list(range(done)),
        records_total=len(corpus),
        cancelled=cancelled,
        engine=engine,
    )
