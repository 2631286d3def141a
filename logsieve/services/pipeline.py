# logsieve/services/pipeline.py
"""
End-to-end analysis runs.

detect_anomalies: vectorize -> isolation forest -> records ranked by score
find_rare_logs:   TF-IDF rarity filter -> rarest records with similarity stats

Both take an in-memory corpus and hand back fresh result objects; nothing
is kept between runs.
"""

import logging
import time
from typing import Optional, Sequence

from ..core.control import CancellationToken, as_reporter, is_cancelled
from ..core.models import AnomalyReport, RankedResult, RarityResult, VectorizeParams
from .outlier import OutlierScorer
from .rarity import find_rare
from .vectorizer import resolve_mode, vectorize

logger = logging.getLogger(__name__)


def detect_anomalies(
    corpus: Sequence[str],
    mode=None,
    params: Optional[VectorizeParams] = None,
    num_trees: Optional[int] = None,
    sample_size: Optional[int] = None,
    seed: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    progress=None
) -> AnomalyReport:
    """
    Rank log lines by isolation forest anomaly score.

    Args:
        corpus: Log lines, already filtered by the caller
        mode: tfidf | sql | os | dir | walu | number
        params: Mode parameters (keyword override, "prefix*suffix" extract)
        num_trees: Forest size (default 1000)
        sample_size: Per-tree subsample (default 256)
        seed: Fix for reproducible rankings
        cancel: Stop early and return what was scored so far
        progress: Sink callable or ProgressReporter

    Returns:
        AnomalyReport with the ranking (indices into corpus) and the
        records that were skipped during vectorization

    Raises:
        EmptyCorpusError: empty corpus, or every record was skipped
        ConfigurationError: invalid mode or parameters
    """
    started = time.monotonic()
    mode = resolve_mode(mode)
    reporter = as_reporter(progress, total=len(corpus))

    vectorized = vectorize(corpus, mode, params, cancel=cancel, progress=reporter)

    if vectorized.cancelled and len(vectorized) == 0:
        reporter.finish(0, 0)
        return AnomalyReport(
            mode=mode,
            ranked=RankedResult(),
            records_total=len(corpus),
            vectors_scored=0,
            skipped=vectorized.skipped,
            cancelled=True,
            elapsed=time.monotonic() - started,
        )

    scorer = OutlierScorer(num_trees=num_trees, sample_size=sample_size, seed=seed)
    scorer.fit(vectorized.vectors, cancel=cancel, progress=reporter)
    if vectorized.cancelled:
        # Stopped while vectorizing: score the partial set on the first batch of trees
        ranked = scorer.rank(vectorized.vectors, vectorized.indices, progress=reporter)
    else:
        ranked = scorer.rank(vectorized.vectors, vectorized.indices, cancel=cancel, progress=reporter)

    cancelled = vectorized.cancelled or scorer.training_cancelled or is_cancelled(cancel)
    reporter.finish(len(ranked), len(ranked))
    logger.info(
        "Anomaly detection done: %d scored, %d skipped, %d records (mode=%s)",
        len(ranked), vectorized.skip_count, len(corpus), mode.value
    )

    return AnomalyReport(
        mode=mode,
        ranked=ranked,
        records_total=len(corpus),
        vectors_scored=len(ranked),
        skipped=vectorized.skipped,
        cancelled=cancelled,
        elapsed=time.monotonic() - started,
    )


def find_rare_logs(
    corpus: Sequence[str],
    threshold: Optional[float] = None,
    allowance: Optional[int] = None,
    top_n: Optional[int] = None,
    workers: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    progress=None
) -> RarityResult:
    """
    Log lines that are unlike the rest of the corpus.

    threshold / allowance work as a fixed filter; top_n > 0 instead returns
    exactly the N records with the lowest max similarity.
    """
    return find_rare(
        corpus,
        threshold=threshold,
        allowance=allowance,
        top_n=top_n,
        workers=workers,
        cancel=cancel,
        progress=progress,
    )
