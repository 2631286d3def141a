# logsieve/services/rarity.py
"""
Rarity filter
=============

Finds log lines whose text is unlike the rest of the corpus.

For each record i (in corpus order):
    1. compare it with every other record j
    2. count the j whose similarity is above the threshold
    3. more than `allowance` such matches -> i is not rare, stop comparing
    4. otherwise keep i with its min / mean / max similarity

Top-N mode asks for exactly the N rarest records. It starts fully open
(threshold 1.0, allowance 1) and every time more than N records are kept
it sorts them by max similarity, drops the surplus and tightens the
threshold to the max similarity of the Nth record. The threshold only ever
goes down, so anything rejected on the way is at least as common as the
final N, and one pass over the corpus is enough.

The outer loop can run on several threads. All threshold reads and every
keep/truncate step go through one TruncationCoordinator, which is the only
shared mutable state of the scan.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import numpy as np

from ..core.config import get_settings
from ..core.control import CancellationToken, ProgressReporter, as_reporter, is_cancelled
from ..core.errors import ConfigurationError
from ..core.models import ProgressPhase, RarityResult, SimilarityStat
from .similarity import SimilarityEngine

logger = logging.getLogger(__name__)


class TruncationCoordinator:
    """
    Owns the retained set and the acceptance threshold.

    In fixed mode it only collects. In top-N mode every insertion that
    pushes the set above N is followed by sort, truncate and threshold
    tightening, all under one lock.
    """

    def __init__(self, threshold: float, allowance: int, top_n: int = 0):
        self._threshold = threshold
        self.allowance = allowance
        self.top_n = top_n
        self._retained: List[SimilarityStat] = []
        self._lock = threading.Lock()

    @property
    def threshold(self) -> float:
        with self._lock:
            return self._threshold

    @property
    def retained_count(self) -> int:
        with self._lock:
            return len(self._retained)

    def offer(self, stat: SimilarityStat) -> bool:
        """
        Add a record that survived its scan.

        Returns False if it was cut again by top-N truncation.
        """
        with self._lock:
            self._retained.append(stat)
            if self.top_n <= 0 or len(self._retained) <= self.top_n:
                return True
            self._retained.sort(key=_rarest_first)
            dropped = self._retained[self.top_n:]
            del self._retained[self.top_n:]
            new_threshold = self._retained[-1].max
            if new_threshold < self._threshold:
                logger.debug(
                    "Top-%d threshold tightened %.4f -> %.4f",
                    self.top_n, self._threshold, new_threshold
                )
                self._threshold = new_threshold
            return stat not in dropped

    def snapshot(self) -> List[SimilarityStat]:
        with self._lock:
            return sorted(self._retained, key=_rarest_first)


def _rarest_first(stat: SimilarityStat):
    return (stat.max, stat.index)


class RarityFilter:
    """
    TF-IDF rarity filter.

    Usage:
        rf = RarityFilter(threshold=0.5, allowance=0)
        result = rf.run(lines)

        rf = RarityFilter(top_n=10)       # exactly the 10 rarest lines
        result = rf.run(lines)
        result.to_frame(lines)
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        allowance: Optional[int] = None,
        top_n: Optional[int] = None,
        block_size: Optional[int] = None,
        workers: Optional[int] = None
    ):
        """
        Args:
            threshold: Similarity above which two records are "close" (0..1)
            allowance: Close matches a record may have and still be rare
            top_n: Return exactly the N rarest records; overrides
                   threshold/allowance with 1.0/1 as starting point
            block_size: Records compared per step before the early-exit check
            workers: Threads for the outer loop (1 = sequential)
        """
        cfg = get_settings()
        self.threshold = cfg.rarity_threshold if threshold is None else threshold
        self.allowance = cfg.rarity_allowance if allowance is None else allowance
        self.top_n = cfg.rarity_top_n if top_n is None else top_n
        self.block_size = cfg.rarity_block_size if block_size is None else block_size
        self.workers = cfg.rarity_workers if workers is None else workers

        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigurationError("threshold must be within [0, 1]", {"threshold": self.threshold})
        if self.allowance < 0 or self.top_n < 0:
            raise ConfigurationError(
                "allowance and top_n must be >= 0",
                {"allowance": self.allowance, "top_n": self.top_n}
            )
        if self.block_size < 1 or self.workers < 1:
            raise ConfigurationError(
                "block_size and workers must be >= 1",
                {"block_size": self.block_size, "workers": self.workers}
            )

        if self.top_n > 0:
            # Maximally open start: only a second exact duplicate disqualifies
            self.threshold = 1.0
            self.allowance = 1

    def run(
        self,
        corpus=None,
        engine: Optional[SimilarityEngine] = None,
        cancel: Optional[CancellationToken] = None,
        progress=None
    ) -> RarityResult:
        """
        Scan the corpus and return the rare records.

        Either pass the raw corpus (a TF-IDF model is built from it) or an
        already built SimilarityEngine. On cancellation the records kept
        so far are returned with cancelled=True.
        """
        started = time.monotonic()
        if engine is None:
            if corpus is None:
                raise ConfigurationError("Either corpus or engine is required")
            engine = SimilarityEngine.build(corpus)
        n = engine.document_count
        reporter = as_reporter(progress, total=n)
        reporter.emit(ProgressPhase.ADD, n, 0)

        coordinator = TruncationCoordinator(self.threshold, self.allowance, self.top_n)
        logger.info(
            "Rarity scan over %d records (threshold=%.3f, allowance=%d, top_n=%d, workers=%d)",
            n, self.threshold, self.allowance, self.top_n, self.workers
        )

        if self.workers > 1 and n > 1:
            scanned, cancelled = self._scan_parallel(engine, coordinator, reporter, cancel)
        else:
            scanned, cancelled = self._scan_sequential(engine, coordinator, reporter, cancel)

        stats = coordinator.snapshot()
        reporter.finish(scanned, len(stats))
        if cancelled:
            logger.warning("Rarity scan cancelled after %d of %d records", scanned, n)
        logger.info("Rarity scan kept %d of %d records", len(stats), scanned)

        return RarityResult(
            stats=stats,
            threshold=coordinator.threshold,
            allowance=coordinator.allowance,
            top_n=self.top_n,
            records_total=n,
            records_scanned=scanned,
            cancelled=cancelled,
            elapsed=time.monotonic() - started,
        )

    def scan_record(
        self,
        engine: SimilarityEngine,
        index: int,
        threshold: float,
        allowance: int
    ) -> Optional[SimilarityStat]:
        """
        Compare one record with the rest of the corpus.

        Returns None as soon as more than `allowance` records are closer
        than `threshold`; otherwise the record's similarity statistics.
        """
        n = engine.document_count
        close = 0
        blocks: List[np.ndarray] = []
        for start in range(0, n, self.block_size):
            stop = min(start + self.block_size, n)
            sims = engine.similarity_block(index, start, stop)
            if start <= index < stop:
                sims = np.delete(sims, index - start)
            close += int(np.count_nonzero(sims > threshold))
            if close > allowance:
                return None
            blocks.append(sims)

        others = np.concatenate(blocks) if blocks else np.empty(0)
        if others.size == 0:
            # Lone record, nothing to compare against
            return SimilarityStat(index=index, min=0.0, mean=0.0, max=0.0)
        return SimilarityStat(
            index=index,
            min=float(others.min()),
            mean=float(others.mean()),
            max=float(others.max()),
        )

    def _scan_sequential(
        self,
        engine: SimilarityEngine,
        coordinator: TruncationCoordinator,
        reporter: ProgressReporter,
        cancel: Optional[CancellationToken]
    ):
        n = engine.document_count
        for i in range(n):
            if is_cancelled(cancel):
                return i, True
            stat = self.scan_record(engine, i, coordinator.threshold, coordinator.allowance)
            if stat is not None:
                coordinator.offer(stat)
            reporter.tick(ProgressPhase.CHECK, i, coordinator.retained_count)
        return n, False

    def _scan_parallel(
        self,
        engine: SimilarityEngine,
        coordinator: TruncationCoordinator,
        reporter: ProgressReporter,
        cancel: Optional[CancellationToken]
    ):
        n = engine.document_count
        scanned = 0
        counter_lock = threading.Lock()

        def work(i: int) -> bool:
            nonlocal scanned
            if is_cancelled(cancel):
                return False
            stat = self.scan_record(engine, i, coordinator.threshold, coordinator.allowance)
            if stat is not None:
                coordinator.offer(stat)
            with counter_lock:
                position = scanned
                scanned += 1
            reporter.tick(ProgressPhase.CHECK, position, coordinator.retained_count)
            return True

        logger.info("Parallel rarity scan with %d workers", self.workers)
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            # map() re-raises the first worker error here
            completed = list(executor.map(work, range(n)))

        return scanned, not all(completed)


def find_rare(
    corpus: Sequence[str],
    threshold: Optional[float] = None,
    allowance: Optional[int] = None,
    top_n: Optional[int] = None,
    **kwargs
) -> RarityResult:
    """One-call rarity filter over raw log lines"""
    cancel = kwargs.pop("cancel", None)
    progress = kwargs.pop("progress", None)
    engine = kwargs.pop("engine", None)
    rf = RarityFilter(threshold=threshold, allowance=allowance, top_n=top_n, **kwargs)
    return rf.run(corpus, engine=engine, cancel=cancel, progress=progress)
