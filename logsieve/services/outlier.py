# logsieve/services/outlier.py
"""
Outlier scorer - isolation forest over feature vectors.

Each tree is grown on a random subsample and isolates points with random
splits. Points that get isolated after few splits are unusual. The score
is the usual normalized form 2 ** (-E[h(x)] / c(n)):
    close to 1.0  -> isolated quickly, anomalous
    around 0.5    -> nothing special
    well below    -> deep inside a dense region

scikit-learn's score_samples() returns exactly the negated value, so the
score here is simply -score_samples(x).

Trees are grown in batches (warm start) so a long training run can be
cancelled between batches and still leave a usable, smaller forest.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from sklearn.ensemble import IsolationForest

from ..core.config import get_settings
from ..core.control import CancellationToken, as_reporter, is_cancelled
from ..core.errors import ConfigurationError, EmptyCorpusError, NotFittedError
from ..core.models import ProgressPhase, RankedResult

logger = logging.getLogger(__name__)

# Score given to the only vector of a one-vector set; c(1) is undefined
NEUTRAL_SCORE = 0.5


class OutlierScorer:
    """
    Isolation forest ensemble with a cancellable training loop.

    Usage:
        scorer = OutlierScorer(num_trees=1000, sample_size=256, seed=42)
        scorer.fit(vectors)
        scores = scorer.score_all(vectors)
        ranked = scorer.rank(vectors, indices)
    """

    def __init__(
        self,
        num_trees: Optional[int] = None,
        sample_size: Optional[int] = None,
        seed: Optional[int] = None,
        batch_size: Optional[int] = None,
        n_jobs: Optional[int] = None
    ):
        """
        Args:
            num_trees: Trees in the ensemble (default 1000)
            sample_size: Vectors drawn per tree, capped at the set size (default 256)
            seed: Random seed; same seed + same vectors = same scores
            batch_size: Trees grown between two cancellation checks
            n_jobs: Parallel jobs used by scikit-learn to grow trees
        """
        cfg = get_settings()
        self.num_trees = num_trees if num_trees is not None else cfg.forest_num_trees
        self.sample_size = sample_size if sample_size is not None else cfg.forest_sample_size
        self.seed = seed if seed is not None else cfg.forest_random_seed
        self.batch_size = batch_size if batch_size is not None else cfg.forest_batch_size
        self.n_jobs = n_jobs if n_jobs is not None else cfg.forest_n_jobs

        if self.num_trees < 1 or self.sample_size < 1 or self.batch_size < 1:
            raise ConfigurationError(
                "num_trees, sample_size and batch_size must be >= 1",
                {
                    "num_trees": self.num_trees,
                    "sample_size": self.sample_size,
                    "batch_size": self.batch_size,
                }
            )

        self.forest: Optional[IsolationForest] = None
        self.n_features: Optional[int] = None
        self.trees_grown = 0
        self.training_cancelled = False
        self._single_vector = False

    @property
    def is_fitted(self) -> bool:
        return self.forest is not None or self._single_vector

    def fit(
        self,
        vectors,
        cancel: Optional[CancellationToken] = None,
        progress=None
    ) -> "OutlierScorer":
        """
        Grow the forest on a 2-D vector set.

        Raises:
            EmptyCorpusError: no vectors
            ConfigurationError: not 2-D, or zero features per vector
        """
        X = _as_matrix(vectors)
        n_vectors, n_features = X.shape
        reporter = as_reporter(progress, total=n_vectors)

        self.n_features = n_features
        self.trees_grown = 0
        self.training_cancelled = False
        self.forest = None
        self._single_vector = n_vectors == 1
        if self._single_vector:
            logger.info("Single vector, skipping forest training")
            return self

        max_samples = min(self.sample_size, n_vectors)
        forest = IsolationForest(
            n_estimators=min(self.batch_size, self.num_trees),
            max_samples=max_samples,
            random_state=self.seed,
            n_jobs=self.n_jobs,
            warm_start=True,
        )
        logger.info(
            "Training isolation forest: %d trees x %d samples on %d vectors (%d features)",
            self.num_trees, max_samples, n_vectors, n_features
        )
        reporter.emit(ProgressPhase.TRAIN, 0, 0)

        while self.trees_grown < self.num_trees:
            if self.trees_grown > 0 and is_cancelled(cancel):
                self.training_cancelled = True
                logger.warning(
                    "Training cancelled, keeping %d of %d trees",
                    self.trees_grown, self.num_trees
                )
                break
            target = min(self.trees_grown + self.batch_size, self.num_trees)
            forest.set_params(n_estimators=target)
            forest.fit(X)
            self.trees_grown = target
            logger.debug("Grown %d/%d trees", self.trees_grown, self.num_trees)

        self.forest = forest
        return self

    def score(self, vector: Sequence[float]) -> float:
        """Anomaly score of one vector, higher = more anomalous"""
        return float(self._score_matrix(np.asarray(vector, dtype=np.float64).reshape(1, -1))[0])

    def score_all(
        self,
        vectors,
        cancel: Optional[CancellationToken] = None,
        progress=None
    ) -> np.ndarray:
        """
        Scores for every vector, in input order.

        On cancellation only the scores computed so far are returned (a
        prefix of the input).
        """
        X = _as_matrix(vectors)
        reporter = as_reporter(progress, total=X.shape[0])
        step = reporter.interval

        parts: List[np.ndarray] = []
        for start in range(0, X.shape[0], step):
            if is_cancelled(cancel):
                logger.warning("Scoring cancelled after %d of %d vectors", start, X.shape[0])
                break
            parts.append(self._score_matrix(X[start:start + step]))
            reporter.tick(ProgressPhase.SCORE, start, start)

        return np.concatenate(parts) if parts else np.empty(0)

    def rank(
        self,
        vectors,
        indices: Optional[Sequence[int]] = None,
        cancel: Optional[CancellationToken] = None,
        progress=None
    ) -> RankedResult:
        """
        Score and sort descending; indices map vector rows to record indices.
        """
        scores = self.score_all(vectors, cancel=cancel, progress=progress)
        if indices is None:
            indices = range(len(scores))
        return RankedResult.from_scores(list(indices)[:len(scores)], scores.tolist())

    def _score_matrix(self, X: np.ndarray) -> np.ndarray:
        if not self.is_fitted:
            raise NotFittedError("OutlierScorer.fit() must be called before scoring")
        if X.shape[1] != self.n_features:
            raise ConfigurationError(
                f"Vector width {X.shape[1]} does not match the trained width {self.n_features}",
                {"expected": self.n_features, "actual": X.shape[1]}
            )
        if self._single_vector:
            return np.full(X.shape[0], NEUTRAL_SCORE)
        return -self.forest.score_samples(X)

    def __repr__(self):
        status = f"{self.trees_grown} trees" if self.is_fitted else "not fitted"
        return f"<OutlierScorer(trees={self.num_trees}, sample_size={self.sample_size}, {status})>"


def _as_matrix(vectors) -> np.ndarray:
    X = np.asarray(vectors, dtype=np.float64)
    if X.ndim != 2:
        if X.size == 0:
            raise EmptyCorpusError("vector set")
        raise ConfigurationError(f"Expected a 2-D vector set, got {X.ndim} dimension(s)")
    if X.shape[0] == 0:
        raise EmptyCorpusError("vector set")
    if X.shape[1] == 0:
        raise ConfigurationError("Vectors have no features", {"vectors": X.shape[0]})
    return X


def fit_forest(
    vectors,
    num_trees: Optional[int] = None,
    sample_size: Optional[int] = None,
    seed: Optional[int] = None,
    **kwargs
) -> OutlierScorer:
    """Train a scorer in one call: fit(vectors, num_trees=1000, sample_size=256)"""
    cancel = kwargs.pop("cancel", None)
    progress = kwargs.pop("progress", None)
    scorer = OutlierScorer(num_trees=num_trees, sample_size=sample_size, seed=seed, **kwargs)
    return scorer.fit(vectors, cancel=cancel, progress=progress)
