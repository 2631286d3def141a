# logsieve/services/similarity.py
"""
TF-IDF similarity engine

Builds a bag-of-words TF-IDF model over a corpus and answers similarity
questions between its documents.

Rows of the document matrix are L2-normalized, so the dot product of two
rows IS their cosine similarity. That makes a whole row of similarities a
single sparse matrix-vector product, which is what the rarity filter needs.
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer

from ..core.config import get_settings
from ..core.errors import EmptyCorpusError, EmptyVocabularyError, NotFittedError

logger = logging.getLogger(__name__)

# Marker for "not passed, read it from settings"
_FROM_SETTINGS = object()

Document = Union[int, str]


class SimilarityEngine:
    """
    TF-IDF document model over one corpus.

    Usage:
        engine = SimilarityEngine.build(lines)
        engine.similarity(0, 1)          # by corpus index
        engine.similarity("a b", "a c")  # or by raw text
        engine.vector_for(3)             # TF-IDF weights for one document
    """

    def __init__(
        self,
        stop_words=_FROM_SETTINGS,
        lowercase: Optional[bool] = None,
        token_pattern: Optional[str] = None
    ):
        """
        Args:
            stop_words: Stop-word list name for scikit-learn ("english") or
                        None to keep every token. Defaults to settings.
            lowercase: Lower-case tokens before counting. Defaults to settings.
            token_pattern: Token regex. Defaults to settings.
        """
        cfg = get_settings()
        self.stop_words = cfg.tfidf_stop_words if stop_words is _FROM_SETTINGS else stop_words
        self.lowercase = cfg.tfidf_lowercase if lowercase is None else lowercase
        self.token_pattern = token_pattern or cfg.tfidf_token_pattern

        self.vectorizer: Optional[TfidfVectorizer] = None
        self.matrix = None  # csr_matrix, one L2-normalized row per document
        self._empty_rows: Optional[np.ndarray] = None

    @classmethod
    def build(cls, corpus: Sequence[str], **kwargs) -> "SimilarityEngine":
        """Create an engine and fit it on the corpus in one pass"""
        return cls(**kwargs).fit(corpus)

    def fit(self, corpus: Sequence[str]) -> "SimilarityEngine":
        """
        Learn vocabulary, document frequencies and per-document weights.

        Raises:
            EmptyCorpusError: corpus has no documents
            EmptyVocabularyError: every document reduced to zero terms
        """
        if len(corpus) == 0:
            raise EmptyCorpusError()

        vectorizer = TfidfVectorizer(
            stop_words=self.stop_words,
            lowercase=self.lowercase,
            token_pattern=self.token_pattern,
            norm="l2",
        )
        try:
            matrix = vectorizer.fit_transform(corpus)
        except ValueError as e:
            # scikit-learn reports "empty vocabulary" as a ValueError
            raise EmptyVocabularyError({"documents": len(corpus), "reason": str(e)}) from e

        self.vectorizer = vectorizer
        self.matrix = matrix.tocsr().astype(np.float64)
        self._empty_rows = np.diff(self.matrix.indptr) == 0

        logger.info(
            "TF-IDF model built: %d documents, %d terms, %d empty documents",
            self.document_count, self.vocabulary_size, int(self._empty_rows.sum())
        )
        return self

    @property
    def is_fitted(self) -> bool:
        return self.matrix is not None

    @property
    def document_count(self) -> int:
        self._check_fitted()
        return self.matrix.shape[0]

    @property
    def vocabulary_size(self) -> int:
        self._check_fitted()
        return self.matrix.shape[1]

    def vector_for(self, doc: Document) -> np.ndarray:
        """TF-IDF weights of one document, length = vocabulary size"""
        return self._row(doc).toarray().ravel()

    def similarity(self, doc_a: Document, doc_b: Document) -> float:
        """
        Cosine similarity of two documents in [0, 1].

        Two documents without any vocabulary term compare as 1.0 (both
        distributions are empty); an empty document against a non-empty
        one compares as 0.0.
        """
        if _is_index(doc_a) and _is_index(doc_b) and int(doc_a) == int(doc_b):
            self._check_index(int(doc_a))
            return 1.0
        row_a = self._row(doc_a)
        row_b = self._row(doc_b)
        empty_a = row_a.nnz == 0
        empty_b = row_b.nnz == 0
        if empty_a or empty_b:
            return 1.0 if empty_a and empty_b else 0.0
        value = float(row_a.multiply(row_b).sum())
        return min(1.0, max(0.0, value))

    def similarity_block(self, index: int, start: int, stop: int) -> np.ndarray:
        """
        Similarities of document `index` against documents [start, stop).

        The entry for the document itself (if inside the block) is 1.0.
        """
        self._check_index(index)
        stop = min(stop, self.document_count)
        if start >= stop:
            return np.zeros(0)

        if self._empty_rows[index]:
            sims = self._empty_rows[start:stop].astype(np.float64)
        else:
            block = self.matrix[start:stop]
            sims = (block @ self.matrix[index].T).toarray().ravel()
            np.clip(sims, 0.0, 1.0, out=sims)

        if start <= index < stop:
            sims[index - start] = 1.0
        return sims

    def similarity_row(self, index: int) -> np.ndarray:
        """Similarities of one document against the whole corpus"""
        return self.similarity_block(index, 0, self.document_count)

    def _row(self, doc: Document):
        self._check_fitted()
        if _is_index(doc):
            self._check_index(int(doc))
            return self.matrix[int(doc)]
        return self.vectorizer.transform([doc]).tocsr().astype(np.float64)

    def _check_fitted(self):
        if self.matrix is None:
            raise NotFittedError("SimilarityEngine.build() or fit() must be called first")

    def _check_index(self, index: int):
        self._check_fitted()
        if not 0 <= index < self.matrix.shape[0]:
            raise IndexError(f"Document index {index} out of range")

    def __repr__(self):
        if not self.is_fitted:
            return "<SimilarityEngine(not fitted)>"
        return f"<SimilarityEngine(documents={self.document_count}, terms={self.vocabulary_size})>"


def _is_index(doc: Document) -> bool:
    return isinstance(doc, (int, np.integer)) and not isinstance(doc, bool)
