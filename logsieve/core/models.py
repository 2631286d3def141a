# logsieve/core/models.py
"""
Core data models for logsieve
These are the values that flow out of every analysis run
"""

from enum import Enum
from typing import Optional, List, Sequence
import pandas as pd
from pydantic import BaseModel, Field, model_validator


class VectorizeMode(str, Enum):
    """Ways of turning a log line into a feature vector"""
    TFIDF = "tfidf"
    SQL = "sql"  # SQL injection keywords
    OS = "os"  # OS command injection keywords
    DIR = "dir"  # Directory traversal keywords
    WALU = "walu"  # HTTP request-line heuristics
    NUMBER = "number"  # Numbers extracted from the line

    @property
    def is_keyword_count(self) -> bool:
        return self in (VectorizeMode.SQL, VectorizeMode.OS, VectorizeMode.DIR)


class ProgressPhase(str, Enum):
    """Stage a progress event was emitted from"""
    ADD = "add"
    TFIDF = "tfidf"
    TRAIN = "train"
    SCORE = "score"
    CHECK = "check"
    DONE = "done"


class ProgressEvent(BaseModel):
    """
    One-way progress notification handed to a caller supplied sink
    """
    phase: ProgressPhase
    records_scanned: int = 0
    records_retained: int = 0
    total: Optional[int] = None
    elapsed: float = 0.0  # Seconds since the reporter started


class SkippedRecord(BaseModel):
    """A record that could not be vectorized, and why"""
    index: int
    reason: str


class VectorizeParams(BaseModel):
    """
    Mode specific vectorization parameters

    extract uses the "prefix*suffix" form: the text between the first
    prefix and the following suffix is searched for numbers.
    """
    keywords: Optional[List[str]] = None  # Overrides the mode's keyword list
    extract: Optional[str] = None
    prefix: str = ""
    suffix: str = ""
    strict_length: Optional[bool] = None  # None = use settings

    @model_validator(mode="after")
    def split_extract(self):
        if self.extract:
            prefix, _, suffix = self.extract.partition("*")
            self.prefix = prefix
            self.suffix = suffix
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "extract": "took=*ms",
            }
        }


class RankedEntry(BaseModel):
    """A record index and its primary score"""
    index: int
    score: float


class RankedResult(BaseModel):
    """
    Records ordered by descending score
    Ties keep ascending index order so repeated runs print identically
    """
    entries: List[RankedEntry] = Field(default_factory=list)

    @classmethod
    def from_scores(cls, indices: Sequence[int], scores: Sequence[float]) -> "RankedResult":
        if len(indices) != len(scores):
            raise ValueError("indices and scores must have same length")
        entries = [
            RankedEntry(index=int(i), score=float(s))
            for i, s in zip(indices, scores)
        ]
        entries.sort(key=lambda e: (-e.score, e.index))
        return cls(entries=entries)

    def __len__(self) -> int:
        return len(self.entries)

    def indices(self) -> List[int]:
        return [e.index for e in self.entries]

    def top(self, n: int) -> List[RankedEntry]:
        return self.entries[:n]

    def to_frame(self, corpus: Sequence[str]) -> pd.DataFrame:
        """Map indices back to log text (Log / Score columns)"""
        return pd.DataFrame(
            {
                "Log": [corpus[e.index] for e in self.entries],
                "Score": [e.score for e in self.entries],
            },
            index=self.indices(),
        )


class SimilarityStat(BaseModel):
    """Similarity of one record against every other record in the corpus"""
    index: int
    min: float
    mean: float
    max: float


class RarityResult(BaseModel):
    """
    Output of the rarity filter

    stats is ordered rarest first (ascending max similarity, then index).
    threshold is the final value of the acceptance threshold, which in
    top-N mode is the max similarity of the Nth rarest record.
    """
    stats: List[SimilarityStat] = Field(default_factory=list)
    threshold: float
    allowance: int
    top_n: int = 0
    records_total: int = 0
    records_scanned: int = 0
    cancelled: bool = False
    elapsed: float = 0.0

    def __len__(self) -> int:
        return len(self.stats)

    def indices(self) -> List[int]:
        return [s.index for s in self.stats]

    def sorted_by(self, key: str = "max", reverse: bool = False) -> List[SimilarityStat]:
        """Order by min, mean or max similarity; index breaks ties"""
        if key not in ("min", "mean", "max"):
            raise ValueError(f"Unknown sort key: {key}")
        ordered = sorted(self.stats, key=lambda s: s.index)
        return sorted(ordered, key=lambda s: getattr(s, key), reverse=reverse)

    def ranked(self) -> RankedResult:
        """Rarity score = 1 - max similarity, so rarest records come first"""
        return RankedResult.from_scores(
            [s.index for s in self.stats],
            [1.0 - s.max for s in self.stats],
        )

    def to_frame(self, corpus: Sequence[str], sort_key: str = "max") -> pd.DataFrame:
        rows = self.sorted_by(sort_key)
        return pd.DataFrame(
            {
                "Log": [corpus[s.index] for s in rows],
                "Min": [s.min for s in rows],
                "Mean": [s.mean for s in rows],
                "Max": [s.max for s in rows],
            },
            index=[s.index for s in rows],
        )


class AnomalyReport(BaseModel):
    """
    Result of one isolation forest run over a vectorized corpus
    """
    mode: VectorizeMode
    ranked: RankedResult
    records_total: int
    vectors_scored: int
    skipped: List[SkippedRecord] = Field(default_factory=list)
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def skip_count(self) -> int:
        return len(self.skipped)

    def to_frame(self, corpus: Sequence[str]) -> pd.DataFrame:
        return self.ranked.to_frame(corpus)
