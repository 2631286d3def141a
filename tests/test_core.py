# test_core.py
"""Core models, settings, errors and run control"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging

import pytest
from pydantic import ValidationError

from logsieve.core import (
    RankedResult,
    RarityResult,
    SimilarityStat,
    VectorizeMode,
    VectorizeParams,
    ProgressPhase,
    CancellationToken,
    ProgressReporter,
    Settings,
    VectorLengthMismatchError,
    EmptyCorpusError,
    ConfigurationError,
    configure_logging,
    get_settings,
    reload_settings,
)


def test_ranked_result_orders_by_score_then_index():
    """Descending score, ties in ascending index order"""
    ranked = RankedResult.from_scores([3, 0, 1, 2], [0.5, 0.9, 0.5, 0.1])

    assert ranked.indices() == [0, 1, 3, 2]
    assert [e.score for e in ranked.entries] == [0.9, 0.5, 0.5, 0.1]
    assert len(ranked) == 4
    assert [e.index for e in ranked.top(2)] == [0, 1]


def test_ranked_result_length_mismatch():
    with pytest.raises(ValueError):
        RankedResult.from_scores([0, 1], [0.3])


def test_ranked_result_to_frame():
    corpus = ["first line", "second line", "third line"]
    ranked = RankedResult.from_scores([0, 2], [0.2, 0.8])

    df = ranked.to_frame(corpus)

    assert list(df.columns) == ["Log", "Score"]
    assert df["Log"].tolist() == ["third line", "first line"]
    assert df.index.tolist() == [2, 0]


def test_rarity_result_sorting():
    """Rarity stats sort by min / mean / max, rarity ranking is 1 - max"""
    result = RarityResult(
        stats=[
            SimilarityStat(index=4, min=0.0, mean=0.20, max=0.40),
            SimilarityStat(index=1, min=0.1, mean=0.10, max=0.30),
            SimilarityStat(index=7, min=0.0, mean=0.30, max=0.30),
        ],
        threshold=0.5,
        allowance=0,
    )

    assert [s.index for s in result.sorted_by("max")] == [1, 7, 4]
    assert [s.index for s in result.sorted_by("mean")] == [1, 4, 7]
    assert [s.index for s in result.sorted_by("min", reverse=True)] == [1, 4, 7]

    ranked = result.ranked()
    assert ranked.indices() == [1, 7, 4]
    assert ranked.entries[0].score == pytest.approx(0.7)

    with pytest.raises(ValueError):
        result.sorted_by("median")

    df = result.to_frame([f"line {i}" for i in range(8)])
    assert list(df.columns) == ["Log", "Min", "Mean", "Max"]
    assert df["Log"].tolist() == ["line 1", "line 7", "line 4"]


def test_vectorize_params_extract_pattern():
    params = VectorizeParams(extract="took=*ms")
    assert params.prefix == "took="
    assert params.suffix == "ms"

    prefix_only = VectorizeParams(extract="id=")
    assert prefix_only.prefix == "id="
    assert prefix_only.suffix == ""

    explicit = VectorizeParams(prefix="[", suffix="]")
    assert (explicit.prefix, explicit.suffix) == ("[", "]")


def test_vectorize_mode_flags():
    assert VectorizeMode("sql").is_keyword_count
    assert VectorizeMode.DIR.is_keyword_count
    assert not VectorizeMode.WALU.is_keyword_count
    assert not VectorizeMode.TFIDF.is_keyword_count


def test_settings_defaults():
    """Stock defaults: 1000 trees, 256 samples, threshold 0.5"""
    s = Settings()

    assert s.forest_num_trees == 1000
    assert s.forest_sample_size == 256
    assert s.rarity_threshold == 0.5
    assert s.rarity_allowance == 0
    assert s.rarity_top_n == 0
    assert s.progress_interval == 100
    assert s.default_mode == "tfidf"
    assert get_settings() is not None


def test_settings_env_override(monkeypatch):
    monkeypatch.setenv("LOGSIEVE_RARITY_THRESHOLD", "0.75")
    monkeypatch.setenv("LOGSIEVE_FOREST_RANDOM_SEED", "42")

    s = Settings()

    assert s.rarity_threshold == 0.75
    assert s.forest_random_seed == 42


def test_settings_validation(monkeypatch):
    monkeypatch.setenv("LOGSIEVE_RARITY_THRESHOLD", "1.5")
    with pytest.raises(ValidationError):
        Settings()

    monkeypatch.setenv("LOGSIEVE_RARITY_THRESHOLD", "0.5")
    monkeypatch.setenv("LOGSIEVE_FOREST_NUM_TREES", "0")
    with pytest.raises(ValidationError):
        Settings()


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled

    token.cancel()

    assert token.cancelled
    assert "cancelled=True" in repr(token)


def test_progress_reporter_cadence():
    """Events for record 0 and every interval-th record, plus a final DONE"""
    events = []
    reporter = ProgressReporter(events.append, interval=10, total=25)

    for i in range(25):
        reporter.tick(ProgressPhase.ADD, i, retained=i)
    reporter.finish(25, 20)

    assert [e.records_scanned for e in events] == [0, 10, 20, 25]
    assert events[-1].phase == ProgressPhase.DONE
    assert events[-1].records_retained == 20
    assert all(e.total == 25 for e in events)
    assert all(e.elapsed >= 0 for e in events)


def test_progress_reporter_without_sink():
    reporter = ProgressReporter(None, interval=1)
    reporter.tick(ProgressPhase.CHECK, 0)
    reporter.finish(1)


def test_progress_sink_failure_does_not_stop_run(caplog):
    def broken_sink(event):
        raise RuntimeError("display went away")

    reporter = ProgressReporter(broken_sink, interval=1)
    with caplog.at_level(logging.WARNING):
        reporter.tick(ProgressPhase.SCORE, 0)

    assert "Progress sink failed" in caplog.text


def test_error_details():
    err = VectorLengthMismatchError(index=7, expected=2, actual=3, line="a 1 2 3")

    assert err.details["index"] == 7
    assert err.details["expected"] == 2
    assert "record 7" in str(err)

    empty = EmptyCorpusError("vector set")
    assert isinstance(empty, ConfigurationError)
    assert "vector set" in empty.message


def test_configure_logging():
    logger = configure_logging("debug")
    assert logger.name == "logsieve"


def test_reload_settings_picks_up_environment(monkeypatch):
    monkeypatch.setenv("LOGSIEVE_PROGRESS_INTERVAL", "25")
    try:
        reloaded = reload_settings()

        assert reloaded.progress_interval == 25
        assert get_settings() is reloaded
    finally:
        monkeypatch.delenv("LOGSIEVE_PROGRESS_INTERVAL")
        reload_settings()

    assert get_settings().progress_interval == 100
