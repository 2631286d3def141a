# test_rarity.py
"""
Test the rarity filter
Fixed threshold mode, top-N mode, parallel scan and cancellation
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import random

import pytest

from logsieve.core import CancellationToken, ConfigurationError, SimilarityStat
from logsieve.services.rarity import RarityFilter, TruncationCoordinator, find_rare
from logsieve.services.similarity import SimilarityEngine

HEARTBEAT = "INFO service heartbeat ok status green"
PANIC = "ERROR kernel panic disk controller reset"

PATTERNS = [
    "INFO request served path index status 200",
    "DEBUG cache lookup key session hit",
    "WARN slow query orders table took long",
]
UNIQUE = [
    "ERROR kernel panic disk controller reset",
    "CRITICAL certificate expired for mail gateway",
    "ALERT firewall dropped packets from unknown subnet",
    "FATAL heap exhausted while compacting journal",
    "NOTICE operator rotated backup tapes manually",
]


def _patterned_corpus():
    corpus = []
    for i in range(95):
        corpus.append(PATTERNS[i % len(PATTERNS)])
    return corpus + UNIQUE


def test_single_distinct_line():
    """1000 identical lines and one different line"""
    print("\n🧪 Testing rarity filter on heartbeat corpus...")

    corpus = [HEARTBEAT] * 1000 + [PANIC]
    result = find_rare(corpus, threshold=0.99, allowance=0)

    assert result.indices() == [1000]
    assert result.records_scanned == 1001
    assert not result.cancelled
    assert result.stats[0].max == pytest.approx(0.0)
    print(f"   Kept {len(result)} of {result.records_total} records")


def test_top_n_finds_unique_lines_in_any_order():
    corpus = _patterned_corpus()
    expected = {corpus.index(line) for line in UNIQUE}

    result = find_rare(corpus, top_n=5)
    assert len(result) == 5
    assert set(result.indices()) == expected

    rng = random.Random(1234)
    for _ in range(3):
        order = list(range(len(corpus)))
        rng.shuffle(order)
        shuffled = [corpus[i] for i in order]

        shuffled_result = find_rare(shuffled, top_n=5)

        assert {shuffled[i] for i in shuffled_result.indices()} == set(UNIQUE)


def test_top_n_matches_full_statistics():
    """One pass with tightening gives the N lowest max similarities"""
    corpus = [
        "alpha beta gamma",
        "alpha beta delta",
        "alpha epsilon",
        "zeta eta theta",
        "zeta eta iota",
        "kappa lambda",
        "mu nu xi",
        "alpha beta gamma delta",
    ]
    everything = find_rare(corpus, threshold=1.0, allowance=len(corpus))
    assert len(everything) == len(corpus)

    by_max = sorted(everything.stats, key=lambda s: (s.max, s.index))
    expected = [s.index for s in by_max[:3]]

    top = find_rare(corpus, top_n=3)

    assert top.indices() == expected
    assert top.threshold == pytest.approx(by_max[2].max)


def test_stats_are_ordered():
    corpus = _patterned_corpus()
    result = find_rare(corpus, threshold=1.0, allowance=len(corpus))

    for stat in result.stats:
        assert 0.0 <= stat.min <= stat.mean <= stat.max <= 1.0


def test_allowance_tolerates_close_matches():
    """A pair of duplicates is rare as long as one close match is allowed"""
    corpus = [HEARTBEAT] * 10 + [PANIC, PANIC]

    strict = find_rare(corpus, threshold=0.9, allowance=0)
    assert len(strict) == 0

    tolerant = find_rare(corpus, threshold=0.9, allowance=1)
    assert tolerant.indices() == [10, 11]


def test_parallel_scan_matches_sequential():
    corpus = _patterned_corpus()

    sequential = find_rare(corpus, threshold=0.5, allowance=0)
    parallel = find_rare(corpus, threshold=0.5, allowance=0, workers=4)

    assert set(parallel.indices()) == set(sequential.indices())
    assert parallel.records_scanned == len(corpus)


def test_parallel_top_n():
    corpus = _patterned_corpus()
    expected = {corpus.index(line) for line in UNIQUE}

    result = find_rare(corpus, top_n=5, workers=4)

    assert set(result.indices()) == expected


def test_small_blocks_give_same_result():
    corpus = _patterned_corpus()

    default = find_rare(corpus, threshold=0.5, allowance=2)
    blocked = find_rare(corpus, threshold=0.5, allowance=2, block_size=7)

    assert blocked.indices() == default.indices()


def test_prebuilt_engine():
    corpus = [HEARTBEAT] * 20 + [PANIC]
    engine = SimilarityEngine.build(corpus)

    result = RarityFilter(threshold=0.99, allowance=0).run(engine=engine)

    assert result.indices() == [20]


def test_single_record_corpus():
    result = find_rare(["only one line here"], threshold=0.5, allowance=0)

    assert result.indices() == [0]
    assert result.stats[0].max == 0.0


def test_top_n_overrides_threshold():
    rf = RarityFilter(threshold=0.2, allowance=5, top_n=3)

    assert rf.threshold == 1.0
    assert rf.allowance == 1


def test_invalid_parameters():
    with pytest.raises(ConfigurationError):
        RarityFilter(threshold=1.5)
    with pytest.raises(ConfigurationError):
        RarityFilter(allowance=-1)
    with pytest.raises(ConfigurationError):
        RarityFilter().run()


def test_cancelled_before_start():
    token = CancellationToken()
    token.cancel()

    result = find_rare([HEARTBEAT] * 10 + [PANIC], threshold=0.99, allowance=0, cancel=token)

    assert result.cancelled
    assert result.records_scanned == 0
    assert len(result) == 0


def test_cancel_mid_scan_returns_partial_result():
    token = CancellationToken()
    corpus = [PANIC] + [HEARTBEAT] * 300

    def sink(event):
        if event.phase.value == "check":
            token.cancel()

    result = find_rare(corpus, threshold=0.99, allowance=0, cancel=token, progress=sink)

    assert result.cancelled
    assert result.records_scanned == 1
    assert result.indices() == [0]


def test_progress_reports_phases():
    events = []
    find_rare([HEARTBEAT] * 250 + [PANIC], threshold=0.99, allowance=0, progress=events.append)

    phases = [e.phase.value for e in events]
    assert phases[0] == "add"
    assert phases[-1] == "done"
    assert phases.count("check") == 3  # records 0, 100, 200
    assert events[-1].records_retained == 1


def test_truncation_coordinator():
    coordinator = TruncationCoordinator(threshold=1.0, allowance=1, top_n=2)

    assert coordinator.offer(SimilarityStat(index=0, min=0.1, mean=0.3, max=0.8))
    assert coordinator.offer(SimilarityStat(index=1, min=0.0, mean=0.2, max=0.6))
    assert coordinator.threshold == 1.0

    assert coordinator.offer(SimilarityStat(index=2, min=0.0, mean=0.1, max=0.2))
    assert coordinator.threshold == pytest.approx(0.6)
    assert [s.index for s in coordinator.snapshot()] == [2, 1]

    assert not coordinator.offer(SimilarityStat(index=3, min=0.0, mean=0.3, max=0.6))
    assert coordinator.retained_count == 2


def test_result_frame():
    corpus = [HEARTBEAT] * 5 + [PANIC]
    result = find_rare(corpus, threshold=0.99, allowance=0)

    df = result.to_frame(corpus)

    assert list(df.columns) == ["Log", "Min", "Mean", "Max"]
    assert df["Log"].tolist() == [PANIC]


def test_zero_workers_or_block_size_rejected():
    with pytest.raises(ConfigurationError):
        RarityFilter(workers=0)
    with pytest.raises(ConfigurationError):
        RarityFilter(block_size=0)
