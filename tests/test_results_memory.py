"""
Tests for the results aggregator, historical comparison and the streaming
memory manager.
"""

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path no matter where pytest is invoked from
# ---------------------------------------------------------------------------
import pathlib, sys
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from gamesim.analysis.results import ResultsAggregator, HistoricalComparison
from gamesim.memory.streaming import (
    MemoryConfig, DataCompressor, StreamingDataManager, ResultProcessor,
)

PD = [[[3, 3], [0, 5]], [[5, 0], [1, 1]]]


def _aggregate(plays, **kwargs):
    aggregator = ResultsAggregator(2, ["Cooperate", "Defect"], **kwargs)
    for it, (r, c) in enumerate(plays, start=1):
        aggregator.add(it, [r, c], PD[r][c])
    return aggregator


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

def test_running_statistics():
    aggregator = _aggregate([(0, 0), (1, 1)] * 50)
    stats = aggregator.statistics()
    assert stats["mean"] == pytest.approx([2.0, 2.0])
    assert stats["variance"][0] == pytest.approx(4 * 100 / 99)
    low, high = stats["confidence_interval"][0]
    assert low < 2.0 < high


def test_distribution_statistics():
    aggregator = _aggregate([(0, 0)] * 30 + [(1, 1)] * 70)
    dist = aggregator.distribution_statistics()[0]
    assert dist["sample_count"] == 100
    assert dist["min"] == 1.0 and dist["max"] == 3.0
    assert dist["percentiles"][50] == 1.0
    assert dist["percentiles"][95] == 3.0
    assert dist["mode"] == 1.0
    assert dist["skewness"] > 0


def test_distribution_of_constant_samples():
    dist = _aggregate([(1, 1)] * 10).distribution_statistics()[0]
    assert dist["skewness"] == 0.0
    assert dist["kurtosis"] == 0.0


def test_empty_distribution():
    assert ResultsAggregator(2, ["A", "B"]).distribution_statistics() == [{}, {}]


def test_samples_survive_chunk_flushes():
    aggregator = _aggregate([(0, 1)] * 95, memory_config=MemoryConfig(chunk_size=10, enable_compression=False))
    assert len(aggregator.chunk_ids) == 9
    assert len(aggregator.samples(0)) == 95
    assert aggregator.distribution_statistics()[1]["sample_count"] == 95


def test_strategy_evolution_points():
    aggregator = _aggregate([(1, 0)] * 200, evolution_interval=100)
    points = aggregator.evolution
    assert len(points) == 2 * 2 * 2
    defect_row = [p for p in points if p["player"] == 0 and p["strategy"] == 1 and p["iteration"] == 100][0]
    assert defect_row["frequency"] == 1.0
    assert defect_row["win_rate"] == 1.0
    assert defect_row["dominance_score"] == 1.0
    assert defect_row["average_payoff"] == 5.0


def test_strategy_evolution_keeps_recent_intervals():
    aggregator = _aggregate([(0, 1)] * 1000, evolution_interval=100, evolution_limit=3)
    points = list(aggregator.evolution)
    assert len(points) == 3 * 2 * 2
    assert sorted({p["iteration"] for p in points}) == [800, 900, 1000]
    sucker = [p for p in points if p["player"] == 1 and p["strategy"] == 0 and p["iteration"] == 200][0]
    assert sucker["win_rate"] == 0.0


def test_strategy_distribution():
    dist = _aggregate([(0, 1), (1, 1), (1, 1), (1, 0)]).strategy_distribution()
    assert dist[0] == {"Cooperate": 0.25, "Defect": 0.75}
    assert dist[1] == {"Cooperate": 0.25, "Defect": 0.75}


# ---------------------------------------------------------------------------
# Historical comparison
# ---------------------------------------------------------------------------

def test_historical_comparison_ranking():
    history = HistoricalComparison()
    history.store_session("low", {"expected_payoffs": [1.0, 1.0], "actual_iterations": 100}, {"game": "pd"})
    history.store_session("mid", {"expected_payoffs": [2.0, 2.0], "actual_iterations": 5000}, {"game": "pd"})
    history.store_session("high", {"expected_payoffs": [3.0, 3.0], "actual_iterations": 5000}, {"game": "sh"})

    report = history.compare({"expected_payoffs": [2.1, 2.0]})
    assert report["sessions_compared"] == 3
    assert report["most_similar"] == "mid"
    assert report["percentile"][0] == pytest.approx(200 / 3)
    sims = [s["similarity"] for s in report["similar_sessions"]]
    assert sims == sorted(sims, reverse=True)

    filtered = history.compare({"expected_payoffs": [2.9, 2.9]}, {"game": "pd", "min_iterations": 1000})
    assert filtered["sessions_compared"] == 1
    assert filtered["most_similar"] == "mid"


def test_historical_comparison_empty():
    report = HistoricalComparison().compare({"expected_payoffs": [1.0]})
    assert report["sessions_compared"] == 0
    assert report["most_similar"] is None


# ---------------------------------------------------------------------------
# Compressor
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("text", [
    "",
    "a",
    "abcabcabcabcabcabc",
    "a<b<<c>d<1,2>",
    "<<<<<<<<<<<<",
    "x" * 1000,
])
def test_compress_string_round_trip(text):
    assert DataCompressor.decompress_string(DataCompressor.compress_string(text)) == text


def test_compress_shrinks_repetitive_json():
    value = {"samples": [[1.0, 5.0]] * 200}
    packed = DataCompressor.compress(value)
    assert packed["compressed_size"] < packed["original_size"] * 0.3
    assert DataCompressor.decompress(packed["compressed"]) == value


# ---------------------------------------------------------------------------
# Streaming manager
# ---------------------------------------------------------------------------

def test_store_compresses_only_when_worthwhile():
    manager = StreamingDataManager(MemoryConfig())
    manager.add_chunk("repetitive", [0.0] * 2000)
    manager.add_chunk("short", [1, 2, 3])
    stats = manager.memory_stats()
    assert stats["compressed_chunks"] == 1
    assert stats["bytes_saved"] > 0
    assert manager.get_chunk("repetitive") == [0.0] * 2000
    assert manager.get_chunk("short") == [1, 2, 3]


def test_eviction_prefers_low_priority():
    manager = StreamingDataManager(MemoryConfig(max_cache_size=2, enable_compression=False))
    manager.add_chunk("a", [1], "low")
    manager.add_chunk("b", [2], "high")
    manager.add_chunk("c", [3], "medium")
    assert "a" not in manager
    assert "b" in manager and "c" in manager
    manager.add_chunk("d", [4], "low")
    # The chunk just added is never its own victim
    assert "d" in manager and "b" in manager
    assert "c" not in manager
    assert manager.memory_stats()["evictions"] == 2


def test_eviction_is_lru_within_priority():
    manager = StreamingDataManager(MemoryConfig(max_cache_size=2, enable_compression=False))
    manager.add_chunk("a", [1], "low")
    manager.add_chunk("b", [2], "low")
    manager.get_chunk("a")
    manager.add_chunk("c", [3], "low")
    assert "a" in manager and "c" in manager
    assert "b" not in manager


def test_byte_budget_eviction():
    config = MemoryConfig(max_memory_mb=1 / 1024, gc_threshold=1.0, enable_compression=False)
    manager = StreamingDataManager(config)
    for i in range(10):
        manager.add_chunk(f"c{i}", list(range(100)), "medium")
    assert manager.total_size <= config.budget_bytes
    assert "c9" in manager
    assert manager.memory_stats()["evictions"] > 0


def test_hits_misses_and_remove():
    manager = StreamingDataManager()
    manager.add_chunk("x", {"k": 1})
    assert manager.get_chunk("x") == {"k": 1}
    assert manager.get_chunk("missing") is None
    assert manager.remove_chunk("x")
    assert not manager.remove_chunk("x")
    stats = manager.memory_stats()
    assert (stats["hits"], stats["misses"]) == (1, 1)
    assert stats["total_size"] == 0


def test_unknown_priority():
    with pytest.raises(ValueError):
        StreamingDataManager().add_chunk("x", [1], "urgent")


def test_result_processor_aggregates_chunks():
    partials = [{"iterations": 10, "outcomes": {"A-A": 10}, "strategy_frequencies": {"A-A": 10},
                 "payoff_sums": [10.0, 20.0], "payoff_sums_sq": [10.0, 40.0]} for _ in range(5)]
    partials[4] = {"iterations": 3, "outcomes": {"B-A": 3}, "strategy_frequencies": {"B-A": 3},
                   "payoff_sums": [0.0, 3.0], "payoff_sums_sq": [0.0, 3.0]}
    processor = ResultProcessor(MemoryConfig(chunk_size=2))
    progress = []
    summary = processor.process_results(partials, progress.append)
    assert summary["chunks"] == ["chunk_0", "chunk_1", "chunk_2"]
    assert progress == [0.4, 0.8, 1.0]
    assert processor.get_chunk_results("chunk_2")["size"] == 1

    merged = processor.aggregate_all_results()
    assert merged["total_results"] == 5
    assert merged["iterations"] == 43
    assert merged["outcomes"] == {"A-A": 40, "B-A": 3}
    assert merged["payoff_sums"] == [40.0, 83.0]
    assert merged["payoff_sums_sq"] == [40.0, 163.0]
