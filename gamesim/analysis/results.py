"""
Results aggregation for simulation runs.

Running means and variances come from sum / sum-of-squares accumulators;
raw payoff samples are kept in chunks of a StreamingDataManager so the full
distribution can be summarised on demand without unbounded growth.
"""
import logging
import time
from collections import Counter, deque
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats as sp_stats

from gamesim import stats
from gamesim.constants import EVOLUTION_INTERVAL, PERCENTILES, DEFAULT_CONFIDENCE_LEVEL, DEFAULT_TRACE_LIMIT
from gamesim.memory.streaming import MemoryConfig, StreamingDataManager

logger = logging.getLogger(__name__)

# Raw samples are numeric and compress poorly, so the sample store skips compression
SAMPLE_STORE_CONFIG = MemoryConfig(enable_compression=False, chunk_size=10_000, max_cache_size=100)


class ResultsAggregator:
    """
    Accumulates per-iteration outcomes of one run.

    Attributes:
        player_count: Number of players
        strategy_names: Strategy labels (shared by both players)
        evolution: Most recent strategy-evolution points, one per player and
            strategy for each of the last evolution_limit intervals
        count: Number of iterations added
    """

    def __init__(self, player_count: int, strategy_names: Sequence[str],
                 memory_config: Optional[MemoryConfig] = None,
                 evolution_interval: int = EVOLUTION_INTERVAL,
                 evolution_limit: int = DEFAULT_TRACE_LIMIT,
                 confidence_level: float = DEFAULT_CONFIDENCE_LEVEL):
        self.player_count = player_count
        self.strategy_names = list(strategy_names)
        self.evolution_interval = evolution_interval
        self.confidence_level = confidence_level
        self.memory_config = memory_config or SAMPLE_STORE_CONFIG
        self.sample_store = StreamingDataManager(self.memory_config)
        self.chunk_ids: List[str] = []

        n = len(self.strategy_names)
        self.count = 0
        self.sums = [0.0] * player_count
        self.sums_sq = [0.0] * player_count
        self.minimum = [float("inf")] * player_count
        self.maximum = [float("-inf")] * player_count
        self.strategy_counts = [[0] * n for _ in range(player_count)]
        self.pending: List[List[float]] = [[] for _ in range(player_count)]
        self.evolution = deque(maxlen=max(1, evolution_limit) * player_count * max(1, n))
        self._reset_interval()

    def _reset_interval(self):
        n = len(self.strategy_names)
        self.interval_rounds = 0
        self.interval_counts = [[0] * n for _ in range(self.player_count)]
        self.interval_payoffs = [[0.0] * n for _ in range(self.player_count)]
        self.interval_wins = [[0] * n for _ in range(self.player_count)]

    def add(self, iteration: int, strategies: Sequence[int], payoffs: Sequence[float]) -> None:
        """
        Record one iteration.

        Args:
            iteration: 1-based iteration number
            strategies: Chosen strategy index per player
            payoffs: Payoff per player
        """
        self.count += 1
        best = max(payoffs)
        for p in range(self.player_count):
            x = payoffs[p]
            s = strategies[p]
            self.sums[p] += x
            self.sums_sq[p] += x * x
            if x < self.minimum[p]:
                self.minimum[p] = x
            if x > self.maximum[p]:
                self.maximum[p] = x
            self.strategy_counts[p][s] += 1
            self.pending[p].append(x)
            self.interval_counts[p][s] += 1
            self.interval_payoffs[p][s] += x
            if x >= best and any(payoffs[q] < x for q in range(self.player_count) if q != p):
                self.interval_wins[p][s] += 1
        self.interval_rounds += 1

        if len(self.pending[0]) >= self.memory_config.chunk_size:
            self._flush()
        if iteration % self.evolution_interval == 0:
            self._record_evolution(iteration)

    def _flush(self):
        if not self.pending[0]:
            return
        chunk_id = f"samples_{len(self.chunk_ids)}"
        self.sample_store.add_chunk(chunk_id, self.pending, "low")
        self.chunk_ids.append(chunk_id)
        self.pending = [[] for _ in range(self.player_count)]

    def _record_evolution(self, iteration: int):
        rounds = max(1, self.interval_rounds)
        for p in range(self.player_count):
            for s, name in enumerate(self.strategy_names):
                chosen = self.interval_counts[p][s]
                frequency = chosen / rounds
                win_rate = self.interval_wins[p][s] / chosen if chosen else 0.0
                self.evolution.append({
                    "iteration": iteration,
                    "player": p,
                    "strategy": s,
                    "strategy_name": name,
                    "frequency": frequency,
                    "average_payoff": self.interval_payoffs[p][s] / chosen if chosen else 0.0,
                    "win_rate": win_rate,
                    "dominance_score": frequency * win_rate,
                })
        self._reset_interval()

    def samples(self, player: int) -> np.ndarray:
        """All retained payoff samples of a player (evicted chunks excluded)."""
        parts = []
        for chunk_id in self.chunk_ids:
            chunk = self.sample_store.get_chunk(chunk_id)
            if chunk is not None:
                parts.append(np.asarray(chunk[player], dtype=np.float64))
        parts.append(np.asarray(self.pending[player], dtype=np.float64))
        return np.concatenate(parts) if parts else np.zeros(0)

    def statistics(self) -> Dict[str, List]:
        means, variances, stds, intervals = [], [], [], []
        for p in range(self.player_count):
            mean, var = stats.running_moments(self.sums[p], self.sums_sq[p], self.count)
            means.append(mean)
            variances.append(var)
            stds.append(float(np.sqrt(var)))
            intervals.append(list(stats.confidence_interval(mean, var, self.count, self.confidence_level)))
        return {"mean": means, "variance": variances, "standard_deviation": stds,
                "confidence_interval": intervals}

    def distribution_statistics(self) -> List[Dict[str, Any]]:
        """
        Percentiles, skewness, excess kurtosis and mode per player.

        Returns:
            One dict per player (empty dicts before any iteration)
        """
        result = []
        for p in range(self.player_count):
            x = self.samples(p)
            if len(x) == 0:
                result.append({})
                continue
            constant = bool(np.all(x == x[0]))
            rounded = Counter(np.round(x, 2).tolist())
            top = max(rounded.values())
            mode = min(v for v, c in rounded.items() if c == top)
            result.append({
                "sample_count": int(len(x)),
                "min": float(x.min()),
                "max": float(x.max()),
                "percentiles": {q: float(v) for q, v in zip(PERCENTILES, np.percentile(x, PERCENTILES))},
                "skewness": 0.0 if constant else float(sp_stats.skew(x)),
                "kurtosis": 0.0 if constant else float(sp_stats.kurtosis(x, fisher=True)),
                "mode": float(mode),
            })
        return result

    def strategy_distribution(self) -> List[Dict[str, float]]:
        total = max(1, self.count)
        return [{name: self.strategy_counts[p][s] / total for s, name in enumerate(self.strategy_names)}
                for p in range(self.player_count)]

    def summary(self) -> Dict[str, Any]:
        return {
            "iterations": self.count,
            "statistics": self.statistics(),
            "distribution": self.distribution_statistics(),
            "strategy_distribution": self.strategy_distribution(),
            "evolution": list(self.evolution),
            "memory": self.sample_store.memory_stats(),
        }


def _expected_payoffs(result) -> List[float]:
    if isinstance(result, dict):
        return list(result["expected_payoffs"])
    return list(result.expected_payoffs)


class HistoricalComparison:
    """
    In-memory store of past session summaries for ranking new results.
    """

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def store_session(self, session_id: str, result, metadata: Optional[Dict[str, Any]] = None) -> None:
        iterations = result.get("actual_iterations") if isinstance(result, dict) \
            else getattr(result, "actual_iterations", None)
        self.sessions[session_id] = {
            "expected_payoffs": _expected_payoffs(result),
            "iterations": iterations,
            "metadata": dict(metadata or {}),
            "timestamp": time.time(),
        }

    def _matches(self, session: Dict[str, Any], criteria: Dict[str, Any]) -> bool:
        for key, value in criteria.items():
            if key == "min_iterations":
                if (session["iterations"] or 0) < value:
                    return False
            elif session["metadata"].get(key) != value:
                return False
        return True

    def compare(self, result, criteria: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Rank a result among stored sessions.

        Args:
            result: SimulationResult or dict carrying expected_payoffs
            criteria: Metadata equality filters; "min_iterations" filters on run length

        Returns:
            Dict with per-player percentile position and a similarity ranking
        """
        current = np.asarray(_expected_payoffs(result), dtype=np.float64)
        pool = {sid: s for sid, s in self.sessions.items() if self._matches(s, criteria or {})}
        if not pool:
            return {"sessions_compared": 0, "percentile": [], "similar_sessions": [], "most_similar": None}

        history = np.asarray([s["expected_payoffs"] for s in pool.values()], dtype=np.float64)
        percentile = [float(np.mean(history[:, p] < current[p]) * 100) for p in range(len(current))]

        scale = max(float(np.abs(history).max()), float(np.abs(current).max()), 1e-12)
        ranked = []
        for sid, vector in zip(pool, history):
            distance = float(np.linalg.norm((vector - current) / scale)) / np.sqrt(len(current))
            ranked.append({"session_id": sid, "similarity": 1.0 / (1.0 + distance)})
        ranked.sort(key=lambda r: r["similarity"], reverse=True)
        return {
            "sessions_compared": len(pool),
            "percentile": percentile,
            "similar_sessions": ranked,
            "most_similar": ranked[0]["session_id"],
        }
