"""
Convergence detection over streamed per-iteration payoffs.

The analyzer keeps three FIFO windows of payoff vectors (W/2, W and 2W) and,
once enough data is in, runs stability checks and four statistical tests
per player to decide whether the simulated estimate has settled.
"""
import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from gamesim.constants import (
    DEFAULT_WINDOW_SIZE,
    DEFAULT_MIN_ITERATIONS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_TOLERANCE,
    DEFAULT_STABILITY_THRESHOLD,
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_TRACE_LIMIT,
)
from gamesim.errors import ConfigurationError
from gamesim import stats

logger = logging.getLogger(__name__)

TEST_NAMES = ("mean_stability", "variance_equality", "runs", "autocorrelation")


@dataclass
class ConvergenceOptions:
    """
    Convergence analyzer settings.

    Attributes:
        window_size: Capacity W of the main window
        min_iterations: No verdict is given before this many iterations
        max_iterations: Past this iteration the analyzer always recommends stopping
        confidence_level: Level used for confidence intervals
        tolerance: Relative confidence-interval half-width reported as "precise"
        stability_threshold: Allowed relative change of the mean between windows
        variance_threshold: Allowed relative change of the variance between windows
        trend_threshold: Allowed normalized drift across the long window
        significance: p-value cutoff of the statistical tests
        check_interval: Iterations between two checks by the simulator
        early_stopping: Whether the simulator acts on a "stop" recommendation
        history_limit: Number of recent check results and trace points retained
    """
    window_size: int = DEFAULT_WINDOW_SIZE
    min_iterations: int = DEFAULT_MIN_ITERATIONS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    tolerance: float = DEFAULT_TOLERANCE
    stability_threshold: float = DEFAULT_STABILITY_THRESHOLD
    variance_threshold: float = 0.2
    trend_threshold: float = 0.25
    significance: float = 0.05
    check_interval: int = DEFAULT_CHECK_INTERVAL
    early_stopping: bool = True
    history_limit: int = DEFAULT_TRACE_LIMIT

    def validate(self):
        if self.window_size < 4:
            raise ConfigurationError("Convergence window_size must be at least 4")
        if self.min_iterations < 0 or self.max_iterations < self.min_iterations:
            raise ConfigurationError("Convergence iteration bounds are inconsistent")
        if not 0 < self.confidence_level < 1:
            raise ConfigurationError("confidence_level must be in (0, 1)")
        if self.check_interval < 1:
            raise ConfigurationError("check_interval must be positive")
        if self.history_limit < 1:
            raise ConfigurationError("history_limit must be positive")


class ConvergenceWindow:
    """Fixed-capacity FIFO of payoff vectors."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.buffer = deque(maxlen=capacity)

    def push(self, payoffs: Sequence[float]):
        self.buffer.append(tuple(payoffs))

    def is_full(self) -> bool:
        return len(self.buffer) == self.capacity

    def values(self, player: int) -> np.ndarray:
        return np.fromiter((p[player] for p in self.buffer), dtype=np.float64, count=len(self.buffer))

    def __len__(self):
        return len(self.buffer)


@dataclass
class PlayerStatistics:
    mean: float
    variance: float
    standard_error: float
    confidence_interval: List[float]
    precise: bool


@dataclass
class ConvergenceResult:
    """
    Verdict of one convergence check.

    Attributes:
        iteration: Iteration at which the check ran
        converged: All checks and tests passed for every player
        confidence: Weighted blend of passed tests and checks in [0, 1]
        recommended_action: "stop", "extend_window" or "continue"
        reason: Human-readable explanation
        player_statistics: Running statistics over the main window
        checks: Per player flags for the stability, variance and trend checks
        tests: Per player p-values / statistics and pass flags of the four tests
    """
    iteration: int
    converged: bool
    confidence: float
    recommended_action: str
    reason: str
    player_statistics: List[PlayerStatistics] = field(default_factory=list)
    checks: List[Dict[str, bool]] = field(default_factory=list)
    tests: List[Dict[str, Dict[str, Any]]] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


class ConvergenceAnalyzer:
    """
    Multi-window convergence analyzer.

    Attributes:
        options: Analyzer settings
        player_count: Length of every payoff vector
        short_window, main_window, long_window: Windows of capacity W/2, W and 2W
        history: Most recent ConvergenceResults (at most options.history_limit)
        confidence_trace: Most recent (iteration, confidence) pairs
        checks_run: Number of checks performed overall
    """

    def __init__(self, options: Optional[ConvergenceOptions] = None, player_count: int = 2):
        self.options = options or ConvergenceOptions()
        self.options.validate()
        self.player_count = player_count
        w = self.options.window_size
        self.short_window = ConvergenceWindow(max(2, w // 2))
        self.main_window = ConvergenceWindow(w)
        self.long_window = ConvergenceWindow(2 * w)
        self.totals = [0.0] * player_count
        self.totals_sq = [0.0] * player_count
        self.count = 0
        self.history = deque(maxlen=self.options.history_limit)
        self.confidence_trace = deque(maxlen=self.options.history_limit)
        self.checks_run = 0

    def add_iteration(self, payoffs: Sequence[float]):
        for window in (self.short_window, self.main_window, self.long_window):
            window.push(payoffs)
        for p in range(self.player_count):
            self.totals[p] += payoffs[p]
            self.totals_sq[p] += payoffs[p] * payoffs[p]
        self.count += 1

    def overall_statistics(self) -> List[PlayerStatistics]:
        return [self._statistics(*stats.running_moments(self.totals[p], self.totals_sq[p], self.count),
                                 self.count)
                for p in range(self.player_count)]

    def _statistics(self, mean: float, variance: float, n: int) -> PlayerStatistics:
        low, high = stats.confidence_interval(mean, variance, n, self.options.confidence_level)
        se = float(np.sqrt(variance / n)) if n > 0 else 0.0
        half = (high - low) / 2
        precise = half <= self.options.tolerance * max(abs(mean), 1e-12)
        return PlayerStatistics(mean, variance, se, [low, high], bool(precise))

    def _player_checks(self, player: int):
        opts = self.options
        short = self.short_window.values(player)
        main = self.main_window.values(player)
        long = self.long_window.values(player)

        main_mean, main_var = float(main.mean()), float(main.var(ddof=1))
        scale = max(abs(main_mean), float(np.sqrt(main_var)), 1e-12)
        stable = abs(float(short.mean()) - main_mean) / scale < opts.stability_threshold

        short_var = float(short.var(ddof=1))
        if main_var == 0 and short_var == 0:
            variance_stable = True
        else:
            variance_stable = stats.relative_change(main_var, short_var) < opts.variance_threshold

        trend_stable = abs(stats.normalized_slope(long)) < opts.trend_threshold

        half = len(long) // 2
        first, second = long[:half], long[half:]
        welch_p = stats.welch_test(first, second)
        f_p = stats.variance_ratio_test(first, second)
        runs_p = stats.runs_test(main)
        r = stats.autocorrelation(main, 1)
        bound = stats.autocorrelation_bound(len(main), opts.confidence_level)
        tests = {
            "mean_stability": {"p_value": welch_p, "passed": welch_p > opts.significance},
            "variance_equality": {"p_value": f_p, "passed": f_p > opts.significance},
            "runs": {"p_value": runs_p, "passed": runs_p > opts.significance},
            "autocorrelation": {"statistic": r, "bound": bound, "passed": abs(r) < bound},
        }
        checks = {"stability": bool(stable), "variance": bool(variance_stable), "trend": bool(trend_stable)}
        return self._statistics(main_mean, main_var, len(main)), checks, tests

    def check_convergence(self, iteration: int) -> ConvergenceResult:
        """
        Evaluate convergence at the given iteration.

        Args:
            iteration: Number of iterations completed so far

        Returns:
            ConvergenceResult; "not converged" with action "continue" until
            min_iterations is reached and the main window is full
        """
        opts = self.options
        if iteration < opts.min_iterations or not self.main_window.is_full():
            if iteration >= opts.max_iterations:
                result = ConvergenceResult(iteration, False, 0.0, "stop", "Maximum iterations reached")
            else:
                result = ConvergenceResult(iteration, False, 0.0, "continue", "Insufficient data")
            self._record(result)
            return result

        player_stats, checks, tests = [], [], []
        for p in range(self.player_count):
            s, c, t = self._player_checks(p)
            player_stats.append(s)
            checks.append(c)
            tests.append(t)

        n = self.player_count
        tests_passed = sum(t[name]["passed"] for t in tests for name in TEST_NAMES) / (n * len(TEST_NAMES))
        stability = sum(c["stability"] for c in checks) / n
        variance = sum(c["variance"] for c in checks) / n
        trend = sum(c["trend"] for c in checks) / n
        confidence = 0.4 * tests_passed + 0.3 * stability + 0.2 * variance + 0.1 * trend
        converged = tests_passed == 1.0 and stability == 1.0 and variance == 1.0 and trend == 1.0

        if converged and confidence > 0.8:
            action = "stop"
            reason = f"Converged at iteration {iteration} with confidence {confidence:.3f}"
        elif iteration >= opts.max_iterations:
            action = "stop"
            reason = "Maximum iterations reached"
        elif confidence > 0.6 and iteration >= 2 * opts.min_iterations:
            action = "extend_window"
            reason = f"Moderate confidence {confidence:.3f}; more data needed"
        else:
            action = "continue"
            reason = f"Not converged (confidence {confidence:.3f})"

        result = ConvergenceResult(iteration, bool(converged), float(confidence), action, reason,
                                   player_stats, checks, tests)
        self._record(result)
        logger.debug(f"Convergence check @ {iteration}: {action} ({confidence:.3f})")
        return result

    def _record(self, result: ConvergenceResult) -> None:
        self.history.append(result)
        self.confidence_trace.append((result.iteration, result.confidence))
        self.checks_run += 1

    def summary(self) -> Dict[str, Any]:
        last = self.history[-1] if self.history else None
        return {
            "checks": self.checks_run,
            "converged": bool(last and last.converged),
            "confidence": last.confidence if last else 0.0,
            "recommended_action": last.recommended_action if last else "continue",
            "reason": last.reason if last else "No convergence check performed",
            "overall": [asdict(s) for s in self.overall_statistics()] if self.count else [],
            "confidence_trace": list(self.confidence_trace),
        }
