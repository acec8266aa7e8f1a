"""
Interruption snapshot of a simulation run.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gamesim.analysis.convergence import ConvergenceAnalyzer
from gamesim.analysis.results import ResultsAggregator


@dataclass
class SimulationState:
    """
    Everything needed to continue an interrupted run.

    Attributes:
        iteration: Iterations completed before the interruption
        requested_iterations: Target of the run
        outcomes: Joint-key outcome counts
        strategy_frequencies: Joint-key strategy counts
        player_payoffs: Payoff sum per player
        convergence_data: Sampled (iteration, strategies) points
        rng_state: Full generator state (kind, seed, position)
        engine_state: Per-agent memories
        aggregator: Copy of the results aggregator
        analyzer: Copy of the convergence analyzer (None when disabled)
        history: Bounded iteration history when tracked
        progress: Last reported progress percent
        elapsed: Seconds spent before the interruption
    """
    iteration: int
    requested_iterations: int
    outcomes: Dict[str, int]
    strategy_frequencies: Dict[str, int]
    player_payoffs: List[float]
    convergence_data: List[Dict[str, Any]]
    rng_state: Dict[str, Any]
    engine_state: List[Dict[str, Any]]
    aggregator: ResultsAggregator
    analyzer: Optional[ConvergenceAnalyzer] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    progress: float = 0.0
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data portion of the snapshot (JSON serialisable)."""
        return {
            "iteration": self.iteration,
            "requested_iterations": self.requested_iterations,
            "outcomes": dict(self.outcomes),
            "strategy_frequencies": dict(self.strategy_frequencies),
            "player_payoffs": list(self.player_payoffs),
            "convergence_data": list(self.convergence_data),
            "rng_state": self.rng_state,
            "engine_state": self.engine_state,
            "history": list(self.history),
            "progress": self.progress,
            "elapsed": self.elapsed,
        }
