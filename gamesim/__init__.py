"""
gamesim: Monte Carlo simulation and equilibrium analysis for finite
strategic-form games.

Public symbols are resolved lazily so that importing the package (for
example inside a spawned worker process) does not pull in torch and scipy
until a solver or the simulator is actually used.
"""

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

_LAZY = {
    # Errors
    "GameSimError": "gamesim.errors",
    "ConfigurationError": "gamesim.errors",
    "UnknownGeneratorError": "gamesim.errors",
    "NoStateError": "gamesim.errors",
    "AnalysisError": "gamesim.errors",
    # Core model
    "PayoffGame": "gamesim.core.game",
    "RNGManager": "gamesim.rng.generators",
    # Player rules
    "PureRule": "gamesim.agent.rules",
    "MixedRule": "gamesim.agent.rules",
    "AdaptiveRule": "gamesim.agent.rules",
    "AdaptiveParams": "gamesim.agent.rules",
    "BehavioralRule": "gamesim.agent.rules",
    "Archetype": "gamesim.agent.rules",
    # Simulation
    "SimulationConfig": "gamesim.simulator.config",
    "MonteCarloSimulator": "gamesim.simulator.monte_carlo",
    "SimulationResult": "gamesim.simulator.monte_carlo",
    "run_parallel": "gamesim.simulator.workers",
    # Solvers
    "NashEquilibrium": "gamesim.solvers.equilibria",
    "find_pure_nash_equilibria": "gamesim.solvers.equilibria",
    "find_mixed_nash_equilibria": "gamesim.solvers.equilibria",
    "find_approximate_nash_equilibria": "gamesim.solvers.equilibria",
    "analyze_dominance": "gamesim.solvers.dominance",
    "analyze_ess": "gamesim.solvers.ess",
    "validate_equilibrium": "gamesim.solvers.validator",
    "analyze_game": "gamesim.solvers.analysis",
    "calculate_best_response": "gamesim.solvers.best_response",
    "analyze_best_response": "gamesim.solvers.best_response",
}

__all__ = list(_LAZY)


def __getattr__(name: str) -> Any:
    """Import public symbols on first access."""
    if name in _LAZY:
        return getattr(import_module(_LAZY[name]), name)
    raise AttributeError(f"module 'gamesim' has no attribute '{name}'")
