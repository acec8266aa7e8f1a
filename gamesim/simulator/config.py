"""
Typed configuration payload of a simulation run.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from gamesim.agent.engine import validate_rule
from gamesim.agent.rules import (
    PlayerRule, PureRule, MixedRule, AdaptiveRule, BehavioralRule, Archetype,
)
from gamesim.analysis.convergence import ConvergenceOptions
from gamesim.constants import DEFAULT_BATCH_SIZE, DEFAULT_HISTORY_LIMIT
from gamesim.core.game import validate_payoff_tensor
from gamesim.errors import ConfigurationError, UnknownGeneratorError
from gamesim.memory.streaming import MemoryConfig
from gamesim.rng.generators import GENERATORS

ProgressCallback = Callable[..., None]


@dataclass
class SimulationConfig:
    """
    Everything a MonteCarloSimulator needs for one run.

    Attributes:
        payoff_tensor: Nested [row][col][player] payoffs
        strategy_names: One name per strategy (shared by both players)
        player_rules: One rule per player
        iterations: Requested number of iterations
        player_count: Number of players (only 2 is supported)
        batch_size: Iterations between two yields / progress reports
        rng_kind: "mersenne", "lcg" or "xorshift"
        seed: RNG seed (time-derived when None)
        convergence: Convergence analyzer options; no analysis when None
        on_progress: Called as on_progress(percent, snapshot) at batch boundaries
        track_history: Keep a bounded per-iteration history
        history_limit: Capacity of that history
        show_progress: Display a tqdm progress bar
        verbose: Configure INFO logging for the run
        analyze_equilibria: Attach solver results to advanced_results
        memory_config: Settings of the raw sample store
    """
    payoff_tensor: Sequence
    strategy_names: Sequence[str]
    player_rules: Sequence[PlayerRule]
    iterations: int
    player_count: int = 2
    batch_size: int = DEFAULT_BATCH_SIZE
    rng_kind: str = "mersenne"
    seed: Optional[int] = None
    convergence: Optional[ConvergenceOptions] = None
    on_progress: Optional[ProgressCallback] = None
    track_history: bool = False
    history_limit: int = DEFAULT_HISTORY_LIMIT
    show_progress: bool = False
    verbose: bool = False
    analyze_equilibria: bool = False
    memory_config: Optional[MemoryConfig] = None
    metadata: dict = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ConfigurationError for any malformed field."""
        if isinstance(self.iterations, bool) or not isinstance(self.iterations, int):
            raise ConfigurationError(f"iterations must be an integer, got {self.iterations!r}")
        if self.iterations <= 0:
            raise ConfigurationError(f"iterations must be positive, got {self.iterations}")
        rows, cols = validate_payoff_tensor(self.payoff_tensor, self.player_count)
        if rows != cols:
            raise ConfigurationError(f"Payoff tensor must be square, got {rows}x{cols}")
        if len(self.strategy_names) != rows:
            raise ConfigurationError(
                f"{len(self.strategy_names)} strategy names given for {rows} strategies")
        if len(self.player_rules) != self.player_count:
            raise ConfigurationError(
                f"{len(self.player_rules)} player rules given for {self.player_count} players")
        for player, rule in enumerate(self.player_rules):
            validate_rule(rule, player, rows)
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be positive")
        if self.history_limit < 1:
            raise ConfigurationError("history_limit must be positive")
        if str(self.rng_kind).lower() not in GENERATORS:
            raise UnknownGeneratorError(self.rng_kind)
        if self.convergence is not None:
            self.convergence.validate()

    @classmethod
    def from_legacy(cls, payoff_tensor, strategy_names: Sequence[str], player_strategies: Sequence[str],
                    iterations: int, mixed_strategies: Optional[List[Optional[List[float]]]] = None,
                    **kwargs: Any) -> "SimulationConfig":
        """
        Build a config from per-player strategy labels.

        Each label is "mixed" (probabilities taken from mixed_strategies, uniform
        when missing), "adaptive", an archetype name, or a strategy name
        (case-insensitive) for a pure rule.

        Args:
            payoff_tensor: Nested payoffs
            strategy_names: Strategy names
            player_strategies: One label per player
            iterations: Requested iterations
            mixed_strategies: Optional probability vectors per player
            **kwargs: Remaining SimulationConfig fields

        Returns:
            SimulationConfig
        """
        lowered = [name.lower() for name in strategy_names]
        archetypes = {a.value for a in Archetype}
        rules: List[PlayerRule] = []
        for player, label in enumerate(player_strategies):
            key = str(label).strip().lower()
            if key == "mixed":
                probs = None
                if mixed_strategies is not None and player < len(mixed_strategies):
                    probs = mixed_strategies[player]
                rules.append(MixedRule(probs))
            elif key == "adaptive":
                rules.append(AdaptiveRule())
            elif key in lowered:
                rules.append(PureRule(lowered.index(key)))
            elif key.replace("-", "_").replace(" ", "_") in archetypes:
                rules.append(BehavioralRule(Archetype.parse(key)))
            else:
                raise ConfigurationError(f"Player {player}: unknown strategy label {label!r}")
        return cls(payoff_tensor=payoff_tensor, strategy_names=list(strategy_names),
                   player_rules=rules, iterations=iterations, **kwargs)
