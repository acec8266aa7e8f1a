"""
Strategy selection engine.

Turns each player's rule into an agent and asks the agents for a strategy
index every iteration. All randomness comes from the run's RNGManager.
"""
from typing import Any, Dict, List, Sequence

from gamesim.agent.agent import Agent
from gamesim.agent.behaviors import PureAgent, MixedAgent, AdaptiveAgent, BehavioralAgent
from gamesim.agent.rules import PlayerRule, PureRule, MixedRule, AdaptiveRule, BehavioralRule
from gamesim.core.game import PayoffGame
from gamesim.errors import ConfigurationError
from gamesim.rng.generators import RNGManager


def validate_rule(rule: PlayerRule, player: int, num_strategies: int) -> None:
    """
    Check that a rule fits a game with num_strategies strategies per player.

    Args:
        rule: The player's rule
        player: Player index (for error messages)
        num_strategies: Strategies available to the player
    """
    if isinstance(rule, PureRule):
        if not 0 <= rule.strategy_index < num_strategies:
            raise ConfigurationError(
                f"Player {player}: pure strategy index {rule.strategy_index} out of range [0, {num_strategies})")
    elif isinstance(rule, MixedRule):
        probs = rule.probabilities
        if probs is not None:
            if len(probs) != num_strategies:
                raise ConfigurationError(
                    f"Player {player}: mixed strategy has {len(probs)} probabilities, expected {num_strategies}")
            if any(p < 0 for p in probs) or sum(probs) <= 0:
                raise ConfigurationError(f"Player {player}: mixed strategy must be non-negative with positive mass")
    elif isinstance(rule, AdaptiveRule):
        params = rule.params
        if not 0.0 <= params.learning_rate <= 1.0:
            raise ConfigurationError(f"Player {player}: learning_rate must be in [0, 1]")
        if params.exploration_rate < 0:
            raise ConfigurationError(f"Player {player}: exploration_rate must be non-negative")
        if params.memory_length < 1:
            raise ConfigurationError(f"Player {player}: memory_length must be at least 1")
        if params.initial_belief is not None and len(params.initial_belief) != num_strategies:
            raise ConfigurationError(
                f"Player {player}: initial_belief has {len(params.initial_belief)} entries, expected {num_strategies}")
    elif isinstance(rule, BehavioralRule):
        pass
    else:
        raise ConfigurationError(f"Player {player}: unsupported rule {rule!r}")


def build_agent(rule: PlayerRule, player: int, game: PayoffGame) -> Agent:
    num_strategies = game.shape[player]
    if isinstance(rule, PureRule):
        return PureAgent(player, num_strategies, rule.strategy_index)
    if isinstance(rule, MixedRule):
        probs = list(rule.probabilities) if rule.probabilities is not None else None
        return MixedAgent(player, num_strategies, probs)
    if isinstance(rule, AdaptiveRule):
        return AdaptiveAgent(player, num_strategies, rule.params)
    if isinstance(rule, BehavioralRule):
        return BehavioralAgent(player, num_strategies, rule.archetype,
                               game.player_matrix(player).tolist())
    raise ConfigurationError(f"Player {player}: unsupported rule {rule!r}")


class StrategyEngine:
    """
    Owns one agent per player for the lifetime of a run.

    Attributes:
        game: The game being played
        rules: One rule per player
        rng: Shared random source of the run
        agents: Agents built from the rules
    """

    def __init__(self, game: PayoffGame, rules: Sequence[PlayerRule], rng: RNGManager):
        if len(rules) != game.num_players:
            raise ConfigurationError(f"Expected {game.num_players} player rules, got {len(rules)}")
        for player, rule in enumerate(rules):
            validate_rule(rule, player, game.shape[player])
        self.game = game
        self.rules = list(rules)
        self.rng = rng
        self.agents = [build_agent(rule, player, game) for player, rule in enumerate(rules)]

    def select_strategy(self, player: int, iteration: int) -> int:
        return self.agents[player].select(iteration, self.rng)

    def select_all(self, iteration: int) -> List[int]:
        return [self.select_strategy(player, iteration) for player in range(len(self.agents))]

    def observe(self, strategies: List[int], payoffs: List[float]) -> None:
        for agent in self.agents:
            agent.observe(strategies, payoffs, self.rng)

    def reset(self):
        for agent in self.agents:
            agent.reset()

    def snapshot(self) -> List[Dict[str, Any]]:
        return [agent.snapshot() for agent in self.agents]

    def restore(self, states: List[Dict[str, Any]]) -> None:
        for agent, state in zip(self.agents, states):
            agent.restore(state)
