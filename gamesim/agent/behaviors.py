"""
Concrete agents for each player rule.

Cooperation is strategy 0 and defection is strategy 1 (strategy 0 in a
one-strategy game); any move other than strategy 0 counts as a defection when
an archetype reacts to the opponent.
"""
from collections import deque
from typing import Any, Dict, List, Optional

from gamesim.agent.agent import Agent, sample_index, normalize
from gamesim.agent.rules import AdaptiveParams, Archetype
from gamesim.constants import F64_EPSILON
from gamesim.rng.generators import RNGManager

COOPERATE = 0

# Share of probability mass on the favoured strategy for the skewed archetypes
SKEW_WEIGHT = 0.8


def defect_index(num_strategies: int) -> int:
    return min(1, num_strategies - 1)


def skewed_distribution(num_strategies: int, favoured: int, weight: float = SKEW_WEIGHT) -> List[float]:
    """
    A distribution putting `weight` on one strategy and spreading the rest.

    Args:
        num_strategies: Size of the distribution
        favoured: Index receiving the concentrated mass
        weight: Mass on the favoured index

    Returns:
        Probability list summing to 1
    """
    if num_strategies == 1:
        return [1.0]
    rest = (1.0 - weight) / (num_strategies - 1)
    return [weight if i == favoured else rest for i in range(num_strategies)]


class PureAgent(Agent):
    def __init__(self, player: int, num_strategies: int, strategy_index: int):
        super().__init__(player, num_strategies)
        self.strategy_index = strategy_index

    def select(self, iteration: int, rng: RNGManager) -> int:
        return self.strategy_index


class MixedAgent(Agent):
    def __init__(self, player: int, num_strategies: int, probabilities: Optional[List[float]] = None):
        super().__init__(player, num_strategies)
        if probabilities is None:
            self.probabilities = [1.0 / num_strategies] * num_strategies
        else:
            self.probabilities = normalize([max(0.0, float(p)) for p in probabilities])

    def select(self, iteration: int, rng: RNGManager) -> int:
        return sample_index(self.probabilities, rng)


class AdaptiveAgent(Agent):
    """
    Belief-updating learner over a bounded (strategy, payoff) memory.

    Each observation updates the belief as
    belief * learning_rate + fitness * (1 - learning_rate) + noise
    where fitness is the min-shifted mean payoff of each strategy in memory,
    normalized to a distribution, and noise is uniform in
    [-exploration_rate / 2, exploration_rate / 2] per strategy.
    """

    def __init__(self, player: int, num_strategies: int, params: AdaptiveParams):
        super().__init__(player, num_strategies)
        self.params = params
        self.reset()

    def reset(self):
        if self.params.initial_belief is not None:
            self.prior = normalize([max(0.0, p) for p in self.params.initial_belief])
        else:
            self.prior = [1.0 / self.num_strategies] * self.num_strategies
        self.belief = list(self.prior)
        self.memory = deque(maxlen=max(1, self.params.memory_length))

    def select(self, iteration: int, rng: RNGManager) -> int:
        return sample_index(self.belief, rng)

    def fitness(self) -> List[float]:
        totals = [0.0] * self.num_strategies
        counts = [0] * self.num_strategies
        for strategy, payoff in self.memory:
            totals[strategy] += payoff
            counts[strategy] += 1
        means = [t / c if c else 0.0 for t, c in zip(totals, counts)]
        floor = min(means)
        return [m - floor for m in means]

    def observe(self, strategies: List[int], payoffs: List[float], rng: RNGManager) -> None:
        self.memory.append((strategies[self.player], payoffs[self.player]))
        fitness = self.fitness()
        if sum(fitness) <= 0:
            target = self.belief
        else:
            target = normalize(fitness)
        lr = self.params.learning_rate
        updated = []
        for b, f in zip(self.belief, target):
            noise = self.params.exploration_rate * (rng.next() - 0.5)
            updated.append(max(F64_EPSILON, b * lr + f * (1.0 - lr) + noise))
        self.belief = normalize(updated)

    def snapshot(self) -> Dict[str, Any]:
        return {"belief": list(self.belief), "memory": list(self.memory)}

    def restore(self, state: Dict[str, Any]) -> None:
        self.belief = list(state["belief"])
        self.memory = deque((tuple(m) for m in state["memory"]), maxlen=self.memory.maxlen)


class BehavioralAgent(Agent):
    """
    Named heuristics reacting to the opponent's move history.

    Attributes:
        archetype: Which heuristic to play
        payoff_matrix: Own payoffs indexed [own strategy][opponent strategy]
    """

    def __init__(self, player: int, num_strategies: int, archetype: Archetype,
                 payoff_matrix: List[List[float]]):
        super().__init__(player, num_strategies)
        self.archetype = archetype
        self.payoff_matrix = payoff_matrix
        self.opponent = (player + 1) % 2
        self.defect = defect_index(num_strategies)
        self.reset()

    def reset(self):
        self.last_own: Optional[int] = None
        self.last_opponent: Optional[int] = None
        self.last_payoff: Optional[float] = None
        self.payoff_sum = 0.0
        self.rounds = 0
        self.opponent_defected = False
        self.opponent_counts = [0] * len(self.payoff_matrix[0])

    def select(self, iteration: int, rng: RNGManager) -> int:
        archetype = self.archetype
        if archetype is Archetype.TIT_FOR_TAT:
            if self.last_opponent is None:
                return COOPERATE
            return min(self.last_opponent, self.num_strategies - 1)
        if archetype is Archetype.GRUDGER:
            return self.defect if self.opponent_defected else COOPERATE
        if archetype is Archetype.PAVLOV:
            if self.last_own is None:
                return COOPERATE
            if self.last_payoff >= self.payoff_sum / self.rounds:
                return self.last_own
            return (self.last_own + 1) % self.num_strategies
        if archetype is Archetype.RATIONAL:
            return self.best_response()
        if archetype is Archetype.AGGRESSIVE:
            return sample_index(skewed_distribution(self.num_strategies, self.defect), rng)
        if archetype is Archetype.COOPERATIVE:
            return sample_index(skewed_distribution(self.num_strategies, COOPERATE), rng)
        if archetype is Archetype.RANDOM:
            return rng.next_int(self.num_strategies)
        raise ValueError(f"Unhandled archetype: {archetype!r}")

    def best_response(self) -> int:
        """Best response to the opponent's empirical frequencies (uniform before any move)."""
        if self.rounds == 0:
            beliefs = [1.0] * len(self.opponent_counts)
        else:
            beliefs = self.opponent_counts
        values = [sum(p * w for p, w in zip(row, beliefs)) for row in self.payoff_matrix]
        return max(range(len(values)), key=lambda i: (values[i], -i))

    def observe(self, strategies: List[int], payoffs: List[float], rng: RNGManager) -> None:
        opponent_move = strategies[self.opponent]
        self.last_own = strategies[self.player]
        self.last_opponent = opponent_move
        self.last_payoff = payoffs[self.player]
        self.payoff_sum += payoffs[self.player]
        self.rounds += 1
        self.opponent_counts[opponent_move] += 1
        if opponent_move != COOPERATE:
            self.opponent_defected = True

    def snapshot(self) -> Dict[str, Any]:
        return {
            "last_own": self.last_own,
            "last_opponent": self.last_opponent,
            "last_payoff": self.last_payoff,
            "payoff_sum": self.payoff_sum,
            "rounds": self.rounds,
            "opponent_defected": self.opponent_defected,
            "opponent_counts": list(self.opponent_counts),
        }

    def restore(self, state: Dict[str, Any]) -> None:
        for key, value in state.items():
            setattr(self, key, list(value) if isinstance(value, list) else value)
