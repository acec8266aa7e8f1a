from abc import ABC, abstractmethod
from typing import Any, Dict, List

from gamesim.rng.generators import RNGManager


class Agent(ABC):
    def __init__(self, player: int, num_strategies: int):
        self.player = player
        self.num_strategies = num_strategies

    @abstractmethod
    def select(self, iteration: int, rng: RNGManager) -> int:
        pass

    def observe(self, strategies: List[int], payoffs: List[float], rng: RNGManager) -> None:
        pass

    def reset(self):
        pass

    def snapshot(self) -> Dict[str, Any]:
        return {}

    def restore(self, state: Dict[str, Any]) -> None:
        pass


def sample_index(probabilities: List[float], rng: RNGManager) -> int:
    """Inverse-transform sample from a normalized distribution using one draw."""
    u = rng.next()
    cumulative = 0.0
    for i, p in enumerate(probabilities):
        cumulative += p
        if u < cumulative:
            return i
    # Rounding left the cumulative sum just below 1
    for i in range(len(probabilities) - 1, -1, -1):
        if probabilities[i] > 0:
            return i
    return len(probabilities) - 1


def normalize(values: List[float]) -> List[float]:
    total = sum(values)
    if total <= 0:
        return [1.0 / len(values)] * len(values)
    return [v / total for v in values]
