"""
Player rules: how a player chooses a strategy each iteration.

A rule is one of PureRule, MixedRule, AdaptiveRule or BehavioralRule. Rules are
immutable for the lifetime of a run; any mutable memory lives in the agent the
StrategyEngine builds from the rule.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


class Archetype(str, Enum):
    RATIONAL = "rational"
    TIT_FOR_TAT = "tit_for_tat"
    GRUDGER = "grudger"
    PAVLOV = "pavlov"
    AGGRESSIVE = "aggressive"
    COOPERATIVE = "cooperative"
    RANDOM = "random"

    @classmethod
    def parse(cls, value) -> "Archetype":
        """Accept enum members and loose spellings like "tit-for-tat"."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {"titfortat": "tit_for_tat", "tft": "tit_for_tat"}
        return cls(aliases.get(key, key))


@dataclass(frozen=True)
class PureRule:
    strategy_index: int


@dataclass(frozen=True)
class MixedRule:
    """Probabilities may be None (uniform) or not sum to 1 (renormalized)."""
    probabilities: Optional[Tuple[float, ...]] = None

    def __post_init__(self):
        if self.probabilities is not None:
            object.__setattr__(self, "probabilities", tuple(float(p) for p in self.probabilities))


@dataclass(frozen=True)
class AdaptiveParams:
    """
    Parameters of the belief-updating learner.

    Attributes:
        learning_rate: Weight kept on the previous belief each update
        exploration_rate: Amplitude of the uniform exploration noise
        memory_length: Capacity of the (strategy, payoff) memory
        initial_belief: Starting distribution (uniform when None)
    """
    learning_rate: float = 0.1
    exploration_rate: float = 0.05
    memory_length: int = 20
    initial_belief: Optional[Tuple[float, ...]] = None

    def __post_init__(self):
        if self.initial_belief is not None:
            object.__setattr__(self, "initial_belief", tuple(float(p) for p in self.initial_belief))


@dataclass(frozen=True)
class AdaptiveRule:
    params: AdaptiveParams = field(default_factory=AdaptiveParams)


@dataclass(frozen=True)
class BehavioralRule:
    archetype: Archetype

    def __post_init__(self):
        object.__setattr__(self, "archetype", Archetype.parse(self.archetype))


PlayerRule = Union[PureRule, MixedRule, AdaptiveRule, BehavioralRule]
