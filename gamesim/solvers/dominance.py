"""
Strict and weak dominance analysis with iterated elimination of strictly
dominated strategies.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Sequence, Tuple

import torch

from gamesim.constants import MAX_ELIMINATION_ROUNDS
from gamesim.solvers.equilibria import GameLike, as_game

logger = logging.getLogger(__name__)

STRICT = "strict"
WEAK = "weak"


@dataclass(frozen=True)
class DominanceRecord:
    player: int
    strategy: int
    dominated_by: Tuple[int, ...]


@dataclass(frozen=True)
class DominantStrategy:
    player: int
    strategy: int
    kind: str


@dataclass(frozen=True)
class EliminationStep:
    """
    One round of iterated elimination.

    Attributes:
        step: 1-based round number
        eliminated: (player, strategy) pairs removed this round
        remaining: Surviving strategy indices per player after the round
        reduced_tensor: Payoff tensor restricted to the survivors
    """
    step: int
    eliminated: Tuple[Tuple[int, int], ...]
    remaining: Tuple[Tuple[int, ...], ...]
    reduced_tensor: Tuple


@dataclass(frozen=True)
class DominanceAnalysis:
    """
    Result of analyze_dominance.

    Attributes:
        strictly_dominant: Strategies strictly better than every alternative
        weakly_dominant: Strategies weakly better than every alternative (strict ones excluded)
        strictly_dominated: Strategies with at least one strict dominator
        weakly_dominated: Strategies with at least one weak dominator (strict dominators count)
        elimination_steps: Rounds of iterated strict elimination
        remaining: Survivors per player
        reduced_tensor: Payoff tensor over the survivors
        solvable: Exactly one strategy survives for every player
        explanation: Human-readable account of the analysis
        recommendations: Suggested play for each player
    """
    strictly_dominant: Tuple[DominantStrategy, ...]
    weakly_dominant: Tuple[DominantStrategy, ...]
    strictly_dominated: Tuple[DominanceRecord, ...]
    weakly_dominated: Tuple[DominanceRecord, ...]
    elimination_steps: Tuple[EliminationStep, ...]
    remaining: Tuple[Tuple[int, ...], ...]
    reduced_tensor: Tuple
    solvable: bool
    explanation: Tuple[str, ...] = field(default_factory=tuple)
    recommendations: Tuple[str, ...] = field(default_factory=tuple)

    def dominant_strategies(self, player: int) -> List[int]:
        return [d.strategy for d in self.strictly_dominant if d.player == player]

    def dominated_strategies(self, player: int) -> List[int]:
        return [d.strategy for d in self.strictly_dominated if d.player == player]

    def to_dict(self):
        return asdict(self)


def compare_strategies(matrix: torch.Tensor, a: int, b: int,
                       opponents: Optional[Sequence[int]] = None) -> Optional[str]:
    """
    How strategy a compares with strategy b across opponent strategies.

    Args:
        matrix: Own payoffs indexed [own strategy][opponent strategy]
        a: Candidate dominator
        b: Candidate dominated strategy
        opponents: Opponent strategies to compare over (all when None)

    Returns:
        "strict" if a is better everywhere, "weak" if at least as good
        everywhere and better somewhere, None otherwise
    """
    cols = list(opponents) if opponents is not None else list(range(matrix.shape[1]))
    diff = matrix[a, cols] - matrix[b, cols]
    if bool(torch.all(diff > 0)):
        return STRICT
    if bool(torch.all(diff >= 0)) and bool(torch.any(diff > 0)):
        return WEAK
    return None


def _dominated_in(matrix: torch.Tensor, own: Sequence[int], opponents: Sequence[int]) -> List[int]:
    return [b for b in own
            if any(a != b and compare_strategies(matrix, a, b, opponents) == STRICT for a in own)]


def _restrict(game, rows: Sequence[int], cols: Sequence[int]) -> Tuple:
    return tuple(tuple(tuple(cell) for cell in row) for row in game.restrict(rows, cols))


def analyze_dominance(tensor: GameLike, strategy_names: Optional[Sequence[str]] = None,
                      max_rounds: int = MAX_ELIMINATION_ROUNDS) -> DominanceAnalysis:
    """
    Find dominant and dominated strategies and run iterated elimination of
    strictly dominated strategies.

    Args:
        tensor: Payoff tensor or PayoffGame
        strategy_names: Names used in the explanation (game names when None)
        max_rounds: Safety cap on elimination rounds

    Returns:
        DominanceAnalysis
    """
    game = as_game(tensor)
    names = list(strategy_names) if strategy_names is not None else game.strategy_names
    matrices = [game.player_matrix(0), game.player_matrix(1)]

    strictly_dominant, weakly_dominant = [], []
    strictly_dominated, weakly_dominated = [], []
    for player, matrix in enumerate(matrices):
        n = matrix.shape[0]
        for s in range(n):
            strict_by = [a for a in range(n) if a != s and compare_strategies(matrix, a, s) == STRICT]
            weak_by = [a for a in range(n) if a != s and compare_strategies(matrix, a, s) in (STRICT, WEAK)]
            if strict_by:
                strictly_dominated.append(DominanceRecord(player, s, tuple(strict_by)))
            if weak_by:
                weakly_dominated.append(DominanceRecord(player, s, tuple(weak_by)))
            relations = [compare_strategies(matrix, s, b) for b in range(n) if b != s]
            if n > 1 and all(r == STRICT for r in relations):
                strictly_dominant.append(DominantStrategy(player, s, STRICT))
            elif n > 1 and all(r in (STRICT, WEAK) for r in relations):
                weakly_dominant.append(DominantStrategy(player, s, WEAK))

    # Iterated elimination over both players simultaneously each round
    active = [list(range(game.shape[0])), list(range(game.shape[1]))]
    steps = []
    for round_number in range(1, max_rounds + 1):
        removed_rows = _dominated_in(matrices[0], active[0], active[1])
        removed_cols = _dominated_in(matrices[1], active[1], active[0])
        if not removed_rows and not removed_cols:
            break
        active = [[s for s in active[0] if s not in removed_rows],
                  [s for s in active[1] if s not in removed_cols]]
        eliminated = tuple([(0, s) for s in removed_rows] + [(1, s) for s in removed_cols])
        steps.append(EliminationStep(round_number, eliminated, (tuple(active[0]), tuple(active[1])),
                                     _restrict(game, active[0], active[1])))
    else:
        logger.warning(f"Elimination stopped at the {max_rounds}-round cap")

    solvable = len(active[0]) == 1 and len(active[1]) == 1

    def label(player, s):
        return names[s] if s < len(names) else f"S{s}"

    explanation = []
    for d in strictly_dominant:
        explanation.append(f"Player {d.player + 1}: {label(d.player, d.strategy)} strictly dominates every alternative")
    for d in weakly_dominant:
        explanation.append(f"Player {d.player + 1}: {label(d.player, d.strategy)} weakly dominates every alternative")
    for r in strictly_dominated:
        by = ", ".join(label(r.player, a) for a in r.dominated_by)
        explanation.append(f"Player {r.player + 1}: {label(r.player, r.strategy)} is strictly dominated by {by}")
    for step in steps:
        removed = ", ".join(f"P{p + 1}:{label(p, s)}" for p, s in step.eliminated)
        explanation.append(f"Round {step.step}: eliminated {removed}")
    if not explanation:
        explanation.append("No dominance relations found")

    recommendations = []
    for player in range(2):
        dominant = [d.strategy for d in strictly_dominant if d.player == player]
        if dominant:
            recommendations.append(f"Player {player + 1} should always play {label(player, dominant[0])}")
        elif len(active[player]) == 1:
            recommendations.append(
                f"Player {player + 1} should play {label(player, active[player][0])} "
                "(the only strategy surviving iterated elimination)")
        else:
            survivors = ", ".join(label(player, s) for s in active[player])
            recommendations.append(f"Player {player + 1} should choose among {survivors}")

    return DominanceAnalysis(
        strictly_dominant=tuple(strictly_dominant),
        weakly_dominant=tuple(weakly_dominant),
        strictly_dominated=tuple(strictly_dominated),
        weakly_dominated=tuple(weakly_dominated),
        elimination_steps=tuple(steps),
        remaining=(tuple(active[0]), tuple(active[1])),
        reduced_tensor=_restrict(game, active[0], active[1]),
        solvable=solvable,
        explanation=tuple(explanation),
        recommendations=tuple(recommendations),
    )
