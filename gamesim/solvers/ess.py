"""
Evolutionarily stable strategies via replicator dynamics.

The population game uses the row player's payoffs: a strategy's fitness is
its row payoff against the population mix.
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import List, Optional, Tuple, Union

import torch

from gamesim.constants import ESS_INITIAL_SHARE, ESS_RESIST_THRESHOLD, ESS_STABILITY_THRESHOLD
from gamesim.errors import AnalysisError
from gamesim.solvers.equilibria import GameLike, as_game
from gamesim.utils.simplex_operations import uniform_mixture, simplex_normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvasionResult:
    invader: int
    final_share: float
    resisted: bool
    iterations: int


@dataclass(frozen=True)
class ESSResult:
    """
    Invasion tests of one candidate strategy.

    Attributes:
        strategy: Candidate index
        is_ess: Resisted every invader with mean final share above the threshold
        stability: Mean final share of the candidate across invaders
        invasions: Per-invader outcomes (failed tests are omitted)
    """
    strategy: int
    is_ess: bool
    stability: float
    invasions: Tuple[InvasionResult, ...]


@dataclass(frozen=True)
class ESSAnalysis:
    results: Tuple[ESSResult, ...]
    ess_strategies: Tuple[int, ...]

    def to_dict(self):
        return asdict(self)


def fitness_offset(matrix: torch.Tensor) -> float:
    """Shift that makes every fitness strictly positive."""
    lowest = float(matrix.min())
    return -lowest + 1.0 if lowest <= 0 else 0.0


def replicator_dynamics(tensor: GameLike,
                        mixture: Optional[torch.Tensor] = None,
                        iters: int = 1000,
                        offset: Optional[float] = None,
                        converge_threshold: float = 1e-10,
                        return_trace: bool = False) -> Union[torch.Tensor, Tuple[torch.Tensor, List[torch.Tensor]]]:
    """
    Discrete replicator dynamics of a single population.

    Args:
        tensor: Payoff tensor or PayoffGame (square)
        mixture: Initial population shares (uniform when None)
        iters: Maximum number of iterations
        offset: Fitness shift (chosen to make payoffs positive when None)
        converge_threshold: Stop once the L1 change falls below this
        return_trace: Also return the list of visited shares

    Returns:
        Final shares, or (final shares, trace) if return_trace is True
    """
    game = as_game(tensor)
    if not game.is_square:
        raise AnalysisError("Replicator dynamics need a square payoff tensor")
    matrix = game.player_matrix(0)
    if offset is None:
        offset = fitness_offset(matrix)
    x = uniform_mixture(matrix.shape[0]) if mixture is None else simplex_normalize(mixture, epsilon=0.0)
    trace = [x.clone()]
    for _ in range(iters):
        fitness = matrix @ x + offset
        average = float(x @ fitness)
        if average <= 0:
            break
        new_x = x * fitness / average
        change = float(torch.sum(torch.abs(new_x - x)))
        x = new_x
        if return_trace:
            trace.append(x.clone())
        if change < converge_threshold:
            break
    if return_trace:
        return x, trace
    return x


def invasion_test(matrix: torch.Tensor, resident: int, invader: int,
                  initial_share: float = ESS_INITIAL_SHARE, max_iterations: int = 1000,
                  tolerance: float = 1e-10) -> InvasionResult:
    """
    Two-strategy replicator dynamics from a near-pure resident population.

    Args:
        matrix: Row payoffs indexed [own strategy][opponent strategy]
        resident: Candidate strategy
        invader: Mutant strategy
        initial_share: Starting share of the resident
        max_iterations: Iteration budget
        tolerance: Stop once the share moves less than this

    Returns:
        InvasionResult with the resident's final share
    """
    sub = matrix[[resident, invader]][:, [resident, invader]]
    offset = fitness_offset(sub)
    p = initial_share
    used = max_iterations
    for t in range(max_iterations):
        f_res = p * float(sub[0, 0]) + (1 - p) * float(sub[0, 1]) + offset
        f_inv = p * float(sub[1, 0]) + (1 - p) * float(sub[1, 1]) + offset
        average = p * f_res + (1 - p) * f_inv
        new_p = p * f_res / average
        if not math.isfinite(new_p):
            raise AnalysisError(f"Invasion of {resident} by {invader} diverged")
        moved = abs(new_p - p)
        p = new_p
        if moved < tolerance:
            used = t + 1
            break
    return InvasionResult(invader, p, p > ESS_RESIST_THRESHOLD, used)


def analyze_ess(tensor: GameLike, initial_share: float = ESS_INITIAL_SHARE,
                max_iterations: int = 1000) -> ESSAnalysis:
    """
    Test every strategy against every invader.

    A failing invader test is logged and left out of the candidate's
    result rather than aborting the analysis.

    Args:
        tensor: Payoff tensor or PayoffGame (square)
        initial_share: Starting share of the candidate
        max_iterations: Replicator budget per test

    Returns:
        ESSAnalysis
    """
    game = as_game(tensor)
    if not game.is_square:
        raise AnalysisError("ESS analysis needs a square payoff tensor")
    matrix = game.player_matrix(0)
    n = matrix.shape[0]
    results = []
    for s in range(n):
        invasions = []
        for i in range(n):
            if i == s:
                continue
            try:
                invasions.append(invasion_test(matrix, s, i, initial_share, max_iterations))
            except AnalysisError as e:
                logger.warning(f"ESS invader test skipped: {e}")
        if invasions:
            stability = sum(r.final_share for r in invasions) / len(invasions)
            is_ess = all(r.resisted for r in invasions) and stability > ESS_STABILITY_THRESHOLD
        else:
            # A lone strategy cannot be invaded
            stability = 1.0
            is_ess = n == 1
        results.append(ESSResult(s, bool(is_ess), stability, tuple(invasions)))
    return ESSAnalysis(tuple(results), tuple(r.strategy for r in results if r.is_ess))
