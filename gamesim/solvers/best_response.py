"""
Best-response analysis for two-player games.

Expected payoff of every own strategy against an opponent mixture, the
best-response correspondence sampled over a grid of opponent mixtures, and
the profiles where both players' correspondences intersect (mutual best
responses, i.e. Nash equilibria).
"""
import itertools
import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Tuple, Union

import torch

from gamesim.constants import PROBABILITY_TOLERANCE
from gamesim.errors import ConfigurationError
from gamesim.solvers.dominance import analyze_dominance
from gamesim.solvers.equilibria import GameLike, as_game, payoff_scale, support_enumeration, _freeze
from gamesim.utils.simplex_operations import uniform_mixture

logger = logging.getLogger(__name__)

OPTIMALITY_TOLERANCE = 1e-6
DEFAULT_RESOLUTION = 20


@dataclass(frozen=True)
class ResponsePoint:
    """
    One own strategy evaluated against a fixed opponent mixture.

    Attributes:
        strategy: Own strategy index
        payoff: Expected payoff of the strategy
        is_optimal: Within tolerance of the best payoff
        margin: Best payoff minus this strategy's payoff
    """
    strategy: int
    payoff: float
    is_optimal: bool
    margin: float


@dataclass(frozen=True)
class BestResponse:
    player: int
    opponent_mixture: Tuple[float, ...]
    responses: Tuple[ResponsePoint, ...]
    best_responses: Tuple[int, ...]
    max_payoff: float

    @property
    def best_response(self) -> int:
        return self.best_responses[0]

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class BestResponseIntersection:
    """
    A profile where each player's mixture only uses best responses to the other's.

    Attributes:
        strategies: One probability vector per player
        payoffs: Expected payoff per player
        type: "pure" or "mixed"
        regret: Largest gain from a unilateral deviation (0 up to rounding)
    """
    strategies: Tuple[Tuple[float, ...], ...]
    payoffs: Tuple[float, ...]
    type: str
    regret: float


@dataclass(frozen=True)
class BestResponseAnalysis:
    strategy_names: Tuple[str, ...]
    correspondences: Tuple[Tuple[BestResponse, ...], ...]
    intersections: Tuple[BestResponseIntersection, ...]
    dominant_strategies: Tuple[Tuple[int, int, str], ...]
    remaining: Tuple[Tuple[int, ...], ...]

    def to_dict(self):
        return asdict(self)


def _opponent_count(game, player: int) -> int:
    return game.shape[1] if player == 0 else game.shape[0]


def _as_mixture(opponent: Union[int, Sequence[float], torch.Tensor], size: int) -> torch.Tensor:
    if isinstance(opponent, int) and not isinstance(opponent, bool):
        if not 0 <= opponent < size:
            raise ConfigurationError(f"Opponent strategy {opponent} out of range for {size} strategies")
        mixture = torch.zeros(size, dtype=torch.float64)
        mixture[opponent] = 1.0
        return mixture
    mixture = torch.as_tensor(opponent, dtype=torch.float64).flatten()
    if mixture.numel() != size:
        raise ConfigurationError(f"Opponent mixture has {mixture.numel()} entries, expected {size}")
    if bool(torch.any(mixture < -PROBABILITY_TOLERANCE)) or abs(float(mixture.sum()) - 1.0) > 1e-6:
        raise ConfigurationError(f"Opponent mixture is not a probability vector: {mixture.tolist()}")
    return mixture


def response_payoffs(tensor: GameLike, player: int, opponent_mixture) -> torch.Tensor:
    """Expected payoff of each of `player`'s strategies against the opponent's mixture."""
    game = as_game(tensor)
    if player not in (0, 1):
        raise ConfigurationError(f"Player index must be 0 or 1, got {player}")
    y = _as_mixture(opponent_mixture, _opponent_count(game, player))
    if player == 0:
        return game.deviation_payoffs((uniform_mixture(game.shape[0]), y))[0]
    return game.deviation_payoffs((y, uniform_mixture(game.shape[1])))[1]


def calculate_best_response(tensor: GameLike, player: int, opponent_mixture,
                            tolerance: float = OPTIMALITY_TOLERANCE) -> BestResponse:
    """
    Evaluate every own strategy against an opponent mixture.

    Args:
        tensor: Payoff tensor or PayoffGame
        player: 0 (row) or 1 (column)
        opponent_mixture: Opponent probability vector, or a pure strategy index
        tolerance: Payoff gap under which a strategy still counts as optimal

    Returns:
        BestResponse with per-strategy payoffs, optimality flags and margins
    """
    game = as_game(tensor)
    payoffs = response_payoffs(game, player, opponent_mixture)
    y = _as_mixture(opponent_mixture, _opponent_count(game, player))
    best = float(payoffs.max())
    responses = tuple(
        ResponsePoint(s, float(v), best - float(v) <= tolerance, best - float(v))
        for s, v in enumerate(payoffs))
    return BestResponse(
        player=player,
        opponent_mixture=tuple(float(p) for p in y),
        responses=responses,
        best_responses=tuple(r.strategy for r in responses if r.is_optimal),
        max_payoff=best,
    )


def simplex_grid(size: int, resolution: int) -> torch.Tensor:
    """Every mixture over `size` strategies whose entries are multiples of 1/resolution."""
    if resolution < 1:
        raise ConfigurationError("resolution must be positive")
    points = []
    # Stars and bars: cut positions split `resolution` units into `size` parts
    for cuts in itertools.combinations(range(resolution + size - 1), size - 1):
        bounds = (-1,) + cuts + (resolution + size - 1,)
        points.append([(bounds[i + 1] - bounds[i] - 1) / resolution for i in range(size)])
    points.sort(reverse=True)
    return torch.tensor(points, dtype=torch.float64)


def best_response_correspondence(tensor: GameLike, player: int, resolution: int = DEFAULT_RESOLUTION,
                                 tolerance: float = OPTIMALITY_TOLERANCE) -> List[BestResponse]:
    """
    Sample a player's best-response correspondence.

    For a two-strategy opponent the grid runs over the probability p of the
    opponent's first strategy in steps of 1/resolution, from p=1 down to p=0.
    Larger opponents use the full simplex grid at the same resolution.

    Returns:
        One BestResponse per sampled opponent mixture
    """
    game = as_game(tensor)
    grid = simplex_grid(_opponent_count(game, player), resolution)
    return [calculate_best_response(game, player, y, tolerance) for y in grid]


def _profile_type(mixtures: Sequence[torch.Tensor]) -> str:
    return "pure" if all(int((m > PROBABILITY_TOLERANCE).sum()) == 1 for m in mixtures) else "mixed"


def find_best_response_intersections(tensor: GameLike, resolution: int = DEFAULT_RESOLUTION,
                                     tolerance: float = OPTIMALITY_TOLERANCE) -> List[BestResponseIntersection]:
    """
    Profiles where both sampled correspondences meet, plus the exact
    intersections that fall between grid points.

    A grid profile (x, y) is kept when x only puts weight on best responses
    to y and vice versa. Support enumeration supplies the intersections whose
    probabilities are not multiples of 1/resolution.

    Returns:
        Intersections sorted pure first, then by row mixture (descending)
    """
    game = as_game(tensor)
    scale = payoff_scale(game)
    rows = simplex_grid(game.shape[0], resolution)
    cols = simplex_grid(game.shape[1], resolution)
    a, b = game.player_matrix(0), game.player_matrix(1)

    # regret[i, j] for row grid point i against column grid point j
    row_dev = a @ cols.T
    row_regret = row_dev.max(dim=0).values.unsqueeze(0) - rows @ row_dev
    col_dev = b @ rows.T
    col_regret = (col_dev.max(dim=0).values.unsqueeze(0) - cols @ col_dev).T
    mutual = torch.nonzero((row_regret <= tolerance * scale) & (col_regret <= tolerance * scale))

    candidates = [[rows[int(i)], cols[int(j)]] for i, j in mutual]
    candidates.extend(support_enumeration(game))

    found: Dict[Tuple, BestResponseIntersection] = {}
    for mixtures in candidates:
        regret = game.regret(mixtures)
        if regret > tolerance * scale:
            continue
        key = tuple(tuple(round(p, 6) for p in m) for m in _freeze(mixtures))
        if key in found:
            continue
        found[key] = BestResponseIntersection(
            strategies=_freeze(mixtures),
            payoffs=tuple(game.expected_payoffs(mixtures)),
            type=_profile_type(mixtures),
            regret=regret,
        )
    logger.debug(f"Found {len(found)} best-response intersections from {len(candidates)} candidates")
    return sorted(found.values(), key=lambda r: (r.type != "pure", [-p for p in r.strategies[0]],
                                                 [-p for p in r.strategies[1]]))


def analyze_best_response(tensor: GameLike, strategy_names: Optional[Sequence[str]] = None,
                          resolution: int = DEFAULT_RESOLUTION) -> BestResponseAnalysis:
    """
    Correspondences for both players, their intersections, dominant
    strategies and the survivors of iterated strict elimination.
    """
    game = as_game(tensor)
    names = list(strategy_names) if strategy_names is not None else game.strategy_names
    dominance = analyze_dominance(game, names)
    dominant = tuple((d.player, d.strategy, d.kind)
                     for d in dominance.strictly_dominant + dominance.weakly_dominant)
    return BestResponseAnalysis(
        strategy_names=tuple(names),
        correspondences=tuple(tuple(best_response_correspondence(game, p, resolution)) for p in (0, 1)),
        intersections=tuple(find_best_response_intersections(game, resolution)),
        dominant_strategies=dominant,
        remaining=dominance.remaining,
    )
