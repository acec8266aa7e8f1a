"""
Nash equilibrium finders for two-player strategic-form games.

All solvers are pure functions of the payoff tensor: stochastic ones draw from
a private torch.Generator seeded by their `seed` argument, so calling them
twice with the same inputs returns equal results.
"""
import itertools
import logging
from dataclasses import dataclass, asdict
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import torch

from gamesim.core.game import PayoffGame
from gamesim.utils.simplex_operations import random_mixture, simplex_normalize, l1_distance

logger = logging.getLogger(__name__)

GameLike = Union[PayoffGame, Sequence]

SUPPORT_EPSILON = 1e-9
# Support enumeration is exponential; skip it above this many strategies per player
MAX_ENUMERATION_STRATEGIES = 10


@dataclass(frozen=True)
class NashEquilibrium:
    """
    A (possibly approximate) Nash equilibrium.

    Attributes:
        type: "pure", "mixed" or "approximate"
        strategies: One probability vector per player
        payoffs: Expected payoff per player
        is_strict: Every unilateral deviation strictly loses
        stability: Robustness score in [0, 1]
        confidence: Trust in the result in [0, 1]
        profile: Pure strategy indices (pure equilibria only)
        regret: Largest gain available from a unilateral deviation
    """
    type: str
    strategies: Tuple[Tuple[float, ...], ...]
    payoffs: Tuple[float, ...]
    is_strict: bool
    stability: float
    confidence: float
    profile: Optional[Tuple[int, ...]] = None
    regret: float = 0.0

    def mixtures(self) -> List[torch.Tensor]:
        return [torch.tensor(s, dtype=torch.float64) for s in self.strategies]

    def to_dict(self):
        return asdict(self)


def as_game(tensor: GameLike) -> PayoffGame:
    return tensor if isinstance(tensor, PayoffGame) else PayoffGame(tensor)


def payoff_scale(game: PayoffGame) -> float:
    return max(game.payoff_range(0), game.payoff_range(1), 1e-12)


def _freeze(mixtures: Sequence[torch.Tensor]) -> Tuple[Tuple[float, ...], ...]:
    return tuple(tuple(float(p) for p in m) for m in mixtures)


def best_response(payoffs: torch.Tensor) -> torch.Tensor:
    """One-hot best response (lowest index among ties)."""
    response = torch.zeros_like(payoffs)
    response[torch.argmax(payoffs)] = 1.0
    return response


def equilibrium_fitness(game: PayoffGame, mixtures: Sequence[torch.Tensor]) -> float:
    """1 for an exact equilibrium, decreasing with the normalized regret."""
    return 1.0 / (1.0 + game.regret(mixtures) / payoff_scale(game))


# ---------------------------------------------------------------------------
# Pure equilibria
# ---------------------------------------------------------------------------

def find_pure_nash_equilibria(tensor: GameLike, atol: float = 1e-12) -> List[NashEquilibrium]:
    """
    Enumerate every joint pure strategy and keep those with no profitable
    unilateral deviation.

    Args:
        tensor: Payoff tensor or PayoffGame
        atol: Deviation gains up to atol are not counted as profitable

    Returns:
        Pure equilibria in row-major order of their profiles
    """
    game = as_game(tensor)
    rows, cols = game.shape
    ranges = [game.payoff_range(0), game.payoff_range(1)]
    equilibria = []
    for r in range(rows):
        for c in range(cols):
            own = game.payoff(r, c)
            row_alternatives = [game.payoff(k, c)[0] for k in range(rows) if k != r]
            col_alternatives = [game.payoff(r, k)[1] for k in range(cols) if k != c]
            best_row = max(row_alternatives, default=float("-inf"))
            best_col = max(col_alternatives, default=float("-inf"))
            if best_row > own[0] + atol or best_col > own[1] + atol:
                continue

            scores = []
            for player, (payoff, best) in enumerate(((own[0], best_row), (own[1], best_col))):
                if best == float("-inf"):
                    scores.append(1.0)
                elif ranges[player] > 0:
                    scores.append(min(1.0, max(0.0, (payoff - best) / ranges[player])))
                else:
                    scores.append(0.0)
            equilibria.append(NashEquilibrium(
                type="pure",
                strategies=_freeze([game.pure_mixture(0, r), game.pure_mixture(1, c)]),
                payoffs=(own[0], own[1]),
                is_strict=bool(best_row < own[0] and best_col < own[1]),
                stability=sum(scores) / len(scores),
                confidence=1.0,
                profile=(r, c),
                regret=max(0.0, best_row - own[0], best_col - own[1]),
            ))
    return equilibria


# ---------------------------------------------------------------------------
# Support enumeration
# ---------------------------------------------------------------------------

def _indifference_mixture(matrix: torch.Tensor, own_support: Sequence[int],
                          other_support: Sequence[int]) -> Optional[torch.Tensor]:
    """
    Mixture over other_support that makes the owner of `matrix` indifferent
    across own_support.

    Args:
        matrix: Owner's payoffs indexed [own strategy][other strategy]
        own_support: Owner strategies that must earn equal payoffs
        other_support: Strategies the mixture may use

    Returns:
        Full-length mixture, or None when no non-negative solution exists
    """
    k_own, k_other = len(own_support), len(other_support)
    sub = matrix[list(own_support)][:, list(other_support)]
    system = torch.zeros(k_own + 1, k_other + 1, dtype=torch.float64)
    system[:k_own, :k_other] = sub
    system[:k_own, k_other] = -1.0
    system[k_own, :k_other] = 1.0
    target = torch.zeros(k_own + 1, 1, dtype=torch.float64)
    target[k_own, 0] = 1.0
    solution = torch.linalg.lstsq(system, target, driver="gelsd").solution[:, 0]
    if torch.max(torch.abs(system @ solution - target[:, 0])) > 1e-8:
        return None
    weights = solution[:k_other]
    if torch.any(weights < -SUPPORT_EPSILON):
        return None
    mixture = torch.zeros(matrix.shape[1], dtype=torch.float64)
    mixture[list(other_support)] = torch.clamp(weights, min=0.0)
    total = mixture.sum()
    if total <= 0:
        return None
    return mixture / total


def solve_on_support(game: PayoffGame, row_support: Sequence[int],
                     col_support: Sequence[int]) -> Optional[List[torch.Tensor]]:
    """Equilibrium candidate with the given supports (None when infeasible)."""
    y = _indifference_mixture(game.player_matrix(0), row_support, col_support)
    x = _indifference_mixture(game.player_matrix(1), col_support, row_support)
    if x is None or y is None:
        return None
    return [x, y]


def support_enumeration(tensor: GameLike, tolerance: float = 1e-9) -> Iterator[List[torch.Tensor]]:
    """
    Yield equilibria found by enumerating equal-size support pairs.

    Args:
        tensor: Payoff tensor or PayoffGame
        tolerance: Maximum regret relative to the payoff scale

    Yields:
        [row mixture, column mixture]
    """
    game = as_game(tensor)
    rows, cols = game.shape
    scale = payoff_scale(game)
    for size in range(1, min(rows, cols) + 1):
        for row_support in itertools.combinations(range(rows), size):
            for col_support in itertools.combinations(range(cols), size):
                candidate = solve_on_support(game, row_support, col_support)
                if candidate is not None and game.regret(candidate) <= tolerance * scale:
                    yield candidate


# ---------------------------------------------------------------------------
# Mixed equilibria
# ---------------------------------------------------------------------------

def best_response_dynamics(game: PayoffGame, start: Sequence[torch.Tensor], max_iterations: int = 1000,
                           tolerance: float = 1e-6) -> Tuple[List[torch.Tensor], int]:
    """
    Damped best-response dynamics: each player moves a step of 1 / (t + 2)
    toward the pure best response to the opponent's current mixture.

    Args:
        game: Game to analyze
        start: Starting mixtures
        max_iterations: Iteration budget
        tolerance: Stop once both mixtures move less than this (L1)

    Returns:
        (final mixtures, iterations used)
    """
    x, y = (m.clone() for m in start)
    for t in range(max_iterations):
        dev = game.deviation_payoffs((x, y))
        step = 1.0 / (t + 2)
        new_x = (1 - step) * x + step * best_response(dev[0])
        new_y = (1 - step) * y + step * best_response(dev[1])
        moved = l1_distance(new_x, x) + l1_distance(new_y, y)
        x, y = new_x, new_y
        if moved < tolerance:
            return [x, y], t + 1
    return [x, y], max_iterations


def polish(game: PayoffGame, mixtures: Sequence[torch.Tensor], threshold: float = 1e-3
           ) -> Optional[List[torch.Tensor]]:
    """Snap a near-equilibrium onto the exact equilibrium of its support, if one exists."""
    supports = [[i for i, p in enumerate(m) if p > threshold] for m in mixtures]
    if len(supports[0]) != len(supports[1]):
        # Trim the larger support to its heaviest entries
        k = min(len(supports[0]), len(supports[1]))
        supports = [sorted(sorted(s, key=lambda i: -float(m[i]))[:k]) for s, m in zip(supports, mixtures)]
    return solve_on_support(game, supports[0], supports[1])


def _is_mixed(mixtures: Sequence[torch.Tensor]) -> bool:
    return any(int((m > SUPPORT_EPSILON).sum()) > 1 for m in mixtures)


def find_mixed_nash_equilibria(tensor: GameLike, max_iterations: int = 1000, tolerance: float = 1e-6,
                               num_starts: int = 20, seed: int = 0,
                               similarity_threshold: float = 1e-3) -> List[NashEquilibrium]:
    """
    Find equilibria where at least one player mixes.

    Random starting profiles are driven by damped best-response dynamics,
    snapped onto their support's exact solution and accepted when their
    regret passes the fitness test. Support enumeration adds equilibria the
    dynamics cannot reach (for example unstable mixed equilibria).

    Args:
        tensor: Payoff tensor or PayoffGame
        max_iterations: Dynamics budget per start
        tolerance: Accepted regret relative to the payoff scale
        num_starts: Number of random starting profiles
        seed: Seed of the private generator
        similarity_threshold: L1 distance under which two equilibria are merged

    Returns:
        Mixed equilibria; stability is the share of starts that reached each one
    """
    game = as_game(tensor)
    scale = payoff_scale(game)
    generator = torch.Generator().manual_seed(seed)
    rows, cols = game.shape
    starts_x = random_mixture(rows, num_starts, generator=generator)
    starts_y = random_mixture(cols, num_starts, generator=generator)

    found: List[List[torch.Tensor]] = []
    basin_counts: List[int] = []

    def register(candidate, from_dynamics):
        for idx, existing in enumerate(found):
            if l1_distance(candidate, existing) < similarity_threshold:
                if from_dynamics:
                    basin_counts[idx] += 1
                return
        found.append(candidate)
        basin_counts.append(1 if from_dynamics else 0)

    for s in range(num_starts):
        final, _ = best_response_dynamics(game, [starts_x[s], starts_y[s]], max_iterations, tolerance)
        candidate = polish(game, final)
        if candidate is None or game.regret(candidate) > tolerance * scale:
            if game.regret(final) <= tolerance * scale:
                candidate = [simplex_normalize(m) for m in final]
            else:
                continue
        register(candidate, True)

    if max(rows, cols) <= MAX_ENUMERATION_STRATEGIES:
        for candidate in support_enumeration(game, tolerance):
            register(candidate, False)
    else:
        logger.info(f"Skipping support enumeration for a {rows}x{cols} game")

    equilibria = []
    for candidate, count in zip(found, basin_counts):
        if not _is_mixed(candidate):
            continue
        cleaned = [torch.where(m > SUPPORT_EPSILON, m, torch.zeros_like(m)) for m in candidate]
        cleaned = [m / m.sum() for m in cleaned]
        dev = game.deviation_payoffs(cleaned)
        regret = game.regret(cleaned)
        equilibria.append(NashEquilibrium(
            type="mixed",
            strategies=_freeze(cleaned),
            payoffs=tuple(game.expected_payoffs(cleaned)),
            is_strict=False,
            stability=count / num_starts if num_starts else 0.0,
            confidence=equilibrium_fitness(game, cleaned),
            regret=regret,
        ))
        logger.debug(f"Mixed equilibrium {equilibria[-1].strategies} (deviation payoffs {dev})")
    return equilibria


# ---------------------------------------------------------------------------
# Approximate equilibria
# ---------------------------------------------------------------------------

def _local_search(game: PayoffGame, mixtures: Sequence[torch.Tensor], steps: int) -> List[torch.Tensor]:
    """Move toward the best response in shrinking steps and keep the lowest-regret point."""
    x, y = (m.clone() for m in mixtures)
    best, best_regret = [x, y], game.regret((x, y))
    for k in range(steps):
        dev = game.deviation_payoffs((x, y))
        step = 1.0 / (k + 2)
        x = simplex_normalize((1 - step) * x + step * best_response(dev[0]), epsilon=0.0)
        y = simplex_normalize((1 - step) * y + step * best_response(dev[1]), epsilon=0.0)
        regret = game.regret((x, y))
        if regret < best_regret:
            best, best_regret = [x.clone(), y.clone()], regret
    return best


def find_approximate_nash_equilibria(tensor: GameLike, samples: int = 2000, tolerance: float = 0.05,
                                     seed: int = 0, keep_fraction: float = 0.05,
                                     cluster_radius: float = 0.2,
                                     refine_steps: int = 200) -> List[NashEquilibrium]:
    """
    Monte Carlo search for epsilon-equilibria.

    Args:
        tensor: Payoff tensor or PayoffGame
        samples: Number of random mixed profiles to score
        tolerance: Accepted regret relative to the payoff scale
        seed: Seed of the private generator
        keep_fraction: Share of best-scoring samples kept as candidates
        cluster_radius: L1 radius of a candidate cluster
        refine_steps: Local-search steps per cluster representative

    Returns:
        Approximate equilibria sorted by increasing regret
    """
    game = as_game(tensor)
    scale = payoff_scale(game)
    generator = torch.Generator().manual_seed(seed)
    rows, cols = game.shape
    xs = random_mixture(rows, samples, generator=generator)
    ys = random_mixture(cols, samples, generator=generator)

    # Regret of every sampled profile at once
    dev_rows = game.player_matrix(0) @ ys.T          # rows x samples
    dev_cols = game.player_matrix(1) @ xs.T          # cols x samples
    regret_rows = dev_rows.max(dim=0).values - (xs.T * dev_rows).sum(dim=0)
    regret_cols = dev_cols.max(dim=0).values - (ys.T * dev_cols).sum(dim=0)
    regrets = torch.maximum(regret_rows, regret_cols)

    keep = max(1, int(samples * keep_fraction))
    order = torch.argsort(regrets)[:keep].tolist()

    clusters: List[Tuple[List[torch.Tensor], int]] = []
    for idx in order:
        candidate = [xs[idx], ys[idx]]
        for c, (representative, size) in enumerate(clusters):
            if l1_distance(candidate, representative) < cluster_radius:
                clusters[c] = (representative, size + 1)
                break
        else:
            clusters.append((candidate, 1))

    accepted: List[Tuple[List[torch.Tensor], int, float]] = []
    for representative, size in clusters:
        refined = _local_search(game, representative, refine_steps)
        normalized = game.regret(refined) / scale
        if normalized > tolerance:
            continue
        if any(l1_distance(refined, other) < cluster_radius / 2 for other, _, _ in accepted):
            continue
        accepted.append((refined, size, normalized))

    accepted.sort(key=lambda item: item[2])
    return [NashEquilibrium(
        type="approximate",
        strategies=_freeze(mixtures),
        payoffs=tuple(game.expected_payoffs(mixtures)),
        is_strict=False,
        stability=size / keep,
        confidence=max(0.0, 1.0 - normalized / tolerance) if tolerance > 0 else float(normalized == 0),
        regret=normalized * scale,
    ) for mixtures, size, normalized in accepted]
