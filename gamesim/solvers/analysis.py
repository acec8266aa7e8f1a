"""
One-call equilibrium analysis bundling every solver.
"""
import logging
from typing import Any, Dict, Optional, Sequence

from gamesim.errors import GameSimError
from gamesim.solvers.dominance import analyze_dominance
from gamesim.solvers.equilibria import (
    GameLike, as_game, find_pure_nash_equilibria, find_mixed_nash_equilibria,
    find_approximate_nash_equilibria,
)
from gamesim.solvers.ess import analyze_ess
from gamesim.solvers.validator import validate_equilibrium

logger = logging.getLogger(__name__)


def analyze_game(tensor: GameLike, strategy_names: Optional[Sequence[str]] = None,
                 seed: int = 0, include_approximate: bool = True) -> Dict[str, Any]:
    """
    Run the solver suite and collect plain-data results.

    Each step runs independently: a step that raises is logged and its
    field keeps its empty default. ESS analysis only runs on square games.

    Args:
        tensor: Payoff tensor or PayoffGame
        strategy_names: Names used by the dominance explanation
        seed: Seed for the stochastic solvers
        include_approximate: Also run the sampling-based approximate finder

    Returns:
        dict with pure, mixed, approximate, dominance, ess and validation entries
    """
    game = as_game(tensor)
    analysis: Dict[str, Any] = {
        "pure": [], "mixed": [], "approximate": [], "dominance": None, "ess": None,
        "validation": [], "failed_steps": [],
    }
    found = []

    def step(name, fn):
        try:
            return fn()
        except (GameSimError, ValueError, RuntimeError) as e:
            logger.warning(f"Equilibrium analysis step '{name}' failed: {e}")
            analysis["failed_steps"].append(name)
            return None

    pure = step("pure", lambda: find_pure_nash_equilibria(game))
    if pure:
        found.extend(pure)
        analysis["pure"] = [eq.to_dict() for eq in pure]
    mixed = step("mixed", lambda: find_mixed_nash_equilibria(game, seed=seed))
    if mixed:
        found.extend(mixed)
        analysis["mixed"] = [eq.to_dict() for eq in mixed]
    if include_approximate:
        approximate = step("approximate", lambda: find_approximate_nash_equilibria(game, seed=seed))
        if approximate:
            analysis["approximate"] = [eq.to_dict() for eq in approximate]

    dominance = step("dominance", lambda: analyze_dominance(game, strategy_names))
    if dominance is not None:
        analysis["dominance"] = dominance.to_dict()
    if game.is_square:
        ess = step("ess", lambda: analyze_ess(game))
        if ess is not None:
            analysis["ess"] = ess.to_dict()

    for eq in found:
        report = step("validation", lambda: validate_equilibrium(eq, game))
        if report is not None:
            analysis["validation"].append(report.to_dict())

    logger.debug(f"Analysis found {len(analysis['pure'])} pure and {len(analysis['mixed'])} mixed equilibria")
    return analysis
