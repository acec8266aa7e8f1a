"""
Equilibrium validation: structure, Nash conditions, stability and quality.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import torch

from gamesim.constants import PROBABILITY_TOLERANCE
from gamesim.solvers.equilibria import (
    GameLike, NashEquilibrium, as_game, payoff_scale, best_response_dynamics,
)
from gamesim.utils.simplex_operations import uniform_mixture, l1_distance

logger = logging.getLogger(__name__)

RELAXED_TOLERANCE = 1e-6
TREMBLE = 0.01
PERTURBATION = 0.05

CRITICAL = "critical"
HIGH = "high"
MEDIUM = "medium"
LOW = "low"


@dataclass
class ValidationIssue:
    type: str
    message: str
    severity: str
    player: Optional[int] = None
    strategy: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationWarning:
    type: str
    message: str
    suggestion: str
    impact: str


@dataclass
class StabilityAnalysis:
    """
    Stability of an equilibrium.

    Attributes:
        overall: Mean of the four components
        components: robustness, convergence, basin and trembling scores in [0, 1]
        description: One-line summary
        risk_factors: Components scoring below 0.4
    """
    overall: float
    components: Dict[str, float]
    description: str
    risk_factors: List[str]


@dataclass
class QualityMetrics:
    efficiency: float
    fairness: float
    social_welfare: float
    risk_profile: str
    complexity: float
    interpretability: float


@dataclass
class ValidationReport:
    is_valid: bool
    confidence: float
    errors: List[ValidationIssue]
    warnings: List[ValidationWarning]
    stability_analysis: Optional[StabilityAnalysis]
    quality_metrics: Optional[QualityMetrics]
    recommendations: List[str]

    def to_dict(self):
        return asdict(self)


EquilibriumLike = Union[NashEquilibrium, Mapping[str, Any], Sequence[Sequence[float]]]


def _normalize_input(equilibrium: EquilibriumLike) -> Dict[str, Any]:
    if isinstance(equilibrium, NashEquilibrium):
        return {"type": equilibrium.type, "strategies": [list(s) for s in equilibrium.strategies],
                "payoffs": list(equilibrium.payoffs), "is_strict": equilibrium.is_strict,
                "stability": equilibrium.stability, "profile": equilibrium.profile}
    if isinstance(equilibrium, Mapping):
        data = dict(equilibrium)
        data.setdefault("type", "mixed")
        data.setdefault("stability", 0.0)
        data.setdefault("is_strict", False)
        data.setdefault("profile", None)
        data.setdefault("payoffs", None)
        if data["type"] == "pure" and data["profile"] is None:
            strategies = data["strategies"]
            if all(isinstance(s, int) for s in strategies):
                data["profile"] = tuple(strategies)
        return data
    return {"type": "mixed", "strategies": [list(s) for s in equilibrium], "payoffs": None,
            "is_strict": False, "stability": 0.0, "profile": None}


def _validate_structure(eq: Dict[str, Any], shape, errors: List[ValidationIssue]) -> None:
    num_players = 2
    if eq["type"] == "pure" and eq["profile"] is not None:
        profile = eq["profile"]
        if len(profile) != num_players:
            errors.append(ValidationIssue(
                "probability_constraint",
                f"Pure strategy profile has {len(profile)} entries, expected {num_players}",
                CRITICAL, details={"expected": num_players, "actual": len(profile)}))
        for player, s in enumerate(profile[:num_players]):
            if not isinstance(s, int) or not 0 <= s < shape[player]:
                errors.append(ValidationIssue(
                    "probability_constraint", f"Invalid strategy index {s} for player {player}",
                    CRITICAL, player, s, {"valid_range": [0, shape[player] - 1]}))
        return

    strategies = eq["strategies"]
    if len(strategies) != num_players:
        errors.append(ValidationIssue(
            "probability_constraint",
            f"Mixed strategy profile has {len(strategies)} players, expected {num_players}",
            CRITICAL, details={"expected": num_players, "actual": len(strategies)}))
    for player, probs in enumerate(strategies[:num_players]):
        if len(probs) != shape[player]:
            errors.append(ValidationIssue(
                "probability_constraint",
                f"Player {player} strategy has {len(probs)} probabilities, expected {shape[player]}",
                CRITICAL, player, details={"expected": shape[player], "actual": len(probs)}))
        total = float(sum(probs))
        if abs(total - 1.0) > PROBABILITY_TOLERANCE:
            errors.append(ValidationIssue(
                "probability_constraint", f"Player {player} probabilities sum to {total:.6f}, expected 1.0",
                HIGH, player, details={"sum": total, "expected": 1.0}))
        for s, p in enumerate(probs):
            if p < -PROBABILITY_TOLERANCE or p > 1 + PROBABILITY_TOLERANCE:
                errors.append(ValidationIssue(
                    "probability_constraint", f"Invalid probability {p:.6f} for player {player}, strategy {s}",
                    HIGH, player, s, {"probability": p, "valid_range": [0, 1]}))


def _mixtures(eq: Dict[str, Any], game) -> List[torch.Tensor]:
    if eq["type"] == "pure" and eq["profile"] is not None:
        return [game.pure_mixture(p, s) for p, s in enumerate(eq["profile"])]
    return [torch.tensor(s, dtype=torch.float64) for s in eq["strategies"]]


def _validate_nash(eq, game, mixtures, errors, warnings) -> None:
    deviation = game.deviation_payoffs(mixtures)
    tol = PROBABILITY_TOLERANCE * payoff_scale(game)
    for player, (mixture, payoffs) in enumerate(zip(mixtures, deviation)):
        support = [s for s, p in enumerate(mixture) if p > PROBABILITY_TOLERANCE]
        if eq["type"] == "pure" and eq["profile"] is not None:
            current = float(payoffs[eq["profile"][player]])
            for s, value in enumerate(payoffs):
                if float(value) > current + tol:
                    errors.append(ValidationIssue(
                        "best_response_violation",
                        f"Player {player} gains {float(value) - current:.6f} by deviating to strategy {s}",
                        CRITICAL, player, s, {"current": current, "deviation": float(value)}))
            continue

        if len(support) > 1:
            average = float(sum(payoffs[s] for s in support)) / len(support)
            for s in support:
                diff = abs(float(payoffs[s]) - average)
                if diff > tol:
                    errors.append(ValidationIssue(
                        "indifference_violation",
                        f"Indifference condition violated for player {player}: strategy {s} "
                        f"payoff {float(payoffs[s]):.6f} differs from average by {diff:.6f}",
                        HIGH, player, s, {"strategy_payoff": float(payoffs[s]), "average_payoff": average,
                                          "difference": diff}))
        best_support = max((float(payoffs[s]) for s in support), default=float("-inf"))
        for s in range(len(mixture)):
            if s not in support and float(payoffs[s]) > best_support + tol:
                errors.append(ValidationIssue(
                    "best_response_violation",
                    f"Strategy {s} outside support provides higher payoff {float(payoffs[s]):.6f} "
                    "than support strategies",
                    CRITICAL, player, s, {"outside_payoff": float(payoffs[s]), "max_support_payoff": best_support,
                                          "improvement": float(payoffs[s]) - best_support}))
        for s, p in enumerate(mixture):
            if 0 < float(p) < RELAXED_TOLERANCE:
                warnings.append(ValidationWarning(
                    "numerical_precision", f"Very small probability {float(p):.8f} for player {player}, strategy {s}",
                    "Consider if this is due to numerical precision issues", LOW))
        if len(support) == 1 and eq["type"] == "mixed":
            warnings.append(ValidationWarning(
                "boundary_equilibrium", f"Player {player} does not actually mix",
                "Report this equilibrium as pure", LOW))

    if eq["type"] == "pure" and not eq["is_strict"]:
        warnings.append(ValidationWarning(
            "weak_dominance", "Some deviation leaves a player indifferent",
            "Expect drift away from this equilibrium under noise", MEDIUM))


def _trembling(game, mixtures) -> float:
    """Share of players whose support remains optimal after the opponent trembles."""
    tol = RELAXED_TOLERANCE * payoff_scale(game)
    robust = 0
    for player in range(2):
        other = mixtures[1 - player]
        trembled = (1 - TREMBLE) * other + TREMBLE * uniform_mixture(len(other))
        pair = [None, None]
        pair[player], pair[1 - player] = mixtures[player], trembled
        payoffs = game.deviation_payoffs(pair)[player]
        best = float(payoffs.max())
        if all(float(payoffs[s]) >= best - tol for s, p in enumerate(mixtures[player]) if p > PROBABILITY_TOLERANCE):
            robust += 1
    return 0.4 + 0.5 * robust / 2


def _stability(eq, game, mixtures) -> StabilityAnalysis:
    n = max(game.shape)
    if eq["type"] == "pure":
        robustness = float(eq["stability"])
    else:
        support = sum(int((m > PROBABILITY_TOLERANCE).sum()) for m in mixtures) / len(mixtures)
        robustness = max(0.0, 1.0 - (support - 1) / max(1, n - 1))

    start = [(1 - PERTURBATION) * m + PERTURBATION * uniform_mixture(len(m)) for m in mixtures]
    final, _ = best_response_dynamics(game, start, max_iterations=200)
    convergence = max(0.0, 1.0 - l1_distance(final, mixtures) / 4)

    basin = (0.7 if eq["type"] == "pure" else 0.3) * float(eq["stability"])
    trembling = _trembling(game, mixtures)
    overall = (robustness + convergence + basin + trembling) / 4

    if overall > 0.8:
        description = "Highly stable equilibrium with strong robustness properties"
    elif overall > 0.6:
        description = "Moderately stable equilibrium with some vulnerability to perturbations"
    elif overall > 0.4:
        description = "Weakly stable equilibrium that may be sensitive to changes"
    else:
        description = "Unstable equilibrium with high sensitivity to perturbations"
    risks = []
    if overall <= 0.4:
        risks.append("High sensitivity to strategy perturbations")
    for name, value, text in (("robustness", robustness, "Low robustness to payoff changes"),
                              ("convergence", convergence, "Unlikely to be reached through adaptive learning"),
                              ("basin", basin, "Small basin of attraction"),
                              ("trembling", trembling, "Vulnerable to trembling hand perturbations")):
        if value < 0.4:
            risks.append(text)
    return StabilityAnalysis(overall, {"robustness": robustness, "convergence": convergence,
                                       "basin": basin, "trembling": trembling}, description, risks)


def _quality(eq, game, mixtures, payoffs: List[float]) -> QualityMetrics:
    welfare = float(sum(payoffs))
    best_welfare = float((game.tensor[:, :, 0] + game.tensor[:, :, 1]).max())
    efficiency = max(0.0, min(1.0, welfare / best_welfare)) if best_welfare > 0 else 0.5
    mean = welfare / len(payoffs)
    variance = sum((p - mean) ** 2 for p in payoffs) / len(payoffs)
    fairness = 1.0 - min(1.0, variance / (mean ** 2 + 1))
    if eq["type"] == "pure":
        complexity, interpretability = 0.0, 1.0
    else:
        support = sum(int((m > PROBABILITY_TOLERANCE).sum()) for m in mixtures)
        complexity = support / sum(len(m) for m in mixtures)
        interpretability = 1.0 - complexity
    stability = float(eq["stability"])
    if eq["type"] == "pure" and stability > 0.7:
        risk = LOW
    elif stability > 0.5:
        risk = MEDIUM
    else:
        risk = HIGH
    return QualityMetrics(efficiency, fairness, welfare, risk, complexity, interpretability)


def validate_equilibrium(equilibrium: EquilibriumLike, tensor: GameLike) -> ValidationReport:
    """
    Check that a candidate equilibrium is well formed and satisfies the Nash
    conditions, then score its stability and quality.

    Args:
        equilibrium: NashEquilibrium, a dict with "type"/"strategies", or a
            list of per-player probability vectors
        tensor: Payoff tensor or PayoffGame

    Returns:
        ValidationReport; invalid when any critical or high-severity error was found
    """
    game = as_game(tensor)
    eq = _normalize_input(equilibrium)
    errors: List[ValidationIssue] = []
    warnings: List[ValidationWarning] = []
    recommendations: List[str] = []

    _validate_structure(eq, game.shape, errors)
    stability = quality = None
    if not any(e.severity == CRITICAL for e in errors):
        mixtures = _mixtures(eq, game)
        _validate_nash(eq, game, mixtures, errors, warnings)
        payoffs = list(eq["payoffs"]) if eq["payoffs"] is not None else game.expected_payoffs(mixtures)
        stability = _stability(eq, game, mixtures)
        quality = _quality(eq, game, mixtures, payoffs)

        if stability.overall < 0.5:
            recommendations.append(
                "Consider mechanisms to stabilize this equilibrium or look for alternative solutions")
        if quality.efficiency < 0.6:
            recommendations.append("This equilibrium may be inefficient; consider coordination mechanisms")
        if quality.fairness < 0.5:
            recommendations.append("Large payoff differences suggest potential for redistribution mechanisms")
        if eq["type"] == "mixed" and quality.complexity > 0.7:
            recommendations.append(
                "High strategy complexity may make this equilibrium difficult to implement in practice")
        if quality.risk_profile == HIGH:
            recommendations.append("High risk profile suggests careful consideration of uncertainty and robustness")
    else:
        logger.debug("Skipping Nash checks for a structurally invalid equilibrium")

    critical = sum(e.severity == CRITICAL for e in errors)
    high = sum(e.severity == HIGH for e in errors)
    high_warnings = sum(w.impact == HIGH for w in warnings)
    confidence = max(0.0, 1.0 - 0.3 * critical - 0.2 * high - 0.1 * high_warnings)
    return ValidationReport(
        is_valid=critical == 0 and high == 0,
        confidence=confidence,
        errors=errors,
        warnings=warnings,
        stability_analysis=stability,
        quality_metrics=quality,
        recommendations=recommendations,
    )
