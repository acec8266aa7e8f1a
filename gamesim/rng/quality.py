"""
Statistical quality checks for uniform generators.
"""
from dataclasses import dataclass, asdict
from typing import Sequence

import numpy as np
from scipy import stats

from gamesim.constants import (
    UNIFORMITY_ALPHA,
    WEAK_UNIFORMITY_ALPHA,
    INDEPENDENCE_BOUND,
    WEAK_INDEPENDENCE_BOUND,
)


@dataclass
class UniformityTest:
    chi_square: float
    p_value: float
    is_uniform: bool


@dataclass
class IndependenceTest:
    correlation: float
    is_independent: bool


@dataclass
class QualityReport:
    """
    Result of RNGManager.validate_quality.

    Attributes:
        generator: Display name of the tested generator
        uniformity_test: Chi-square goodness-of-fit result
        independence_test: Lag-1 serial correlation result
        overall: One of "excellent", "good", "fair", "poor"
    """
    generator: str
    uniformity_test: UniformityTest
    independence_test: IndependenceTest
    overall: str

    def to_dict(self):
        return asdict(self)


def lag1_correlation(samples: Sequence[float]) -> float:
    x = np.asarray(samples, dtype=np.float64)
    if len(x) < 3:
        return 0.0
    a, b = x[:-1], x[1:]
    if np.std(a) == 0 or np.std(b) == 0:
        return 0.0
    return float(np.corrcoef(a, b)[0, 1])


def evaluate_quality(samples: Sequence[float], generator: str, bins: int = 10) -> QualityReport:
    """
    Grade a sample of [0, 1) draws.

    Args:
        samples: Generator output
        generator: Display name for the report
        bins: Number of equal-width chi-square bins

    Returns:
        QualityReport with a four-level verdict
    """
    x = np.asarray(samples, dtype=np.float64)
    observed, _ = np.histogram(x, bins=bins, range=(0.0, 1.0))
    expected = np.full(bins, len(x) / bins)
    chi_square, p_value = stats.chisquare(observed, expected)
    uniformity = UniformityTest(float(chi_square), float(p_value), bool(p_value > UNIFORMITY_ALPHA))

    r = lag1_correlation(x)
    independence = IndependenceTest(r, bool(abs(r) < INDEPENDENCE_BOUND))

    if uniformity.is_uniform and independence.is_independent:
        overall = "excellent"
    elif uniformity.is_uniform or independence.is_independent:
        overall = "good"
    elif p_value > WEAK_UNIFORMITY_ALPHA and abs(r) < WEAK_INDEPENDENCE_BOUND:
        overall = "fair"
    else:
        overall = "poor"
    return QualityReport(generator, uniformity, independence, overall)
