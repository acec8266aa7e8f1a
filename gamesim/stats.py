import math
import numpy as np
from scipy import stats
from typing import Sequence, Tuple

MIN_SAMPLES = 10

# Two-sided 95% t critical values for small degrees of freedom
_T_TABLE_95 = {
    1: 12.706, 2: 4.303, 3: 3.182, 4: 2.776, 5: 2.571, 6: 2.447, 7: 2.365,
    8: 2.306, 9: 2.262, 10: 2.228, 11: 2.201, 12: 2.179, 13: 2.160, 14: 2.145,
    15: 2.131, 16: 2.120, 17: 2.110, 18: 2.101, 19: 2.093, 20: 2.086, 21: 2.080,
    22: 2.074, 23: 2.069, 24: 2.064, 25: 2.060, 26: 2.056, 27: 2.052, 28: 2.048,
    29: 2.045, 30: 2.042,
}


def t_critical(df: int, confidence: float = 0.95) -> float:
    """Fixed table for small df at 95%, normal quantile otherwise."""
    if df <= 0:
        return float("inf")
    if df <= 30 and abs(confidence - 0.95) < 1e-12:
        return _T_TABLE_95[df]
    if df <= 30:
        return float(stats.t.ppf(0.5 + confidence / 2, df))
    return float(stats.norm.ppf(0.5 + confidence / 2))


def running_moments(total: float, total_sq: float, n: int) -> Tuple[float, float]:
    """Mean and unbiased variance from sum and sum of squares."""
    if n == 0:
        return 0.0, 0.0
    mean = total / n
    if n < 2:
        return mean, 0.0
    variance = max(0.0, (total_sq - n * mean * mean) / (n - 1))
    return mean, variance


def confidence_interval(mean: float, variance: float, n: int,
                        confidence: float = 0.95) -> Tuple[float, float]:
    if n < 2:
        return mean, mean
    half = t_critical(n - 1, confidence) * math.sqrt(variance / n)
    return mean - half, mean + half


def welch_test(sample_a: Sequence[float], sample_b: Sequence[float]) -> float:
    """p-value of Welch's unequal-variance t test (1.0 for constant samples)."""
    a = np.asarray(sample_a, dtype=np.float64)
    b = np.asarray(sample_b, dtype=np.float64)
    if len(a) < 2 or len(b) < 2:
        return 1.0
    va, vb = a.var(ddof=1), b.var(ddof=1)
    if va == 0 and vb == 0:
        return 1.0 if a.mean() == b.mean() else 0.0
    return float(stats.ttest_ind(a, b, equal_var=False).pvalue)


def variance_ratio_test(sample_a: Sequence[float], sample_b: Sequence[float]) -> float:
    """Two-sided F test p-value for equal variances."""
    a = np.asarray(sample_a, dtype=np.float64)
    b = np.asarray(sample_b, dtype=np.float64)
    if len(a) < 2 or len(b) < 2:
        return 1.0
    va, vb = a.var(ddof=1), b.var(ddof=1)
    if va == 0 and vb == 0:
        return 1.0
    if va == 0 or vb == 0:
        return 0.0
    f = va / vb
    dfa, dfb = len(a) - 1, len(b) - 1
    tail = stats.f.cdf(f, dfa, dfb)
    return float(min(1.0, 2 * min(tail, 1 - tail)))


def runs_test(sample: Sequence[float]) -> float:
    """Wald-Wolfowitz runs test about the median; p-value (1.0 when undefined)."""
    x = np.asarray(sample, dtype=np.float64)
    median = np.median(x)
    signs = x[x != median] > median
    n1 = int(signs.sum())
    n2 = len(signs) - n1
    if n1 == 0 or n2 == 0:
        return 1.0
    runs = 1 + int(np.count_nonzero(signs[1:] != signs[:-1]))
    n = n1 + n2
    expected = 2.0 * n1 * n2 / n + 1
    variance = 2.0 * n1 * n2 * (2.0 * n1 * n2 - n) / (n * n * (n - 1))
    if variance <= 0:
        return 1.0
    z = (runs - expected) / math.sqrt(variance)
    return float(2 * stats.norm.sf(abs(z)))


def autocorrelation(sample: Sequence[float], lag: int = 1) -> float:
    x = np.asarray(sample, dtype=np.float64)
    if len(x) <= lag + 1:
        return 0.0
    x = x - x.mean()
    denom = float(np.dot(x, x))
    if denom == 0:
        return 0.0
    return float(np.dot(x[:-lag], x[lag:]) / denom)


def autocorrelation_bound(n: int, confidence: float = 0.95) -> float:
    """Large-sample white-noise bound z / sqrt(n)."""
    return float(stats.norm.ppf(0.5 + confidence / 2)) / math.sqrt(max(1, n))


def normalized_slope(sample: Sequence[float]) -> float:
    """Least-squares slope per step divided by the mean magnitude of the sample."""
    y = np.asarray(sample, dtype=np.float64)
    if len(y) < 2:
        return 0.0
    x = np.arange(len(y), dtype=np.float64)
    slope = np.polyfit(x, y, 1)[0]
    scale = max(abs(float(y.mean())), float(y.std()), 1e-12)
    return float(slope * len(y) / scale)


def relative_change(old: float, new: float) -> float:
    return abs(new - old) / max(abs(old), 1e-12)
