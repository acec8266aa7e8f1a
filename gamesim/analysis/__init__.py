"""
Streaming analysis of simulation output.
"""
from gamesim.analysis.convergence import (
    ConvergenceAnalyzer, ConvergenceOptions, ConvergenceResult, ConvergenceWindow,
)
from gamesim.analysis.results import ResultsAggregator, HistoricalComparison

__all__ = [
    'ConvergenceAnalyzer',
    'ConvergenceOptions',
    'ConvergenceResult',
    'ConvergenceWindow',
    'ResultsAggregator',
    'HistoricalComparison',
]
