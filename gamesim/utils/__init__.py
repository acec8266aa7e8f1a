"""
Utility functions shared by the solvers and the strategy engine.
"""
from gamesim.utils.simplex_operations import (
    uniform_mixture, random_mixture, simplex_projection, simplex_normalize,
    l1_distance,
)

__all__ = [
    'uniform_mixture',
    'random_mixture',
    'simplex_projection',
    'simplex_normalize',
    'l1_distance',
]
