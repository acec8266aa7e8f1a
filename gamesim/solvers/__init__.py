"""
Equilibrium, dominance and evolutionary stability solvers.
"""
from gamesim.solvers.equilibria import (
    NashEquilibrium, find_pure_nash_equilibria, find_mixed_nash_equilibria,
    find_approximate_nash_equilibria, support_enumeration,
)
from gamesim.solvers.dominance import DominanceAnalysis, analyze_dominance
from gamesim.solvers.ess import ESSAnalysis, analyze_ess, replicator_dynamics
from gamesim.solvers.validator import ValidationReport, validate_equilibrium
from gamesim.solvers.best_response import (
    BestResponseAnalysis, calculate_best_response, best_response_correspondence,
    find_best_response_intersections, analyze_best_response,
)
from gamesim.solvers.analysis import analyze_game

__all__ = [
    'NashEquilibrium',
    'find_pure_nash_equilibria',
    'find_mixed_nash_equilibria',
    'find_approximate_nash_equilibria',
    'support_enumeration',
    'DominanceAnalysis',
    'analyze_dominance',
    'ESSAnalysis',
    'analyze_ess',
    'replicator_dynamics',
    'ValidationReport',
    'validate_equilibrium',
    'analyze_game',
    'BestResponseAnalysis',
    'calculate_best_response',
    'best_response_correspondence',
    'find_best_response_intersections',
    'analyze_best_response',
]
