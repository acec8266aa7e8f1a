"""
Core game model.
"""
from gamesim.core.game import PayoffGame, validate_payoff_tensor

__all__ = ['PayoffGame', 'validate_payoff_tensor']
