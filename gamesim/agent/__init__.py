from gamesim.agent.rules import (
    PureRule, MixedRule, AdaptiveRule, AdaptiveParams, BehavioralRule, Archetype, PlayerRule,
)
from gamesim.agent.engine import StrategyEngine, validate_rule

__all__ = [
    'PureRule',
    'MixedRule',
    'AdaptiveRule',
    'AdaptiveParams',
    'BehavioralRule',
    'Archetype',
    'PlayerRule',
    'StrategyEngine',
    'validate_rule',
]
