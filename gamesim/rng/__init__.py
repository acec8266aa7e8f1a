"""
Seeded random number generation.
"""
from gamesim.rng.generators import (
    RNGManager, UniformGenerator, MersenneTwister, LinearCongruential, Xorshift32,
    create_generator, GENERATORS,
)
from gamesim.rng.quality import QualityReport, evaluate_quality

__all__ = [
    'RNGManager',
    'UniformGenerator',
    'MersenneTwister',
    'LinearCongruential',
    'Xorshift32',
    'create_generator',
    'GENERATORS',
    'QualityReport',
    'evaluate_quality',
]
