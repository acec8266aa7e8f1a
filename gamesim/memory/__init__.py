"""
Bounded storage for large result sets.
"""
from gamesim.memory.streaming import (
    MemoryConfig, DataCompressor, StreamingDataManager, ResultProcessor,
)

__all__ = ['MemoryConfig', 'DataCompressor', 'StreamingDataManager', 'ResultProcessor']
