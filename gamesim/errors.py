"""
Exception types raised by gamesim.
"""


class GameSimError(Exception):
    """Base class for all gamesim errors."""


class ConfigurationError(GameSimError, ValueError):
    """A simulation or analysis input failed validation before any work started."""


class UnknownGeneratorError(ConfigurationError):
    """The requested random generator kind is not one of the supported kinds."""

    def __init__(self, kind):
        super().__init__(f"Unknown generator kind: {kind!r}")
        self.kind = kind


class NoStateError(GameSimError):
    """resume() was called without a saved interruption snapshot."""


class AnalysisError(GameSimError):
    """An analysis sub-step could not produce a result."""
