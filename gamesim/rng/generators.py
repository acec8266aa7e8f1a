"""
Seedable uniform random generators and the per-run RNG manager.

Every stochastic decision in a simulation run goes through one RNGManager so
that a run is a pure function of (generator kind, seed).
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from gamesim.errors import UnknownGeneratorError

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF


class UniformGenerator(ABC):
    """
    Abstract 32-bit generator producing floats in [0, 1).

    Attributes:
        seed: Seed the generator was created with
    """
    display_name = "Generator"

    def __init__(self, seed: int):
        self.seed = int(seed) & _MASK32

    @abstractmethod
    def next_uint32(self) -> int:
        pass

    def next(self) -> float:
        return self.next_uint32() / 4294967296.0

    @abstractmethod
    def get_state(self) -> Any:
        pass

    @abstractmethod
    def set_state(self, state: Any) -> None:
        pass


class MersenneTwister(UniformGenerator):
    """MT19937 with the reference init_genrand seeding and tempering."""
    display_name = "Mersenne Twister"

    N = 624
    M = 397
    MATRIX_A = 0x9908B0DF
    UPPER_MASK = 0x80000000
    LOWER_MASK = 0x7FFFFFFF

    def __init__(self, seed: int):
        super().__init__(seed)
        self.mt = [0] * self.N
        self.mt[0] = self.seed
        for i in range(1, self.N):
            prev = self.mt[i - 1]
            self.mt[i] = (1812433253 * (prev ^ (prev >> 30)) + i) & _MASK32
        self.index = self.N

    def _twist(self):
        mt = self.mt
        for i in range(self.N):
            y = (mt[i] & self.UPPER_MASK) | (mt[(i + 1) % self.N] & self.LOWER_MASK)
            value = mt[(i + self.M) % self.N] ^ (y >> 1)
            if y & 1:
                value ^= self.MATRIX_A
            mt[i] = value
        self.index = 0

    def next_uint32(self) -> int:
        if self.index >= self.N:
            self._twist()
        y = self.mt[self.index]
        self.index += 1
        y ^= y >> 11
        y ^= (y << 7) & 0x9D2C5680
        y ^= (y << 15) & 0xEFC60000
        y ^= y >> 18
        return y & _MASK32

    def get_state(self) -> Dict[str, Any]:
        return {"mt": list(self.mt), "index": self.index}

    def set_state(self, state: Dict[str, Any]) -> None:
        self.mt = list(state["mt"])
        self.index = int(state["index"])


class LinearCongruential(UniformGenerator):
    """Numerical Recipes LCG: seed = (seed * 1664525 + 1013904223) mod 2**32."""
    display_name = "Linear Congruential"

    def __init__(self, seed: int):
        super().__init__(seed)
        self.state = self.seed

    def next_uint32(self) -> int:
        self.state = (self.state * 1664525 + 1013904223) & _MASK32
        return self.state

    def get_state(self) -> int:
        return self.state

    def set_state(self, state: int) -> None:
        self.state = int(state) & _MASK32


class Xorshift32(UniformGenerator):
    """Marsaglia xorshift with the (13, 17, 5) triple."""
    display_name = "Xorshift32"

    def __init__(self, seed: int):
        super().__init__(seed)
        # An all-zero state is a fixed point
        self.state = self.seed or 0x9E3779B9

    def next_uint32(self) -> int:
        x = self.state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self.state = x & _MASK32
        return self.state

    def get_state(self) -> int:
        return self.state

    def set_state(self, state: int) -> None:
        self.state = int(state) & _MASK32


GENERATORS = {
    "mersenne": MersenneTwister,
    "lcg": LinearCongruential,
    "xorshift": Xorshift32,
}


def create_generator(kind: str, seed: int) -> UniformGenerator:
    """
    Build a generator by kind name.

    Args:
        kind: One of "mersenne", "lcg", "xorshift"
        seed: Integer seed (reduced mod 2**32)

    Returns:
        A freshly seeded generator
    """
    key = str(kind).lower()
    if key not in GENERATORS:
        raise UnknownGeneratorError(kind)
    return GENERATORS[key](seed)


class RNGManager:
    """
    Owns the active generator for one simulation run.

    Attributes:
        kind: Name of the active generator kind
        seed: Seed of the active generator
        draws: Number of values drawn since the last configure()
    """
    def __init__(self, kind: str = "mersenne", seed: Optional[int] = None):
        self.kind = None
        self.seed = None
        self.draws = 0
        self._generator: Optional[UniformGenerator] = None
        self.configure(kind, seed)

    def configure(self, kind: str, seed: Optional[int] = None) -> bool:
        """
        Switch to a freshly seeded generator.

        An unknown kind raises UnknownGeneratorError and leaves the current
        generator untouched.

        Args:
            kind: Generator kind name
            seed: Seed; a time-derived seed is used when None

        Returns:
            True on success
        """
        if seed is None:
            seed = int(time.time() * 1000) & _MASK32
        generator = create_generator(kind, seed)
        self.kind = str(kind).lower()
        self.seed = generator.seed
        self.draws = 0
        self._generator = generator
        logger.debug(f"Configured {generator.display_name} generator with seed {self.seed}")
        return True

    @property
    def generator_name(self) -> str:
        return self._generator.display_name

    def next(self) -> float:
        """Return the next float in [0, 1)."""
        self.draws += 1
        return self._generator.next()

    def next_int(self, upper: int) -> int:
        """Return an integer uniformly drawn from [0, upper)."""
        return min(int(self.next() * upper), upper - 1)

    def sample(self, size: int) -> List[float]:
        return [self.next() for _ in range(size)]

    def get_state(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "seed": self.seed,
            "draws": self.draws,
            "generator": self._generator.get_state(),
        }

    def set_state(self, state: Dict[str, Any]) -> None:
        generator = create_generator(state["kind"], state["seed"])
        generator.set_state(state["generator"])
        self.kind = state["kind"]
        self.seed = state["seed"]
        self.draws = state["draws"]
        self._generator = generator

    def spawn(self, offset: int) -> "RNGManager":
        """A new manager of the same kind seeded at seed + offset."""
        return RNGManager(self.kind, (self.seed + offset) & _MASK32)

    def info(self) -> Dict[str, Any]:
        return {"generator": self.generator_name, "kind": self.kind,
                "seed": self.seed, "draws": self.draws}

    def validate_quality(self, sample_size: int = 10000, bins: int = 10):
        """
        Run uniformity and independence checks on a fresh generator with
        the same kind and seed; the live stream is not consumed.

        Args:
            sample_size: Number of draws to test
            bins: Number of chi-square bins

        Returns:
            QualityReport
        """
        from gamesim.rng.quality import evaluate_quality
        probe = create_generator(self.kind, self.seed)
        samples = [probe.next() for _ in range(sample_size)]
        return evaluate_quality(samples, self.generator_name, bins=bins)
