"""Fuzz/property tests.

Checks that core invariants hold for randomly generated games, seeds and
inputs rather than the handful of classic games used by the unit tests.
"""

# ---------------------------------------------------------------------------
# Boilerplate – ensure import path includes project root
# ---------------------------------------------------------------------------
import pathlib, sys
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# ---------------------------------------------------------------------------
# Std / 3rd-party imports
# ---------------------------------------------------------------------------
import torch
from hypothesis import given, settings, strategies as st

from gamesim.core.game import PayoffGame
from gamesim.memory.streaming import DataCompressor
from gamesim.rng.generators import RNGManager
from gamesim.solvers import find_pure_nash_equilibria, analyze_dominance, validate_equilibrium
from gamesim.utils.simplex_operations import simplex_normalize, simplex_projection


# ---------------------------------------------------------------------------
# Helpers to create random games
# ---------------------------------------------------------------------------

@st.composite
def payoff_tensors(draw, max_strategies=3, low=-5, high=5):
    rows = draw(st.integers(2, max_strategies))
    cols = draw(st.integers(2, max_strategies))
    cell = st.lists(st.integers(low, high), min_size=2, max_size=2)
    return draw(st.lists(st.lists(cell, min_size=cols, max_size=cols), min_size=rows, max_size=rows))


# ---------------------------------------------------------------------------
# Pure equilibria and dominance
# ---------------------------------------------------------------------------

@settings(max_examples=100, deadline=None)
@given(payoff_tensors())
def test_pure_equilibria_have_no_profitable_deviation(tensor):
    game = PayoffGame(tensor)
    rows, cols = game.shape
    for eq in find_pure_nash_equilibria(game):
        r, c = eq.profile
        assert all(tensor[k][c][0] <= tensor[r][c][0] for k in range(rows))
        assert all(tensor[r][k][1] <= tensor[r][c][1] for k in range(cols))
        assert game.regret(eq.mixtures()) == 0.0


@settings(max_examples=100, deadline=None)
@given(payoff_tensors())
def test_every_profile_without_deviation_is_found(tensor):
    rows, cols = len(tensor), len(tensor[0])
    expected = [(r, c) for r in range(rows) for c in range(cols)
                if max(tensor[k][c][0] for k in range(rows)) == tensor[r][c][0]
                and max(tensor[r][k][1] for k in range(cols)) == tensor[r][c][1]]
    assert [eq.profile for eq in find_pure_nash_equilibria(tensor)] == expected


@settings(max_examples=100, deadline=None)
@given(payoff_tensors())
def test_elimination_keeps_every_pure_equilibrium(tensor):
    analysis = analyze_dominance(tensor)
    for eq in find_pure_nash_equilibria(tensor):
        r, c = eq.profile
        assert r in analysis.remaining[0]
        assert c in analysis.remaining[1]
    assert all(len(survivors) >= 1 for survivors in analysis.remaining)


@settings(max_examples=30, deadline=None)
@given(payoff_tensors())
def test_validator_accepts_pure_equilibria(tensor):
    for eq in find_pure_nash_equilibria(tensor):
        report = validate_equilibrium(eq, tensor)
        assert report.is_valid
        assert 0.0 <= report.stability_analysis.overall <= 1.0
        assert 0.0 <= report.quality_metrics.efficiency <= 1.0


# ---------------------------------------------------------------------------
# Random number generators
# ---------------------------------------------------------------------------

@settings(max_examples=50, deadline=None)
@given(st.sampled_from(["mersenne", "lcg", "xorshift"]), st.integers(0, 2 ** 32 - 1))
def test_rng_values_in_unit_interval(kind, seed):
    rng = RNGManager(kind, seed)
    values = rng.sample(200)
    assert all(0.0 <= v < 1.0 for v in values)
    assert rng.draws == 200


@settings(max_examples=50, deadline=None)
@given(st.sampled_from(["mersenne", "lcg", "xorshift"]), st.integers(0, 2 ** 32 - 1),
       st.integers(1, 50))
def test_rng_state_round_trip(kind, seed, skip):
    rng = RNGManager(kind, seed)
    rng.sample(skip)
    state = rng.get_state()
    expected = rng.sample(20)
    other = RNGManager("mersenne", 0)
    other.set_state(state)
    assert other.sample(20) == expected


# ---------------------------------------------------------------------------
# Simplex helpers
# ---------------------------------------------------------------------------

@settings(max_examples=100, deadline=None)
@given(st.lists(st.floats(0.0, 100.0), min_size=1, max_size=8))
def test_simplex_normalize_sums_to_one(values):
    mixture = simplex_normalize(values)
    assert abs(float(mixture.sum()) - 1.0) < 1e-9
    assert bool(torch.all(mixture >= 0))


@settings(max_examples=100, deadline=None)
@given(st.lists(st.floats(-10.0, 10.0), min_size=1, max_size=8))
def test_simplex_projection_lands_on_simplex(values):
    projected = simplex_projection(values)
    assert abs(float(projected.sum()) - 1.0) < 1e-9
    assert bool(torch.all(projected >= 0))


# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------

@settings(max_examples=50, deadline=None)
@given(st.text(max_size=300))
def test_compressor_round_trip(text):
    assert DataCompressor.decompress_string(DataCompressor.compress_string(text)) == text


@settings(max_examples=50, deadline=None)
@given(st.lists(st.lists(st.integers(-3, 3), min_size=2, max_size=2), max_size=100))
def test_compress_round_trip_payload(samples):
    packed = DataCompressor.compress({"samples": samples})
    assert DataCompressor.decompress(packed["compressed"]) == {"samples": samples}
