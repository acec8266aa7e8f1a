"""
Tests for configuration validation, the Monte Carlo loop, interruption and
resume, and parallel workers.
"""

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path no matter where pytest is invoked from
# ---------------------------------------------------------------------------
import pathlib, sys
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import asyncio
import dataclasses

import numpy as np
import pytest

from gamesim.agent.rules import PureRule, MixedRule, BehavioralRule, AdaptiveRule, Archetype
from gamesim.analysis.convergence import ConvergenceOptions
from gamesim.errors import ConfigurationError, UnknownGeneratorError, NoStateError
from gamesim.simulator.config import SimulationConfig
from gamesim.simulator.monte_carlo import MonteCarloSimulator
from gamesim.simulator.workers import run_parallel, split_iterations, worker_seed

PD = [[[3, 3], [0, 5]], [[5, 0], [1, 1]]]
NAMES = ["Cooperate", "Defect"]


# ---------------------------------------------------------------------------
# Config Factory Helpers
# ---------------------------------------------------------------------------

def _config(**overrides):
    base = dict(payoff_tensor=PD, strategy_names=NAMES,
                player_rules=[MixedRule([0.5, 0.5]), MixedRule([0.3, 0.7])],
                iterations=5000, batch_size=1000, seed=42)
    base.update(overrides)
    return SimulationConfig(**base)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("overrides", [
    dict(iterations=0),
    dict(iterations=-5),
    dict(iterations="100"),
    dict(iterations=True),
    dict(payoff_tensor=[]),
    dict(payoff_tensor=[[[1, 1], [0, 0]], [[1, 1]]]),
    dict(payoff_tensor=[[[1, 1, 1], [0, 0, 0]], [[1, 1, 1], [0, 0, 0]]]),
    dict(payoff_tensor=[[[1, float("nan")], [0, 0]], [[1, 1], [0, 0]]]),
    dict(payoff_tensor=[[[1, 1], [0, 0], [2, 2]], [[1, 1], [0, 0], [2, 2]]]),
    dict(player_count=3),
    dict(strategy_names=["Only"]),
    dict(player_rules=[PureRule(0)]),
    dict(player_rules=[PureRule(0), PureRule(4)]),
    dict(player_rules=[MixedRule([1.0]), PureRule(0)]),
    dict(batch_size=0),
    dict(convergence=ConvergenceOptions(window_size=2)),
])
def test_invalid_config_fails_fast(overrides):
    sim = MonteCarloSimulator()
    with pytest.raises(ConfigurationError):
        sim.run(_config(**overrides))
    assert sim.status == "idle"


def test_unknown_rng_kind():
    with pytest.raises(UnknownGeneratorError):
        _config(rng_kind="dice").validate()


def test_from_legacy_labels():
    config = SimulationConfig.from_legacy(PD, NAMES, ["defect", "tit-for-tat"], 100, seed=1)
    assert config.player_rules[0] == PureRule(1)
    assert config.player_rules[1] == BehavioralRule(Archetype.TIT_FOR_TAT)

    config = SimulationConfig.from_legacy(PD, NAMES, ["mixed", "adaptive"], 100,
                                          mixed_strategies=[[0.2, 0.8], None])
    assert config.player_rules[0] == MixedRule([0.2, 0.8])
    assert isinstance(config.player_rules[1], AdaptiveRule)

    with pytest.raises(ConfigurationError):
        SimulationConfig.from_legacy(PD, NAMES, ["mixed", "bluff"], 100)


# ---------------------------------------------------------------------------
# Basic runs
# ---------------------------------------------------------------------------

def test_pure_run_totals():
    result = MonteCarloSimulator().run(_config(player_rules=[PureRule(1), PureRule(1)], iterations=1234))
    assert result.actual_iterations == 1234
    assert result.requested_iterations == 1234
    assert result.outcomes == {"Defect-Defect": 1234}
    assert result.expected_payoffs == [1.0, 1.0]
    assert result.statistics["variance"] == [0.0, 0.0]
    assert result.statistics["confidence_interval"][0] == [1.0, 1.0]
    assert not result.early_stop
    assert result.status == "completed"
    assert "Defect-Defect" in result.format_table()


def test_print_summary(capsys):
    MonteCarloSimulator().run(_config(player_rules=[PureRule(0), PureRule(1)], iterations=10)).print_summary()
    out = capsys.readouterr().out
    assert "Cooperate-Defect" in out
    assert "Player 1" in out


def test_mixed_run_tallies():
    result = MonteCarloSimulator().run(_config())
    assert sum(result.outcomes.values()) == 5000
    assert result.outcomes == result.strategy_frequencies
    assert set(result.outcomes) <= {"Cooperate-Cooperate", "Cooperate-Defect",
                                    "Defect-Cooperate", "Defect-Defect"}
    assert result.rng_info["seed"] == 42
    assert result.rng_info["generator"] == "Mersenne Twister"
    assert result.rng_info["draws"] == 10000
    low, high = result.statistics["confidence_interval"][0]
    assert low <= result.expected_payoffs[0] <= high


def test_advanced_results():
    result = MonteCarloSimulator().run(_config(iterations=1000))
    advanced = result.advanced_results
    # 10 intervals x 2 players x 2 strategies
    assert len(advanced["strategy_evolution"]) == 40
    assert advanced["distribution"][0]["sample_count"] == 1000
    assert set(advanced["distribution"][0]["percentiles"]) == {5, 25, 50, 75, 95}
    assert sum(advanced["strategy_distribution"][1].values()) == pytest.approx(1.0)
    assert "equilibria" not in advanced
    assert len(result.convergence_data) == 10
    assert result.convergence_data[0]["iteration"] == 0


def test_history_is_bounded():
    result = MonteCarloSimulator().run(_config(iterations=500, track_history=True, history_limit=50))
    assert len(result.history) == 50
    assert result.history[-1]["iteration"] == 500


def test_convergence_samples_are_bounded(monkeypatch):
    monkeypatch.setattr("gamesim.simulator.monte_carlo.DEFAULT_TRACE_LIMIT", 4)
    result = MonteCarloSimulator().run(_config(iterations=1000))
    assert [point["iteration"] for point in result.convergence_data] == [600, 700, 800, 900]


def test_run_inside_running_event_loop():
    async def caller():
        return MonteCarloSimulator().run(_config(iterations=300))

    result = asyncio.run(caller())
    assert result.actual_iterations == 300


def test_numpy_payoff_tensor():
    result = MonteCarloSimulator().run(_config(payoff_tensor=np.array(PD, dtype=np.int64), iterations=300))
    assert result.actual_iterations == 300
    assert sum(result.outcomes.values()) == 300


def test_run_async():
    result = asyncio.run(MonteCarloSimulator().run_async(_config(iterations=300)))
    assert result.actual_iterations == 300


def test_equilibria_attached_on_request():
    result = MonteCarloSimulator().run(_config(iterations=200, analyze_equilibria=True))
    equilibria = result.advanced_results["equilibria"]
    assert [tuple(eq["profile"]) for eq in equilibria["pure"]] == [(1, 1)]
    assert equilibria["dominance"]["solvable"]


# ---------------------------------------------------------------------------
# Reproducibility
# ---------------------------------------------------------------------------

def test_same_seed_same_result():
    a = MonteCarloSimulator().run(_config(player_rules=[AdaptiveRule(), BehavioralRule("random")]))
    b = MonteCarloSimulator().run(_config(player_rules=[AdaptiveRule(), BehavioralRule("random")]))
    assert a.outcomes == b.outcomes
    assert a.expected_payoffs == b.expected_payoffs
    assert a.statistics == b.statistics
    assert a.advanced_results["strategy_evolution"] == b.advanced_results["strategy_evolution"]


def test_different_seed_different_result():
    a = MonteCarloSimulator().run(_config(seed=1))
    b = MonteCarloSimulator().run(_config(seed=2))
    assert a.outcomes != b.outcomes


# ---------------------------------------------------------------------------
# Progress, interruption, resume
# ---------------------------------------------------------------------------

def test_progress_is_monotonic_and_ends_at_100():
    seen = []
    MonteCarloSimulator().run(_config(on_progress=lambda pct, snap: seen.append((pct, snap["iteration"]))))
    percents = [p for p, _ in seen]
    assert percents == sorted(percents)
    assert percents[-1] == 100.0
    assert [it for _, it in seen] == [1000, 2000, 3000, 4000, 5000]


def test_interrupt_returns_partial_result():
    sim = MonteCarloSimulator()

    def stop_early(percent, snapshot):
        if percent >= 40:
            sim.interrupt()

    result = sim.run(_config(on_progress=stop_early))
    assert result.early_stop
    assert result.early_stop_reason == "Interrupted by user"
    assert result.actual_iterations == 2000
    assert result.actual_iterations < result.requested_iterations
    assert result.status == "interrupted"
    assert len(result.statistics["mean"]) == 2
    assert all(v > 0 for v in result.statistics["variance"])
    assert sim.can_resume


def test_resume_matches_uninterrupted_run():
    full = MonteCarloSimulator().run(_config(player_rules=[AdaptiveRule(), BehavioralRule("tit-for-tat")]))

    sim = MonteCarloSimulator()
    fired = []

    def stop_once(percent, snapshot):
        if percent >= 40 and not fired:
            fired.append(percent)
            sim.interrupt()

    partial = sim.run(_config(player_rules=[AdaptiveRule(), BehavioralRule("tit-for-tat")],
                              on_progress=stop_once))
    assert partial.actual_iterations == 2000

    resumed_progress = []
    resumed = sim.resume(lambda pct, snap: resumed_progress.append(pct))
    assert resumed.actual_iterations == 5000
    assert not resumed.early_stop
    assert resumed.outcomes == full.outcomes
    assert resumed.expected_payoffs == pytest.approx(full.expected_payoffs)
    assert resumed_progress[0] >= 40
    assert resumed_progress[-1] == 100.0
    assert not sim.can_resume


def test_resume_without_state():
    with pytest.raises(NoStateError):
        MonteCarloSimulator().resume()


# ---------------------------------------------------------------------------
# Convergence driven early stop
# ---------------------------------------------------------------------------

def test_constant_play_stops_early():
    seen = []
    options = ConvergenceOptions(window_size=100, min_iterations=200, check_interval=100)
    result = MonteCarloSimulator().run(_config(
        player_rules=[PureRule(1), PureRule(1)], convergence=options,
        on_progress=lambda pct, snap: seen.append(pct)))
    assert result.early_stop
    assert result.actual_iterations == 200
    assert result.early_stop_reason.startswith("Converged")
    assert result.convergence_analysis["converged"]
    assert seen[-1] == 100.0


def test_convergence_can_be_observed_without_stopping():
    options = ConvergenceOptions(window_size=100, min_iterations=200, check_interval=100,
                                 early_stopping=False)
    result = MonteCarloSimulator().run(_config(player_rules=[PureRule(1), PureRule(1)],
                                               convergence=options, iterations=1000))
    assert result.actual_iterations == 1000
    assert result.convergence_analysis["checks"] == 10


# ---------------------------------------------------------------------------
# Parallel workers
# ---------------------------------------------------------------------------

def test_split_iterations():
    assert split_iterations(10, 3) == [4, 3, 3]
    assert sum(split_iterations(1001, 4)) == 1001
    assert worker_seed(5, 2) != worker_seed(5, 1)


def test_parallel_serial_pure():
    result = run_parallel(_config(player_rules=[PureRule(1), PureRule(0)], iterations=1000),
                          num_workers=4, executor="serial")
    assert result.actual_iterations == 1000
    assert result.outcomes == {"Defect-Cooperate": 1000}
    assert result.expected_payoffs == pytest.approx([5.0, 0.0])
    assert result.statistics["variance"][0] == pytest.approx(0.0, abs=1e-9)
    assert result.rng_info["workers"] == 4
    assert len(result.advanced_results["workers"]) == 4


def test_parallel_thread_matches_serial():
    config = _config(iterations=2000)
    serial = run_parallel(config, num_workers=3, executor="serial")
    threaded = run_parallel(config, num_workers=3, executor="thread")
    assert serial.outcomes == threaded.outcomes
    assert serial.expected_payoffs == pytest.approx(threaded.expected_payoffs)
    assert sum(serial.outcomes.values()) == 2000


def test_parallel_rejects_bad_arguments():
    with pytest.raises(ConfigurationError):
        run_parallel(_config(), num_workers=0, executor="serial")
    with pytest.raises(ConfigurationError):
        run_parallel(_config(), executor="gpu")


def test_parallel_fewer_iterations_than_workers():
    result = run_parallel(dataclasses.replace(_config(), iterations=2), num_workers=4, executor="serial")
    assert result.actual_iterations == 2
    assert result.rng_info["workers"] == 2
