"""
Tests for player rules, agents and the strategy engine.
"""

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path no matter where pytest is invoked from
# ---------------------------------------------------------------------------
import pathlib, sys
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from gamesim.agent.agent import sample_index, normalize
from gamesim.agent.behaviors import BehavioralAgent, AdaptiveAgent, MixedAgent, skewed_distribution
from gamesim.agent.engine import StrategyEngine, validate_rule
from gamesim.agent.rules import (
    PureRule, MixedRule, AdaptiveRule, AdaptiveParams, BehavioralRule, Archetype,
)
from gamesim.core.game import PayoffGame
from gamesim.errors import ConfigurationError
from gamesim.rng.generators import RNGManager


# ---------------------------------------------------------------------------
# Game Factory Helpers
# ---------------------------------------------------------------------------

def _prisoners_dilemma():
    return PayoffGame([[[3, 3], [0, 5]], [[5, 0], [1, 1]]], ["Cooperate", "Defect"])


def _behavioral(archetype, player=0):
    game = _prisoners_dilemma()
    return BehavioralAgent(player, 2, Archetype.parse(archetype), game.player_matrix(player).tolist())


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("label", ["tit-for-tat", "TFT", "titfortat", "tit_for_tat", "Tit For Tat"])
def test_archetype_aliases(label):
    assert Archetype.parse(label) is Archetype.TIT_FOR_TAT


def test_rules_are_immutable():
    rule = MixedRule([0.2, 0.8])
    assert rule.probabilities == (0.2, 0.8)
    with pytest.raises(Exception):
        rule.probabilities = (1.0, 0.0)


@pytest.mark.parametrize("rule", [
    PureRule(2),
    PureRule(-1),
    MixedRule([0.5]),
    MixedRule([-0.5, 1.5]),
    MixedRule([0.0, 0.0]),
    AdaptiveRule(AdaptiveParams(learning_rate=1.5)),
    AdaptiveRule(AdaptiveParams(exploration_rate=-0.1)),
    AdaptiveRule(AdaptiveParams(memory_length=0)),
    AdaptiveRule(AdaptiveParams(initial_belief=[1.0])),
    "cooperate",
])
def test_validate_rule_rejects(rule):
    with pytest.raises(ConfigurationError):
        validate_rule(rule, 0, 2)


def test_validate_rule_accepts_unnormalized_mixture():
    validate_rule(MixedRule([2.0, 2.0]), 1, 2)


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def test_sample_index_uses_one_draw():
    rng = RNGManager("mersenne", 1)
    sample_index([0.25, 0.25, 0.5], rng)
    assert rng.draws == 1


def test_sample_index_degenerate():
    rng = RNGManager("lcg", 3)
    assert all(sample_index([0.0, 1.0, 0.0], rng) == 1 for _ in range(100))


def test_normalize_falls_back_to_uniform():
    assert normalize([0.0, 0.0]) == [0.5, 0.5]
    assert normalize([1.0, 3.0]) == [0.25, 0.75]


def test_mixed_agent_renormalizes_and_defaults_uniform():
    assert MixedAgent(0, 2, [2.0, 6.0]).probabilities == [0.25, 0.75]
    assert MixedAgent(0, 4).probabilities == [0.25] * 4


def test_mixed_sampling_frequencies():
    rng = RNGManager("mersenne", 77)
    agent = MixedAgent(0, 2, [0.3, 0.7])
    picks = [agent.select(i, rng) for i in range(4000)]
    assert 0.25 < picks.count(0) / len(picks) < 0.35


def test_skewed_distribution():
    assert skewed_distribution(1, 0) == [1.0]
    dist = skewed_distribution(3, 1)
    assert dist[1] == pytest.approx(0.8)
    assert sum(dist) == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Behavioral archetypes
# ---------------------------------------------------------------------------

def test_tit_for_tat_mirrors_opponent():
    agent = _behavioral("tit-for-tat")
    rng = RNGManager("mersenne", 1)
    assert agent.select(1, rng) == 0
    agent.observe([0, 1], [0, 5], rng)
    assert agent.select(2, rng) == 1
    agent.observe([1, 0], [5, 0], rng)
    assert agent.select(3, rng) == 0


def test_grudger_never_forgives():
    agent = _behavioral("grudger")
    rng = RNGManager("mersenne", 1)
    agent.observe([0, 0], [3, 3], rng)
    assert agent.select(2, rng) == 0
    agent.observe([0, 1], [0, 5], rng)
    assert agent.select(3, rng) == 1
    agent.observe([1, 0], [5, 0], rng)
    assert agent.select(4, rng) == 1


def test_pavlov_win_stay_lose_shift():
    agent = _behavioral("pavlov")
    rng = RNGManager("mersenne", 1)
    assert agent.select(1, rng) == 0
    agent.observe([0, 0], [3, 3], rng)
    assert agent.select(2, rng) == 0
    agent.observe([0, 1], [0, 5], rng)
    assert agent.select(3, rng) == 1


def test_rational_best_responds():
    agent = _behavioral("rational")
    rng = RNGManager("mersenne", 1)
    # Defect is a best response to every belief in the prisoner's dilemma
    assert agent.select(1, rng) == 1
    agent.observe([1, 0], [5, 0], rng)
    assert agent.select(2, rng) == 1


def test_aggressive_prefers_defection():
    agent = _behavioral("aggressive")
    rng = RNGManager("xorshift", 8)
    picks = [agent.select(i, rng) for i in range(2000)]
    assert 0.75 < picks.count(1) / len(picks) < 0.85


def test_cooperative_prefers_cooperation():
    agent = _behavioral("cooperative")
    rng = RNGManager("xorshift", 8)
    picks = [agent.select(i, rng) for i in range(2000)]
    assert 0.75 < picks.count(0) / len(picks) < 0.85


def test_behavioral_snapshot_restore():
    agent = _behavioral("grudger")
    rng = RNGManager("mersenne", 1)
    agent.observe([0, 1], [0, 5], rng)
    state = agent.snapshot()
    agent.reset()
    assert agent.select(1, rng) == 0
    agent.restore(state)
    assert agent.select(2, rng) == 1


# ---------------------------------------------------------------------------
# Adaptive learner
# ---------------------------------------------------------------------------

def test_adaptive_belief_stays_a_distribution():
    agent = AdaptiveAgent(0, 2, AdaptiveParams(learning_rate=0.2, exploration_rate=0.1, memory_length=5))
    rng = RNGManager("mersenne", 4)
    game = _prisoners_dilemma()
    for i in range(200):
        mine = agent.select(i, rng)
        agent.observe([mine, 1], game.payoff(mine, 1), rng)
        assert sum(agent.belief) == pytest.approx(1.0)
        assert all(b > 0 for b in agent.belief)
    assert len(agent.memory) == 5


def test_adaptive_zero_fitness_keeps_prior():
    agent = AdaptiveAgent(0, 2, AdaptiveParams(learning_rate=0.5, exploration_rate=0.0,
                                               initial_belief=[0.9, 0.1]))
    rng = RNGManager("mersenne", 4)
    for _ in range(10):
        agent.observe([0, 0], [0.0, 0.0], rng)
    assert agent.belief == pytest.approx([0.9, 0.1])


def test_adaptive_learns_better_strategy():
    agent = AdaptiveAgent(0, 2, AdaptiveParams(learning_rate=0.5, exploration_rate=0.0))
    rng = RNGManager("mersenne", 4)
    for s in (0, 1) * 10:
        agent.observe([s, 0], [float(s), 0.0], rng)
    assert agent.belief[1] > 0.9


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def test_engine_tit_for_tat_against_defector():
    game = _prisoners_dilemma()
    engine = StrategyEngine(game, [BehavioralRule("tit-for-tat"), PureRule(1)], RNGManager("mersenne", 1))
    first = engine.select_all(1)
    assert first == [0, 1]
    engine.observe(first, game.payoff(*first))
    assert engine.select_all(2) == [1, 1]


def test_engine_rejects_rule_count():
    with pytest.raises(ConfigurationError):
        StrategyEngine(_prisoners_dilemma(), [PureRule(0)], RNGManager("mersenne", 1))


def test_engine_snapshot_restore_replays():
    game = _prisoners_dilemma()
    rules = [AdaptiveRule(), BehavioralRule("pavlov")]
    rng = RNGManager("mersenne", 21)
    engine = StrategyEngine(game, rules, rng)
    for i in range(1, 30):
        picks = engine.select_all(i)
        engine.observe(picks, game.payoff(*picks))
    engine_state, rng_state = engine.snapshot(), rng.get_state()

    def play(eng):
        out = []
        for i in range(30, 60):
            picks = eng.select_all(i)
            eng.observe(picks, game.payoff(*picks))
            out.append(tuple(picks))
        return out

    expected = play(engine)
    rng2 = RNGManager("lcg", 1)
    rng2.set_state(rng_state)
    engine2 = StrategyEngine(game, rules, rng2)
    engine2.restore(engine_state)
    assert play(engine2) == expected


def test_engine_select_strategy_per_player():
    game = _prisoners_dilemma()
    rng = RNGManager("mersenne", 2)
    engine = StrategyEngine(game, [PureRule(0), MixedRule([0.0, 1.0])], rng)
    assert engine.select_strategy(0, 1) == 0
    assert engine.select_strategy(1, 1) == 1
    assert rng.draws == 1
